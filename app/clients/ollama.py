"""Ollama client (``/api/generate``) used for the vision stage and, optionally, stage two."""

import logging
import time
from typing import List, Optional

import httpx

from app.clients.base import StageClient
from app.errors import StageTimeoutError, UpstreamModelError
from app.io.image_payload import strip_data_url

logger = logging.getLogger(__name__)


class OllamaClient(StageClient):
    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 180.0,
        name: str = "ollama",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.name = name
        self.model = model
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def generate(self, prompt: str, images: Optional[List[str]] = None) -> str:
        body = {"model": self.model, "prompt": prompt, "stream": False}
        if images:
            body["images"] = [strip_data_url(img) for img in images]

        start = time.perf_counter()
        try:
            response = await self._client.post("/api/generate", json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as exc:
            raise StageTimeoutError(f"Ollama request timed out: {exc}", stage=self.name) from exc
        except httpx.HTTPStatusError as exc:
            raise UpstreamModelError(
                f"Ollama error: {exc.response.status_code} {exc.response.reason_phrase}",
                stage=self.name,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamModelError(f"Ollama unreachable: {exc}", stage=self.name) from exc
        except ValueError as exc:
            raise UpstreamModelError("Ollama returned a non-JSON envelope", stage=self.name) from exc
        finally:
            logger.info(
                "%s call to %s took %d ms",
                self.name, self.model, int((time.perf_counter() - start) * 1000),
            )

        raw = data.get("response") if isinstance(data, dict) else None
        if not isinstance(raw, str) or not raw.strip():
            raise UpstreamModelError("Empty response from Ollama", stage=self.name)
        return raw.strip()

    async def aclose(self) -> None:
        await self._client.aclose()
