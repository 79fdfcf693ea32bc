"""OpenAI chat-completions client for the recommendation stage."""

import logging
import time
from typing import Any, Dict, List, Optional

from openai import APIError, APITimeoutError, AsyncOpenAI

from app.clients.base import StageClient
from app.errors import StageTimeoutError, UpstreamModelError

logger = logging.getLogger(__name__)


class OpenAIClient(StageClient):
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        name: str = "openai",
        client: Optional[AsyncOpenAI] = None,
    ):
        if client is None and not api_key:
            raise ValueError("OPENAI_API_KEY must be set when STAGE_TWO_PROVIDER=openai")
        self.name = name
        self.model = model
        # Retries are handled by the pipeline runner, not the SDK.
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def generate(self, prompt: str, images: Optional[List[str]] = None) -> str:
        content: Any = prompt
        if images:
            content = [{"type": "text", "text": prompt}] + [
                {"type": "image_url", "image_url": {"url": _as_data_url(img)}}
                for img in images
            ]
        messages: List[Dict[str, Any]] = [{"role": "user", "content": content}]

        start = time.perf_counter()
        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=1000,
                temperature=0.3,
                response_format={"type": "json_object"},
            )
        except APITimeoutError as exc:
            raise StageTimeoutError(f"OpenAI request timed out: {exc}", stage=self.name) from exc
        except APIError as exc:
            raise UpstreamModelError(f"OpenAI error: {exc}", stage=self.name) from exc
        finally:
            logger.info(
                "%s call to %s took %d ms",
                self.name, self.model, int((time.perf_counter() - start) * 1000),
            )

        response = completion.choices[0].message.content if completion.choices else None
        if not response or not response.strip():
            raise UpstreamModelError("No response content from OpenAI", stage=self.name)
        return response.strip()

    async def aclose(self) -> None:
        await self._client.close()


def _as_data_url(image_b64: str) -> str:
    if image_b64.startswith("data:"):
        return image_b64
    return f"data:image/jpeg;base64,{image_b64}"
