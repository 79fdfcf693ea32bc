"""Builds the two stage clients from configuration."""

from dataclasses import dataclass

from app.clients.base import StageClient
from app.clients.ollama import OllamaClient
from app.clients.openai_client import OpenAIClient
from app.config import Settings


@dataclass
class StageClients:
    analysis: StageClient
    recommendation: StageClient

    async def aclose(self) -> None:
        await self.analysis.aclose()
        await self.recommendation.aclose()


def build_stage_clients(config: Settings) -> StageClients:
    analysis = OllamaClient(
        base_url=config.ollama_base_url,
        model=config.ollama_vision_model,
        timeout=config.stage_one_timeout_s,
        name="analysis",
    )

    provider = config.stage_two_provider.lower()
    if provider == "openai":
        recommendation: StageClient = OpenAIClient(
            api_key=config.openai_api_key,
            model=config.openai_model,
            timeout=config.stage_two_timeout_s,
            name="recommendation",
        )
    elif provider == "ollama":
        recommendation = OllamaClient(
            base_url=config.ollama_base_url,
            model=config.ollama_text_model,
            timeout=config.stage_two_timeout_s,
            name="recommendation",
        )
    else:
        raise ValueError(f"Unknown STAGE_TWO_PROVIDER '{config.stage_two_provider}'")

    return StageClients(analysis=analysis, recommendation=recommendation)
