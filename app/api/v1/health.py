"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

from app.config import settings

router = APIRouter()

# Set by main.py during lifespan; None when tasks run in a separate worker process
_worker = None


def set_worker(worker):
    global _worker
    _worker = worker


@router.get("/health")
async def health_check():
    """Service health, task store backend and stage providers."""
    return {
        "status": "healthy",
        "task_store": settings.task_store_backend,
        "embedded_worker": _worker is not None,
        "worker_running": _worker.running if _worker is not None else None,
        "stages": {
            "analysis": {"provider": "ollama", "model": settings.ollama_vision_model},
            "recommendation": {
                "provider": settings.stage_two_provider,
                "model": (
                    settings.openai_model
                    if settings.stage_two_provider == "openai"
                    else settings.ollama_text_model
                ),
            },
        },
        "python_version": sys.version,
        "platform": platform.platform(),
    }
