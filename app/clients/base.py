"""Stage client interface: one blocking model call, raw text out."""

from abc import ABC, abstractmethod
from typing import List, Optional


class StageClient(ABC):
    """Adapter to one external inference service.

    Implementations raise ``UpstreamModelError`` for transport failures and
    empty replies, and ``StageTimeoutError`` when their own timeout fires.
    They never parse the reply.
    """

    name: str = "stage"

    @abstractmethod
    async def generate(self, prompt: str, images: Optional[List[str]] = None) -> str:
        """Send prompt (plus optional base64 images) and return the raw reply text."""
        ...

    async def aclose(self) -> None:
        return None
