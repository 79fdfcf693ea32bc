"""Cancellation token threaded through the worker's call chain."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from app.errors import StageTimeoutError, TaskCancelledError

T = TypeVar("T")


class CancellationToken:
    """Set once when the worker shuts down; in-flight stage calls are abandoned."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "worker shutting down") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self, stage: Optional[str] = None) -> None:
        if self.cancelled:
            raise TaskCancelledError(f"Cancelled: {self.reason}", stage=stage)

    async def run(self, call: Awaitable[T], timeout: float, stage: str) -> T:
        """Await ``call`` with a deadline, giving up early if the token is cancelled.

        Raises StageTimeoutError on deadline, TaskCancelledError on cancellation.
        """
        call_task = asyncio.ensure_future(call)
        if self.cancelled:
            call_task.cancel()
            await asyncio.gather(call_task, return_exceptions=True)
            self.raise_if_cancelled(stage)

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {call_task, waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            call_task.cancel()
            raise
        finally:
            waiter.cancel()

        if call_task in done:
            return call_task.result()

        call_task.cancel()
        await asyncio.gather(call_task, return_exceptions=True)
        self.raise_if_cancelled(stage)
        raise StageTimeoutError(f"{stage} stage exceeded its {timeout:g}s deadline", stage=stage)
