"""Worker pool that drains the task store.

Each slot in the pool processes one task at a time, so ``pool_size`` is the
number of tasks (and upstream model calls) in flight at once. The default of
one keeps the inference endpoint from being overloaded.
"""

import asyncio
import logging
import os
import socket
import uuid
from datetime import timedelta
from typing import List, Optional

from app.errors import AnalysisError, TaskCancelledError, WorkerInterruptedError
from app.jobs.cancellation import CancellationToken
from app.jobs.models import AnalysisTask, TaskError, utcnow
from app.jobs.store import TaskStore
from app.pipeline.runner import AnalysisPipeline
from app.storage.completion_events import (
    CompletionEvent,
    CompletionListener,
    LoggingCompletionListener,
)
from app.storage.result_sink import NullResultSink, ResultSink

logger = logging.getLogger(__name__)


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"


class Worker:
    def __init__(
        self,
        store: TaskStore,
        pipeline: AnalysisPipeline,
        pool_size: int = 1,
        poll_interval: float = 1.0,
        shutdown_grace: float = 30.0,
        stale_lease: Optional[timedelta] = None,
        result_ttl: Optional[timedelta] = None,
        result_sink: Optional[ResultSink] = None,
        completion_listener: Optional[CompletionListener] = None,
        worker_id: Optional[str] = None,
    ):
        self.store = store
        self.pipeline = pipeline
        self.pool_size = max(1, pool_size)
        self.poll_interval = poll_interval
        self.shutdown_grace = shutdown_grace
        self.stale_lease = stale_lease
        self.result_ttl = result_ttl
        self.result_sink = result_sink or NullResultSink()
        self.completion_listener = completion_listener or LoggingCompletionListener()
        self.worker_id = worker_id or default_worker_id()
        self._token = CancellationToken()
        self._slots: List[asyncio.Task] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        await self.housekeeping()
        self._running = True
        self._slots = [
            asyncio.create_task(self._worker_loop(slot), name=f"worker-slot-{slot}")
            for slot in range(self.pool_size)
        ]
        logger.info("Worker %s started with %d slot(s)", self.worker_id, self.pool_size)

    async def wait(self) -> None:
        if self._slots:
            await asyncio.gather(*self._slots, return_exceptions=True)

    async def stop(self) -> None:
        """Stop claiming, let in-flight tasks finish within the grace period, then cancel them."""
        self._running = False
        if self._slots:
            _, pending = await asyncio.wait(self._slots, timeout=self.shutdown_grace)
            if pending:
                logger.warning("Cancelling %d in-flight task(s) after grace period", len(pending))
                self._token.cancel()
                _, pending = await asyncio.wait(pending, timeout=5.0)
                for slot in pending:
                    slot.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
            self._slots = []
        await self.pipeline.aclose()
        logger.info("Worker %s stopped", self.worker_id)

    async def housekeeping(self) -> None:
        """Fail tasks orphaned by a dead worker and purge expired finished tasks."""
        now = utcnow()
        if self.stale_lease is not None:
            error = WorkerInterruptedError("Worker stopped before the task finished")
            count = await self.store.fail_stale(
                now - self.stale_lease,
                TaskError(code=error.code, message=error.message),
            )
            if count:
                logger.warning("Failed %d task(s) left processing by a previous worker", count)
        if self.result_ttl is not None:
            count = await self.store.purge_finished(now - self.result_ttl)
            if count:
                logger.info("Purged %d expired task(s)", count)

    async def _worker_loop(self, slot: int) -> None:
        """Process tasks one at a time from the store."""
        while self._running:
            try:
                task = await self.store.dequeue(self.worker_id, timeout=self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Slot %d could not dequeue; backing off", slot)
                await asyncio.sleep(self.poll_interval)
                continue

            if task is None:
                continue

            try:
                await self.process(task)
            except asyncio.CancelledError:
                break
            except Exception:
                # Store write failed; the task stays processing until fail_stale picks it up
                logger.exception("Slot %d could not record outcome of task %s", slot, task.id)

    async def process(self, task: AnalysisTask) -> AnalysisTask:
        """Drive one claimed task to a terminal state."""
        logger.info("Processing task %s (%s)", task.id, task.kind.value)

        async def report(progress: int) -> None:
            await self.store.update_progress(task.id, progress)

        try:
            result = await self.pipeline.run(task, report, self._token)
        except asyncio.CancelledError:
            error = TaskCancelledError("Worker stopped while the task was running")
            await self._fail(task, TaskError(code=error.code, message=error.message))
            raise
        except AnalysisError as exc:
            return await self._fail(
                task, TaskError(code=exc.code, message=exc.message, stage=exc.stage)
            )
        except Exception as exc:
            logger.exception("Unexpected error processing task %s", task.id)
            return await self._fail(
                task, TaskError(code="InternalError", message=f"{type(exc).__name__}: {exc}")
            )

        finished = await self.store.complete(task.id, result)
        logger.info("Task %s completed", task.id)
        await self._hand_off(finished)
        return finished

    async def _fail(self, task: AnalysisTask, error: TaskError) -> AnalysisTask:
        logger.warning(
            "Task %s failed: %s (%s)%s",
            task.id, error.code, error.message,
            f" at {error.stage} stage" if error.stage else "",
        )
        return await self.store.fail(task.id, error)

    async def _hand_off(self, task: AnalysisTask) -> None:
        # The task is already terminal; collaborator failures are logged only.
        try:
            await self.result_sink.save(task)
        except Exception:
            logger.exception("Result persistence failed for task %s", task.id)
        try:
            await self.completion_listener.on_completed(CompletionEvent.from_task(task))
        except Exception:
            logger.exception("Completion event failed for task %s", task.id)
