"""In-process task store using asyncio for local development and tests.

Tasks live in a dict and their ids flow through an ``asyncio.Queue``, so the
API and the worker must share one event loop. Nothing survives a restart;
use the Supabase store when producer and worker run as separate processes.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from app.errors import TaskNotFoundError
from app.jobs.models import AnalysisTask, TaskError, TaskStatus, utcnow
from app.jobs.store import CLAIMED_PROGRESS, TaskStore, check_transition, clamp_progress


class InMemoryTaskStore(TaskStore):
    """Local task store. Claims are atomic because the event loop is single-threaded."""

    def __init__(self):
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: Dict[str, AnalysisTask] = {}

    async def enqueue(self, task: AnalysisTask) -> str:
        self._tasks[task.id] = task
        await self._queue.put(task.id)
        return task.id

    async def dequeue(self, worker_id: str, timeout: float) -> Optional[AnalysisTask]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            try:
                task_id = await asyncio.wait_for(self._queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                return None

            task = self._tasks.get(task_id)
            # Purged or already failed while waiting in the queue
            if task is None or task.status != TaskStatus.QUEUED:
                continue

            claimed = task.model_copy(update={
                "status": TaskStatus.PROCESSING,
                "progress": CLAIMED_PROGRESS,
                "started_at": utcnow(),
                "worker_id": worker_id,
            })
            self._tasks[task_id] = claimed
            return claimed

    async def update_progress(self, task_id: str, progress: int) -> None:
        task = self._require(task_id)
        if task.status != TaskStatus.PROCESSING:
            return
        progress = clamp_progress(progress)
        if progress > task.progress:
            self._tasks[task_id] = task.model_copy(update={"progress": progress})

    async def complete(self, task_id: str, result: Dict[str, Any]) -> AnalysisTask:
        task = self._require(task_id)
        check_transition(task, TaskStatus.COMPLETED)
        updated = task.model_copy(update={
            "status": TaskStatus.COMPLETED,
            "progress": 100,
            "result": result,
            "finished_at": utcnow(),
        })
        self._tasks[task_id] = updated
        return updated

    async def fail(self, task_id: str, error: TaskError) -> AnalysisTask:
        task = self._require(task_id)
        check_transition(task, TaskStatus.FAILED)
        updated = task.model_copy(update={
            "status": TaskStatus.FAILED,
            "error": error,
            "finished_at": utcnow(),
        })
        self._tasks[task_id] = updated
        return updated

    async def get_by_id(self, task_id: str) -> Optional[AnalysisTask]:
        return self._tasks.get(task_id)

    async def fail_stale(self, started_before: datetime, error: TaskError) -> int:
        stale = [
            t.id for t in self._tasks.values()
            if t.status == TaskStatus.PROCESSING
            and t.started_at is not None
            and t.started_at < started_before
        ]
        for task_id in stale:
            await self.fail(task_id, error)
        return len(stale)

    async def purge_finished(self, finished_before: datetime) -> int:
        expired = [
            t.id for t in self._tasks.values()
            if t.status.is_terminal
            and t.finished_at is not None
            and t.finished_at < finished_before
        ]
        for task_id in expired:
            del self._tasks[task_id]
        return len(expired)

    def _require(self, task_id: str) -> AnalysisTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task
