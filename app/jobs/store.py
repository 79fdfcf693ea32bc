"""Task store interface shared by the submission API and the worker."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from app.errors import TaskStateError
from app.jobs.models import AnalysisTask, TaskError, TaskStatus

# Progress reported as soon as a worker claims a task.
CLAIMED_PROGRESS = 10


class TaskStore(ABC):
    """Durable record of task lifecycle state.

    The submission side only calls ``enqueue`` and ``get_by_id``. Every other
    mutation belongs to the worker that claimed the task through ``dequeue``.
    """

    @abstractmethod
    async def enqueue(self, task: AnalysisTask) -> str:
        """Persist a new queued task. Returns task id."""
        ...

    @abstractmethod
    async def dequeue(self, worker_id: str, timeout: float) -> Optional[AnalysisTask]:
        """Claim the oldest queued task, waiting up to ``timeout`` seconds.

        The claimed task is returned already moved to ``processing``.
        """
        ...

    @abstractmethod
    async def update_progress(self, task_id: str, progress: int) -> None:
        """Raise progress of a processing task. Lower values are ignored."""
        ...

    @abstractmethod
    async def complete(self, task_id: str, result: Dict[str, Any]) -> AnalysisTask:
        ...

    @abstractmethod
    async def fail(self, task_id: str, error: TaskError) -> AnalysisTask:
        ...

    @abstractmethod
    async def get_by_id(self, task_id: str) -> Optional[AnalysisTask]:
        ...

    @abstractmethod
    async def fail_stale(self, started_before: datetime, error: TaskError) -> int:
        """Fail tasks still processing that were claimed before the cutoff."""
        ...

    @abstractmethod
    async def purge_finished(self, finished_before: datetime) -> int:
        """Delete terminal tasks finished before the cutoff. Returns count."""
        ...

    async def close(self) -> None:
        return None


def check_transition(task: AnalysisTask, target: TaskStatus) -> None:
    if not task.status.can_transition_to(target):
        raise TaskStateError(
            f"Task {task.id} cannot move from {task.status.value} to {target.value}"
        )


def clamp_progress(progress: int) -> int:
    return max(0, min(100, int(progress)))
