"""Status/result interface: read-only views of a task by id."""

from datetime import datetime
from typing import Any, Dict, Optional

from app.errors import TaskNotFoundError
from app.jobs.models import AnalysisTask, TaskError, TaskKind, TaskStatus
from app.jobs.store import TaskStore
from app.pipeline.schemas import CamelModel


class TaskStatusView(CamelModel):
    task_id: str
    kind: TaskKind
    status: TaskStatus
    progress: int
    created_at: datetime
    finished_at: Optional[datetime] = None
    # Only one of these is ever set, and only for terminal tasks
    result: Optional[Dict[str, Any]] = None
    error: Optional[TaskError] = None


class TaskResultView(CamelModel):
    task_id: str
    status: TaskStatus
    ready: bool
    result: Optional[Dict[str, Any]] = None
    error: Optional[TaskError] = None


async def _load(store: TaskStore, task_id: str) -> AnalysisTask:
    task = await store.get_by_id(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task


async def get_task_status(store: TaskStore, task_id: str, include_result: bool = False) -> TaskStatusView:
    task = await _load(store, task_id)
    view = TaskStatusView(
        task_id=task.id,
        kind=task.kind,
        status=task.status,
        progress=task.progress,
        created_at=task.created_at,
        finished_at=task.finished_at,
    )
    if task.status == TaskStatus.FAILED:
        view.error = task.error
    elif task.status == TaskStatus.COMPLETED and include_result:
        view.result = task.result
    return view


async def get_task_result(store: TaskStore, task_id: str) -> TaskResultView:
    task = await _load(store, task_id)
    if task.status == TaskStatus.COMPLETED:
        return TaskResultView(task_id=task.id, status=task.status, ready=True, result=task.result)
    if task.status == TaskStatus.FAILED:
        return TaskResultView(task_id=task.id, status=task.status, ready=True, error=task.error)
    return TaskResultView(task_id=task.id, status=task.status, ready=False)
