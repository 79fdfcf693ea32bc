"""Task query API: poll status and fetch results of submitted analyses."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from app.errors import TaskNotFoundError
from app.jobs.status import get_task_result, get_task_status

router = APIRouter()

# Set by main.py during lifespan
_store = None


def set_store(store):
    global _store
    _store = store


def _require_store():
    if _store is None:
        raise HTTPException(status_code=503, detail="Task store not initialized")
    return _store


@router.get("/tasks/{task_id}/status")
async def task_status(task_id: str):
    """Status and progress (0-100) of a task. Failed tasks include their error."""
    store = _require_store()
    try:
        view = await get_task_status(store, task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    return view.model_dump(mode="json", by_alias=True)


@router.get("/tasks/{task_id}/result")
async def task_result(task_id: str):
    """Final report of a task.

    202 while the task is still queued or processing. A failed task answers
    200 with ``ready: true`` and the error instead of a result.
    """
    store = _require_store()
    try:
        view = await get_task_result(store, task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)

    body = view.model_dump(mode="json", by_alias=True)
    if not view.ready:
        return JSONResponse(status_code=202, content=body)
    return body


@router.get("/tasks/{task_id}")
async def task_info(task_id: str):
    """Status plus the result once completed."""
    store = _require_store()
    try:
        view = await get_task_status(store, task_id, include_result=True)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message)
    return view.model_dump(mode="json", by_alias=True)
