"""Browser-facing multipart upload API.

Same tasks as the JSON endpoints, for clients that post the raw file:
  POST /upload/body-analysis   image file + optional body context fields
  POST /upload/meal-analysis   image file + optional meal type

Poll the /api/v1/tasks endpoints for progress and results.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from app.auth.supabase_auth import resolve_caller
from app.config import settings
from app.errors import ValidationError
from app.jobs.models import TaskKind
from app.jobs.submission import submit_task

router = APIRouter()

# Wired in during lifespan (same pattern as tasks.py / analysis.py)
_store = None


def set_store(store):
    global _store
    _store = store


_CHUNK_BYTES = 1024 * 1024


async def _read_upload(file: UploadFile) -> bytes:
    """Read an image upload in chunks, refusing anything over the size cap."""
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="File must be an image")

    limit = settings.max_upload_bytes
    chunks = []
    total = 0
    while True:
        chunk = await file.read(_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise HTTPException(
                status_code=413,
                detail=f"File too large (max {limit // (1024 * 1024)} MB)",
            )
        chunks.append(chunk)
    if total == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    return b"".join(chunks)


async def _submit(kind: TaskKind, data: bytes, **context) -> dict:
    if _store is None:
        raise HTTPException(status_code=503, detail="Task store not ready")
    try:
        task = await submit_task(_store, kind, image_bytes=data, **context)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return {
        "taskId": task.id,
        "status": task.status.value,
        "progress": task.progress,
        "message": "Upload received, analysis queued",
    }


@router.post("/upload/body-analysis")
async def upload_body_image(
    file: UploadFile = File(...),
    current_weight: Optional[float] = Form(None, alias="currentWeight"),
    target_weight: Optional[float] = Form(None, alias="targetWeight"),
    height: Optional[float] = Form(None),
    age: Optional[int] = Form(None),
    gender: Optional[str] = Form(None),
    activity_level: Optional[str] = Form(None, alias="activityLevel"),
    goals: Optional[List[str]] = Form(None),
    user_id: Optional[str] = Depends(resolve_caller),
):
    data = await _read_upload(file)
    return await _submit(
        TaskKind.BODY_ANALYSIS,
        data,
        user_id=user_id,
        current_weight=current_weight,
        target_weight=target_weight,
        height=height,
        age=age,
        gender=gender,
        activity_level=activity_level,
        goals=goals,
    )


@router.post("/upload/meal-analysis")
async def upload_meal_image(
    file: UploadFile = File(...),
    meal_type: Optional[str] = Form(None, alias="mealType"),
    user_id: Optional[str] = Depends(resolve_caller),
):
    data = await _read_upload(file)
    return await _submit(TaskKind.MEAL_ANALYSIS, data, user_id=user_id, meal_type=meal_type)
