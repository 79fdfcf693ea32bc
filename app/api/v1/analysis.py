"""Body and meal analysis submission endpoints.

Each endpoint validates the payload, queues a task and returns its id
immediately. Poll GET /api/v1/tasks/{id}/status for progress.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from app.auth.supabase_auth import resolve_caller
from app.errors import ValidationError
from app.jobs.models import TaskKind
from app.jobs.submission import submit_task
from app.pipeline.schemas import CamelModel

router = APIRouter()

# Set by main.py during lifespan (same pattern as tasks.py)
_store = None


def set_store(store):
    global _store
    _store = store


class BodyAnalysisRequest(CamelModel):
    image: str
    current_weight: Optional[float] = None
    target_weight: Optional[float] = None
    height: Optional[float] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    activity_level: Optional[str] = None
    goals: List[str] = Field(default_factory=list)


class MealImageRequest(CamelModel):
    image: str
    meal_type: Optional[str] = None


class MealManualRequest(CamelModel):
    ingredients: str
    servings: float = 1.0
    meal_type: Optional[str] = None


class TaskSubmitResponse(CamelModel):
    task_id: str
    status: str


async def _submit(kind: TaskKind, **payload) -> dict:
    if _store is None:
        raise HTTPException(status_code=503, detail="Task store not initialized")
    try:
        task = await submit_task(_store, kind, **payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return TaskSubmitResponse(task_id=task.id, status=task.status.value).model_dump(by_alias=True)


@router.post("/body-analysis")
async def analyze_body(request: BodyAnalysisRequest, user_id: Optional[str] = Depends(resolve_caller)):
    """Queue a body composition analysis of a base64 photo."""
    return await _submit(
        TaskKind.BODY_ANALYSIS,
        image=request.image,
        user_id=user_id,
        current_weight=request.current_weight,
        target_weight=request.target_weight,
        height=request.height,
        age=request.age,
        gender=request.gender,
        activity_level=request.activity_level,
        goals=request.goals,
    )


@router.post("/meal-analysis/image")
async def analyze_meal_image(request: MealImageRequest, user_id: Optional[str] = Depends(resolve_caller)):
    """Queue a meal analysis of a base64 food photo."""
    return await _submit(
        TaskKind.MEAL_ANALYSIS,
        image=request.image,
        user_id=user_id,
        meal_type=request.meal_type,
    )


@router.post("/meal-analysis/manual")
async def analyze_meal_manual(request: MealManualRequest, user_id: Optional[str] = Depends(resolve_caller)):
    """Queue a meal analysis from a free-text ingredient description."""
    if request.servings <= 0:
        raise HTTPException(status_code=400, detail="servings must be positive")
    return await _submit(
        TaskKind.MEAL_ANALYSIS,
        text=request.ingredients,
        user_id=user_id,
        servings=request.servings,
        meal_type=request.meal_type,
    )
