"""Task record data model for async analysis processing."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def can_transition_to(self, target: "TaskStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    TaskStatus.QUEUED: {TaskStatus.PROCESSING, TaskStatus.FAILED},
    TaskStatus.PROCESSING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


class TaskKind(str, Enum):
    BODY_ANALYSIS = "body_analysis"
    MEAL_ANALYSIS = "meal_analysis"


class TaskInput(BaseModel):
    """Submitted payload plus caller context. Never modified after enqueue."""
    image: Optional[str] = None  # normalized base64 JPEG, no data-URL prefix
    text: Optional[str] = None
    current_weight: Optional[float] = None
    target_weight: Optional[float] = None
    height: Optional[float] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    activity_level: Optional[str] = None
    goals: List[str] = Field(default_factory=list)
    meal_type: Optional[str] = None
    servings: float = 1.0
    user_id: Optional[str] = None

    model_config = {"frozen": True}


class TaskError(BaseModel):
    code: str
    message: str
    stage: Optional[str] = None


class AnalysisTask(BaseModel):
    """Tracks the lifecycle of one chained analysis task."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: TaskKind
    status: TaskStatus = TaskStatus.QUEUED
    progress: int = 0
    input: TaskInput
    result: Optional[Dict[str, Any]] = None
    error: Optional[TaskError] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    worker_id: Optional[str] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.input.user_id
