"""Completion events for downstream consumers (e.g. experience-point awards).

The pipeline only announces that a completed task of a given kind occurred;
scoring rules live with the consumer.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.jobs.models import AnalysisTask, TaskKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionEvent:
    task_id: str
    kind: TaskKind
    user_id: Optional[str]
    finished_at: datetime

    @classmethod
    def from_task(cls, task: AnalysisTask) -> "CompletionEvent":
        return cls(
            task_id=task.id,
            kind=task.kind,
            user_id=task.user_id,
            finished_at=task.finished_at or task.created_at,
        )


class CompletionListener(ABC):
    @abstractmethod
    async def on_completed(self, event: CompletionEvent) -> None:
        ...


class LoggingCompletionListener(CompletionListener):
    async def on_completed(self, event: CompletionEvent) -> None:
        logger.info(
            "Task %s (%s) completed for user %s",
            event.task_id, event.kind.value, event.user_id or "-",
        )


class SupabaseCompletionListener(CompletionListener):
    """Writes events to an outbox table that the awarding service consumes."""

    def __init__(self, client, table: str = "task_completion_events"):
        self._client = client
        self._table = table

    async def on_completed(self, event: CompletionEvent) -> None:
        self._client.table(self._table).insert({
            "task_id": event.task_id,
            "kind": event.kind.value,
            "user_id": event.user_id,
            "finished_at": event.finished_at.isoformat(),
        }).execute()
