"""Hand-off of completed reports to long-term storage.

The task store only keeps the transient lifecycle record; finished analyses
are owned by the account-facing persistence layer.
"""

import logging
from abc import ABC, abstractmethod

from app.jobs.models import AnalysisTask, TaskKind

logger = logging.getLogger(__name__)


class ResultSink(ABC):
    @abstractmethod
    async def save(self, task: AnalysisTask) -> None:
        """Store the result of a completed task against its user."""
        ...


class NullResultSink(ResultSink):
    async def save(self, task: AnalysisTask) -> None:
        return None


class SupabaseResultSink(ResultSink):
    TABLES = {
        TaskKind.BODY_ANALYSIS: "body_analyses",
        TaskKind.MEAL_ANALYSIS: "meal_analyses",
    }

    def __init__(self, client):
        self._client = client

    async def save(self, task: AnalysisTask) -> None:
        if task.result is None:
            return
        table = self.TABLES[task.kind]
        row = {
            "task_id": task.id,
            "user_id": task.user_id,
            "report": task.result,
            "ai_confidence": task.result.get("confidence"),
            "created_at": (task.finished_at or task.created_at).isoformat(),
        }
        if task.kind == TaskKind.BODY_ANALYSIS:
            row["body_type"] = task.result.get("bodyType")
        else:
            row["meal_type"] = task.result.get("mealType")
            row["total_calories"] = task.result.get("totalCalories")
        self._client.table(table).insert(row).execute()
        logger.info("Stored %s result for task %s in %s", task.kind.value, task.id, table)
