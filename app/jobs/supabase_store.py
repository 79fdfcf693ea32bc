"""Durable task store backed by a Supabase (Postgres) table.

Producer and worker may run in different processes or hosts; the table is the
only thing they share. Expected schema:

    create table analysis_tasks (
        id text primary key,
        kind text not null,
        status text not null,
        progress integer not null default 0,
        input jsonb not null,
        result jsonb,
        error jsonb,
        created_at timestamptz not null,
        started_at timestamptz,
        finished_at timestamptz,
        worker_id text
    );
    create index on analysis_tasks (status, created_at);

Claims use a conditional update (``status = 'queued'``) so two workers can
never both own a task. Terminal writes are conditioned on the current status
for the same reason.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.errors import TaskNotFoundError, TaskStateError
from app.jobs.models import AnalysisTask, TaskError, TaskStatus, utcnow
from app.jobs.store import CLAIMED_PROGRESS, TaskStore, clamp_progress

logger = logging.getLogger(__name__)

# Candidates fetched per claim attempt; losing a race just moves to the next one.
_CLAIM_BATCH = 5


class SupabaseTaskStore(TaskStore):
    def __init__(self, client, table: str = "analysis_tasks", poll_interval: float = 1.0):
        self._client = client
        self._table = table
        self._poll_interval = poll_interval

    def _query(self):
        return self._client.table(self._table)

    async def enqueue(self, task: AnalysisTask) -> str:
        self._query().insert(_to_row(task)).execute()
        return task.id

    async def dequeue(self, worker_id: str, timeout: float) -> Optional[AnalysisTask]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            task = self._try_claim(worker_id)
            if task is not None:
                return task
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(self._poll_interval, remaining))

    def _try_claim(self, worker_id: str) -> Optional[AnalysisTask]:
        candidates = (
            self._query()
            .select("id")
            .eq("status", TaskStatus.QUEUED.value)
            .order("created_at")
            .limit(_CLAIM_BATCH)
            .execute()
        )
        for row in candidates.data or []:
            claimed = (
                self._query()
                .update({
                    "status": TaskStatus.PROCESSING.value,
                    "progress": CLAIMED_PROGRESS,
                    "started_at": utcnow().isoformat(),
                    "worker_id": worker_id,
                })
                .eq("id", row["id"])
                .eq("status", TaskStatus.QUEUED.value)
                .execute()
            )
            if claimed.data:
                return _from_row(claimed.data[0])
            logger.debug("Lost claim race for task %s", row["id"])
        return None

    async def update_progress(self, task_id: str, progress: int) -> None:
        progress = clamp_progress(progress)
        (
            self._query()
            .update({"progress": progress})
            .eq("id", task_id)
            .eq("status", TaskStatus.PROCESSING.value)
            .lt("progress", progress)
            .execute()
        )

    async def complete(self, task_id: str, result: Dict[str, Any]) -> AnalysisTask:
        return self._finish(task_id, TaskStatus.COMPLETED, {
            "status": TaskStatus.COMPLETED.value,
            "progress": 100,
            "result": result,
            "finished_at": utcnow().isoformat(),
        }, allowed_from=[TaskStatus.PROCESSING])

    async def fail(self, task_id: str, error: TaskError) -> AnalysisTask:
        return self._finish(task_id, TaskStatus.FAILED, {
            "status": TaskStatus.FAILED.value,
            "error": error.model_dump(),
            "finished_at": utcnow().isoformat(),
        }, allowed_from=[TaskStatus.QUEUED, TaskStatus.PROCESSING])

    def _finish(
        self,
        task_id: str,
        target: TaskStatus,
        values: Dict[str, Any],
        allowed_from: List[TaskStatus],
    ) -> AnalysisTask:
        response = (
            self._query()
            .update(values)
            .eq("id", task_id)
            .in_("status", [s.value for s in allowed_from])
            .execute()
        )
        if response.data:
            return _from_row(response.data[0])

        current = self._fetch(task_id)
        if current is None:
            raise TaskNotFoundError(task_id)
        raise TaskStateError(
            f"Task {task_id} cannot move from {current.status.value} to {target.value}"
        )

    async def get_by_id(self, task_id: str) -> Optional[AnalysisTask]:
        return self._fetch(task_id)

    def _fetch(self, task_id: str) -> Optional[AnalysisTask]:
        response = self._query().select("*").eq("id", task_id).limit(1).execute()
        if not response.data:
            return None
        return _from_row(response.data[0])

    async def fail_stale(self, started_before: datetime, error: TaskError) -> int:
        response = (
            self._query()
            .update({
                "status": TaskStatus.FAILED.value,
                "error": error.model_dump(),
                "finished_at": utcnow().isoformat(),
            })
            .eq("status", TaskStatus.PROCESSING.value)
            .lt("started_at", started_before.isoformat())
            .execute()
        )
        return len(response.data or [])

    async def purge_finished(self, finished_before: datetime) -> int:
        response = (
            self._query()
            .delete()
            .in_("status", [TaskStatus.COMPLETED.value, TaskStatus.FAILED.value])
            .lt("finished_at", finished_before.isoformat())
            .execute()
        )
        return len(response.data or [])


def _to_row(task: AnalysisTask) -> Dict[str, Any]:
    return task.model_dump(mode="json")


def _from_row(row: Dict[str, Any]) -> AnalysisTask:
    return AnalysisTask.model_validate(row)
