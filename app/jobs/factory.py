"""Builds the configured task store and worker."""

import logging
from datetime import timedelta

from app.clients.factory import build_stage_clients
from app.config import Settings
from app.jobs.memory_store import InMemoryTaskStore
from app.jobs.store import TaskStore
from app.jobs.worker import Worker
from app.pipeline.runner import AnalysisPipeline
from app.storage.completion_events import (
    CompletionListener,
    LoggingCompletionListener,
    SupabaseCompletionListener,
)
from app.storage.result_sink import NullResultSink, ResultSink, SupabaseResultSink

logger = logging.getLogger(__name__)


def build_task_store(config: Settings) -> TaskStore:
    backend = config.task_store_backend.lower()
    if backend == "memory":
        logger.info("Using in-memory task store (single process only)")
        return InMemoryTaskStore()
    if backend == "supabase":
        from app.db.supabase_client import get_supabase
        from app.jobs.supabase_store import SupabaseTaskStore

        logger.info("Using Supabase task store (table=%s)", config.task_table)
        return SupabaseTaskStore(
            get_supabase(),
            table=config.task_table,
            poll_interval=config.worker_poll_interval_s,
        )
    raise ValueError(f"Unknown TASK_STORE_BACKEND '{config.task_store_backend}'")


def needs_embedded_worker(config: Settings) -> bool:
    """The memory store is not shared across processes, so it always runs its own worker."""
    return config.run_embedded_worker or config.task_store_backend.lower() == "memory"


def build_collaborators(config: Settings):
    result_sink: ResultSink = NullResultSink()
    listener: CompletionListener = LoggingCompletionListener()
    if config.persist_results or config.publish_completion_events:
        from app.db.supabase_client import get_supabase

        client = get_supabase()
        if config.persist_results:
            result_sink = SupabaseResultSink(client)
        if config.publish_completion_events:
            listener = SupabaseCompletionListener(client)
    return result_sink, listener


def build_worker(config: Settings, store: TaskStore) -> Worker:
    """Worker wired with stage clients, pipeline and collaborators from configuration."""
    pipeline = AnalysisPipeline.from_settings(build_stage_clients(config), config)
    result_sink, listener = build_collaborators(config)
    return Worker(
        store,
        pipeline,
        pool_size=config.worker_pool_size,
        poll_interval=config.worker_poll_interval_s,
        shutdown_grace=config.worker_shutdown_grace_s,
        stale_lease=timedelta(minutes=config.worker_stale_lease_minutes),
        result_ttl=timedelta(hours=config.task_result_ttl_hours),
        result_sink=result_sink,
        completion_listener=listener,
    )
