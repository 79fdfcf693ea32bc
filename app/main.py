"""BodyScan Compute Backend - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.logging_config import configure_logging
from app.api.v1.router import v1_router, upload_router_compat
from app.api.v1.health import router as health_root_router
from app.api.v1 import analysis as analysis_api
from app.api.v1 import health as health_api
from app.api.v1 import tasks as tasks_api
from app.api.v1 import upload as upload_api
from app.jobs.factory import build_task_store, build_worker, needs_embedded_worker
from app.jobs.models import utcnow

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting BodyScan Compute Backend on port %s", settings.compute_port)
    logger.info("Task store backend: %s", settings.task_store_backend)

    store = build_task_store(settings)

    # The memory store only works with a worker in this process
    worker = None
    if needs_embedded_worker(settings):
        worker = build_worker(settings, store)
        await worker.start()
        logger.info("Embedded worker started")
    else:
        logger.info("No embedded worker; run `analysis-worker` to process tasks")

    # Wire store and worker into API endpoints
    tasks_api.set_store(store)
    analysis_api.set_store(store)
    upload_api.set_store(store)
    health_api.set_worker(worker)

    yield

    logger.info("Shutting down BodyScan Compute Backend")
    if worker is not None:
        await worker.stop()
    purged = await store.purge_finished(utcnow() - timedelta(hours=settings.task_result_ttl_hours))
    if purged:
        logger.info("Purged %d expired task(s)", purged)
    await store.close()

    tasks_api.set_store(None)
    analysis_api.set_store(None)
    upload_api.set_store(None)
    health_api.set_worker(None)


app = FastAPI(
    title="BodyScan Compute Service",
    description="Asynchronous two-stage body and meal image analysis",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: frontend dev servers and any configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
app.include_router(upload_router_compat)  # /upload/* multipart layer
