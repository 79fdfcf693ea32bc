"""Standalone worker process.

Runs the analysis worker against the shared task store until SIGINT/SIGTERM,
then stops claiming, lets in-flight tasks finish within the grace period and
cancels the rest.

    analysis-worker            # console script
    python -m app.worker_main
"""

import asyncio
import logging
import signal

from app.config import settings
from app.jobs.factory import build_task_store, build_worker
from app.logging_config import configure_logging

logger = logging.getLogger(__name__)


async def run_worker() -> None:
    if settings.task_store_backend.lower() == "memory":
        logger.warning(
            "TASK_STORE_BACKEND=memory is not shared with the API process; "
            "this worker will only see tasks it enqueues itself"
        )

    store = build_task_store(settings)
    worker = build_worker(settings, store)

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C raises KeyboardInterrupt
            pass

    await worker.start()
    try:
        await stop_requested.wait()
        logger.info("Shutdown requested")
    finally:
        await worker.stop()
        await store.close()


def main() -> None:
    configure_logging(settings.log_level)
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")


if __name__ == "__main__":
    main()
