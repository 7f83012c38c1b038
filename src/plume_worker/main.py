"""Worker process entry point.

``PLUME_QUEUE_STRATEGY=postgres`` (default) runs the jobs table worker; ``redis`` runs the ARQ worker.
"""

import asyncio
import logging
import signal
import sys

import asyncpg
from arq import run_worker
from sqlalchemy.exc import SQLAlchemyError

from plume_core.config import Settings
from plume_server.database import create_session_maker
from plume_server.handlers import default_handlers
from plume_server.handlers.generate import create_generation_client
from plume_server.queues.channel import create_channel
from plume_worker.worker import Worker

logger = logging.getLogger(__name__)


async def run_table_worker(settings: Settings) -> None:
    engine, session_maker = create_session_maker(settings.database_url)
    client = create_generation_client(
        settings.generation_base_url, settings.generation_api_key, settings.generation_timeout
    )
    worker = Worker(session_maker, create_channel(settings, engine), default_handlers(), client, settings)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await worker.run(stop)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await client.aclose()
        await engine.dispose()


def main() -> None:
    settings = Settings()
    logging.basicConfig(level=settings.log_level, format=settings.log_format)

    if settings.queue_strategy == "redis":
        from plume_worker.arq_worker import WorkerSettings

        logger.info("Starting ARQ worker")
        run_worker(WorkerSettings)
        return

    logger.info("Starting jobs table worker")
    try:
        asyncio.run(run_table_worker(settings))
    except (SQLAlchemyError, asyncpg.PostgresError, OSError):
        logger.exception("Fatal job store error, exiting")
        sys.exit(1)
    logger.info("Goodbye")


if __name__ == "__main__":
    main()
