"""ARQ worker for the Redis queue strategy.

Run with ``plume-worker`` and ``PLUME_QUEUE_STRATEGY=redis``, or directly:
  ``arq plume_worker.arq_worker.WorkerSettings``
"""

import logging
from datetime import timedelta
from typing import Any, Dict

from arq import Retry
from arq.connections import RedisSettings
from arq.worker import func

from plume_core.config import settings
from plume_server.handlers import default_handlers
from plume_server.handlers.generate import create_generation_client
from plume_server.queues.broker import RUN_JOB_FUNCTION
from plume_server.queues.store import backoff_delay

logger = logging.getLogger(__name__)


async def run_job(ctx: Dict[str, Any], job_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Run one ARQ attempt. Failures are retried by ARQ with exponential backoff up to ``max_tries``."""
    job_id = ctx.get("job_id")
    job_try = ctx.get("job_try", 1)
    handler = ctx["handlers"].get(job_type)
    if handler is None:
        # Nothing to retry: the type will not gain a handler between attempts.
        raise LookupError(f"No handler for job type '{job_type}'")

    logger.info(f"Processing {job_type} job {job_id} (try {job_try})")
    try:
        return await handler(payload, ctx["http_client"])
    except Exception as e:
        delay = backoff_delay(job_try, settings.retry_backoff_base)
        logger.warning(f"Job {job_id} try {job_try} failed: {e}; retrying in {delay:.1f}s")
        raise Retry(defer=delay) from e


async def startup(ctx: Dict[str, Any]) -> None:
    ctx["handlers"] = default_handlers()
    ctx["http_client"] = create_generation_client(
        settings.generation_base_url, settings.generation_api_key, settings.generation_timeout
    )
    logger.info(f"ARQ worker started on queue '{settings.redis_queue_name}'")


async def shutdown(ctx: Dict[str, Any]) -> None:
    client = ctx.get("http_client")
    if client is not None:
        await client.aclose()
    logger.info("ARQ worker stopped")


class WorkerSettings:
    functions = [func(run_job, name=RUN_JOB_FUNCTION)]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.redis_queue_name
    max_jobs = 1
    max_tries = settings.broker_max_tries
    job_timeout = timedelta(seconds=settings.broker_job_timeout)
