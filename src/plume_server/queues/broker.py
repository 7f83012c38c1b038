"""Redis-backed alternate transport built on ARQ."""

import asyncio
import logging
import time
import uuid
from dataclasses import replace
from typing import Any, Dict, Optional

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from redis.exceptions import RedisError

from plume_server.entities.jobs import JobStatus
from plume_server.schemas.jobs import JobRead, JobType

logger = logging.getLogger(__name__)

RUN_JOB_FUNCTION = "run_job"


class BrokerError(RuntimeError):
    """The broker refused or could not take a job."""


class ArqBroker:
    """Enqueues jobs on an ARQ queue; retries and backoff are handled by the ARQ worker."""

    def __init__(self, redis_url: str, queue_name: str, pool: Optional[ArqRedis] = None) -> None:
        self.redis_url = redis_url
        self.queue_name = queue_name
        self._pool = pool
        self._lock = asyncio.Lock()

    async def get_pool(self) -> ArqRedis:
        if self._pool is not None:
            return self._pool
        async with self._lock:
            if self._pool is None:
                # Single connection attempt; a failure falls back to the job store.
                redis_settings = replace(RedisSettings.from_dsn(self.redis_url), conn_retries=0)
                self._pool = await create_pool(redis_settings, default_queue_name=self.queue_name)
            return self._pool

    async def enqueue(self, job_type: JobType, payload: Dict[str, Any]) -> JobRead:
        job_id = str(uuid.uuid4())
        try:
            pool = await self.get_pool()
            job = await pool.enqueue_job(
                RUN_JOB_FUNCTION,
                job_type.value,
                payload,
                _job_id=job_id,
                _queue_name=self.queue_name,
            )
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise BrokerError(f"Redis unavailable: {e}") from e
        if job is None:
            raise BrokerError(f"ARQ rejected job {job_id}")

        logger.info(f"Job {job_id} of type {job_type.value} queued on ARQ queue '{self.queue_name}'")
        now = time.time()
        return JobRead(
            id=job.job_id,
            type=job_type.value,
            payload=payload,
            status=JobStatus.PENDING.value,
            attempts=0,
            created_at=now,
            updated_at=now,
        )

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None
