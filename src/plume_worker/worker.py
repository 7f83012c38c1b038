"""Worker that turns pending jobs into terminal state.

Wakes on notification channel signals. An APScheduler sweep re-signals pending jobs every
``poll_interval`` seconds so jobs whose signal was lost still make progress, and a reaper
recovers jobs left in processing by a dead worker.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from plume_core.config import Settings
from plume_server.database import get_session
from plume_server.entities.jobs import JobStatus
from plume_server.handlers import JobHandler
from plume_server.queues import store
from plume_server.queues.channel import NotificationChannel

logger = logging.getLogger(__name__)


class Worker:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        channel: NotificationChannel,
        handlers: Dict[str, JobHandler],
        client: httpx.AsyncClient,
        settings: Settings,
    ) -> None:
        self.session_maker = session_maker
        self.channel = channel
        self.handlers = handlers
        self.client = client
        self.settings = settings

    async def process_job(self, job_id: str) -> Optional[JobStatus]:
        """Run one attempt of a job.

        Returns the status the job ended in, or None when the signal was stale and nothing changed.
        """
        async with get_session(self.session_maker) as session:
            job = await store.get(session, job_id)
            if job is None:
                logger.debug(f"Ignoring signal for unknown job {job_id}")
                return None
            if job.status != JobStatus.PENDING.value:
                logger.debug(f"Ignoring signal for job {job_id} in status {job.status}")
                return None
            if job.run_after is not None and job.run_after > time.time():
                logger.debug(f"Job {job_id} is not due until {job.run_after:.0f}")
                return None
            if not await store.claim(session, job_id):
                logger.info(f"Job {job_id} was claimed by another worker")
                return None
            job_type, payload = job.type, dict(job.payload)

        logger.info(f"Processing {job_type} job {job_id}")
        try:
            handler = self.handlers.get(job_type)
            if handler is None:
                raise LookupError(f"No handler for job type '{job_type}'")
            result = await handler(payload, self.client)
        except Exception as e:
            logger.exception(f"Job {job_id} failed")
            async with get_session(self.session_maker) as session:
                return await store.fail(
                    session,
                    job_id,
                    str(e) or type(e).__name__,
                    max_attempts=self.settings.max_attempts,
                    backoff_base=self.settings.retry_backoff_base,
                )

        async with get_session(self.session_maker) as session:
            completed = await store.complete(session, job_id, result or {"ok": True})
        if not completed:
            logger.warning(f"Job {job_id} left processing before it could be completed")
            return None
        logger.info(f"Job {job_id} completed")
        return JobStatus.COMPLETED

    async def enqueue_due(self, signals: asyncio.Queue[str]) -> int:
        """Queue pending jobs that no signal has delivered.

        Ids go through the signal queue so jobs still run one at a time on the main loop.
        """
        async with get_session(self.session_maker, read_only=True) as session:
            job_ids = await store.list_due(
                session,
                now=time.time(),
                grace=self.settings.sweep_grace,
                limit=self.settings.sweep_batch_size,
            )
        if job_ids:
            logger.info(f"Sweep found {len(job_ids)} pending job(s)")
        for job_id in job_ids:
            signals.put_nowait(job_id)
        return len(job_ids)

    async def reap(self) -> int:
        async with get_session(self.session_maker) as session:
            return await store.reap_stale(
                session,
                now=time.time(),
                stale_after=self.settings.stale_after,
                max_attempts=self.settings.max_attempts,
            )

    def _schedule_maintenance(self, scheduler: AsyncIOScheduler, signals: asyncio.Queue[str]) -> None:
        """Register the recovery sweep and the stale job reaper."""
        scheduler.add_job(
            self.enqueue_due,
            "interval",
            seconds=self.settings.poll_interval,
            args=[signals],
            id="sweeper",
            max_instances=1,
            coalesce=True,
        )
        if self.settings.reap_interval > 0:
            scheduler.add_job(
                self.reap,
                "interval",
                seconds=self.settings.reap_interval,
                id="reaper",
                max_instances=1,
                coalesce=True,
            )

    async def run(self, stop: asyncio.Event) -> None:
        """Listen and process until ``stop`` is set.

        Job store errors propagate; handler errors are recorded on the job.
        """
        async with self.channel.listen() as signals:
            logger.info("Worker listening for jobs")
            if self.settings.reap_interval > 0:
                await self.reap()
            await self.enqueue_due(signals)

            scheduler = AsyncIOScheduler()
            self._schedule_maintenance(scheduler, signals)
            scheduler.start()
            try:
                while not stop.is_set():
                    job_id = await self._next_signal(signals, stop)
                    if job_id is not None and not stop.is_set():
                        await self.process_job(job_id)
            finally:
                scheduler.shutdown(wait=False)

        logger.info("Worker stopped")

    @staticmethod
    async def _next_signal(signals: asyncio.Queue[str], stop: asyncio.Event) -> Optional[str]:
        get_task: asyncio.Task[Any] = asyncio.ensure_future(signals.get())
        stop_task: asyncio.Task[Any] = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (get_task, stop_task):
                if not task.done():
                    task.cancel()
        if get_task.done() and not get_task.cancelled():
            return get_task.result()
        return None
