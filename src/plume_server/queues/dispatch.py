"""Single entry point for producers to submit background work."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from plume_core.config import Settings
from plume_server.database import get_session
from plume_server.queues import store
from plume_server.queues.broker import ArqBroker, BrokerError
from plume_server.queues.channel import NotificationChannel, create_channel
from plume_server.schemas.jobs import JobRead, JobType, parse_job_type, validate_payload

logger = logging.getLogger(__name__)


class Dispatcher:
    """Records jobs durably, then signals the worker.

    The row is committed before the notification goes out, so a lost signal only costs
    latency. With a broker configured, jobs go to the broker and fall back to the job
    store when it refuses them.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        channel: NotificationChannel,
        broker: Optional[ArqBroker] = None,
    ) -> None:
        self.session_maker = session_maker
        self.channel = channel
        self.broker = broker

    async def enqueue(self, job_type: str | JobType, payload: Dict[str, Any]) -> JobRead:
        kind = parse_job_type(job_type)
        document = validate_payload(kind, payload)

        if self.broker is not None:
            try:
                return await self.broker.enqueue(kind, document)
            except BrokerError as e:
                logger.warning(f"Broker enqueue failed, falling back to job store: {e}")

        async with get_session(self.session_maker) as session:
            job = await store.create(session, kind, document)
            created = JobRead.model_validate(job)
        logger.info(f"Job {created.id} of type {kind.value} queued for processing by worker")

        await self.notify(created.id)
        return created

    async def notify(self, job_id: str) -> None:
        try:
            await self.channel.publish(job_id)
        except Exception as e:
            logger.warning(f"Notify failed for job {job_id}: {e}")

    async def close(self) -> None:
        if self.broker is not None:
            await self.broker.close()


def build_dispatcher(
    settings: Settings,
    engine: AsyncEngine,
    session_maker: async_sessionmaker[AsyncSession],
) -> Dispatcher:
    broker = None
    if settings.queue_strategy == "redis":
        broker = ArqBroker(settings.redis_url, settings.redis_queue_name)
    return Dispatcher(session_maker, create_channel(settings, engine), broker)
