"""Wake-up signals between producers and the worker.

A signal carries only a job id. It is a latency hint: the jobs table stays the source of
truth, and the worker tolerates duplicate, stale and missing signals.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Protocol

import asyncpg
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine

from plume_core.config import Settings

logger = logging.getLogger(__name__)

CHANNEL = "jobs"


class NotificationChannel(Protocol):
    async def publish(self, job_id: str) -> None: ...

    def listen(self) -> Any:
        """Async context manager yielding an ``asyncio.Queue`` of job ids."""
        ...


class PostgresChannel:
    """PostgreSQL LISTEN/NOTIFY on the ``jobs`` channel."""

    def __init__(self, engine: AsyncEngine, dsn: str, name: str = CHANNEL) -> None:
        self.engine = engine
        self.dsn = dsn
        self.name = name

    async def publish(self, job_id: str) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT pg_notify(:channel, :payload)"), {"channel": self.name, "payload": job_id})
            await conn.commit()

    @asynccontextmanager
    async def listen(self) -> AsyncIterator[asyncio.Queue[str]]:
        queue: asyncio.Queue[str] = asyncio.Queue()

        def on_notify(_conn: Any, _pid: int, _channel: str, payload: str) -> None:
            if payload:
                queue.put_nowait(payload)

        def on_terminate(_conn: Any) -> None:
            logger.warning(f"Lost the connection listening on '{self.name}'; new jobs are only seen by the sweep")

        conn = await asyncpg.connect(self.dsn)
        conn.add_termination_listener(on_terminate)
        try:
            await conn.add_listener(self.name, on_notify)
            logger.info(f"Listening on Postgres channel '{self.name}'")
            yield queue
        finally:
            conn.remove_termination_listener(on_terminate)
            try:
                if not conn.is_closed():
                    await conn.remove_listener(self.name, on_notify)
            finally:
                await conn.close()


class LocalChannel:
    """In-process fan-out for databases without LISTEN/NOTIFY.

    Only listeners in the publishing process are woken; the worker's sweep picks up the rest.
    """

    def __init__(self, name: str = CHANNEL) -> None:
        self.name = name
        self._listeners: list[asyncio.Queue[str]] = []

    async def publish(self, job_id: str) -> None:
        for queue in list(self._listeners):
            queue.put_nowait(job_id)

    @asynccontextmanager
    async def listen(self) -> AsyncIterator[asyncio.Queue[str]]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        self._listeners.append(queue)
        try:
            yield queue
        finally:
            self._listeners.remove(queue)


def asyncpg_dsn(database_url: str) -> str:
    """Turn a SQLAlchemy ``postgresql+asyncpg://`` URL into a DSN asyncpg accepts."""
    url = make_url(database_url).set(drivername="postgresql")
    return url.render_as_string(hide_password=False)


def create_channel(settings: Settings, engine: AsyncEngine) -> NotificationChannel:
    if settings.is_postgres:
        return PostgresChannel(engine, asyncpg_dsn(settings.database_url))
    logger.info("Database has no LISTEN/NOTIFY, using in-process notifications")
    return LocalChannel()
