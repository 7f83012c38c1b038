import asyncio
import logging
from contextlib import asynccontextmanager

import pytest

from plume_server.queues import channel as channel_module
from plume_server.queues.channel import CHANNEL, LocalChannel, PostgresChannel, asyncpg_dsn


@pytest.mark.asyncio
async def test_local_channel_fans_out_to_listeners():
    channel = LocalChannel()

    async with channel.listen() as first, channel.listen() as second:
        await channel.publish("job-1")
        assert first.get_nowait() == "job-1"
        assert second.get_nowait() == "job-1"

    await channel.publish("job-2")
    assert first.empty()


@pytest.mark.asyncio
async def test_local_channel_publish_without_listeners():
    await LocalChannel().publish("job-1")


@pytest.mark.asyncio
async def test_local_channel_keeps_duplicates_in_order():
    channel = LocalChannel()
    async with channel.listen() as signals:
        for job_id in ("a", "b", "a"):
            await channel.publish(job_id)
        received = [await asyncio.wait_for(signals.get(), 1.0) for _ in range(3)]

    assert received == ["a", "b", "a"]


def test_channel_name():
    assert CHANNEL == "jobs"
    assert LocalChannel().name == "jobs"


def test_asyncpg_dsn_strips_driver():
    assert asyncpg_dsn("postgresql+asyncpg://plume:s3cret@db:5432/plume") == "postgresql://plume:s3cret@db:5432/plume"
    assert asyncpg_dsn("postgresql://db/plume") == "postgresql://db/plume"


class RecordingConnection:
    def __init__(self):
        self.statements = []
        self.committed = False

    async def execute(self, statement, params):
        self.statements.append((str(statement), params))

    async def commit(self):
        self.committed = True


class RecordingEngine:
    def __init__(self):
        self.connection = RecordingConnection()

    @asynccontextmanager
    async def connect(self):
        yield self.connection


class FakeListenConnection:
    def __init__(self):
        self.listeners = {}
        self.termination_listeners = []
        self.closed = False

    async def add_listener(self, channel, callback):
        self.listeners[channel] = callback

    async def remove_listener(self, channel, callback):
        assert self.listeners.pop(channel) is callback

    def add_termination_listener(self, callback):
        self.termination_listeners.append(callback)

    def remove_termination_listener(self, callback):
        self.termination_listeners.remove(callback)

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_postgres_publish_notifies_jobs_channel_with_job_id():
    engine = RecordingEngine()

    await PostgresChannel(engine, "postgresql://db/plume").publish("job-1")

    statement, params = engine.connection.statements[0]
    assert "pg_notify" in statement
    assert params == {"channel": "jobs", "payload": "job-1"}
    assert engine.connection.committed is True


@pytest.mark.asyncio
async def test_postgres_listen_queues_payloads_and_cleans_up(monkeypatch, caplog):
    conn = FakeListenConnection()
    dsns = []

    async def fake_connect(dsn):
        dsns.append(dsn)
        return conn

    monkeypatch.setattr(channel_module.asyncpg, "connect", fake_connect)
    channel = PostgresChannel(RecordingEngine(), "postgresql://db/plume")

    async with channel.listen() as signals:
        notify = conn.listeners["jobs"]
        notify(conn, 1234, "jobs", "job-1")
        notify(conn, 1234, "jobs", "")
        assert signals.get_nowait() == "job-1"
        assert signals.empty()

        with caplog.at_level(logging.WARNING):
            conn.termination_listeners[0](conn)
        assert "Lost the connection" in caplog.text

    assert dsns == ["postgresql://db/plume"]
    assert conn.listeners == {}
    assert conn.termination_listeners == []
    assert conn.closed is True
