from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Dict, Generator, List

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from alembic import command
from alembic.config import Config
from plume_core.config import Settings
from plume_server.database import create_session_maker
from plume_server.handlers import JobHandler
from plume_server.queues.channel import LocalChannel
from plume_server.queues.dispatch import Dispatcher
from plume_server.schemas.jobs import GeneratePayload

ALEMBIC_INI = Path(__file__).resolve().parents[1] / "alembic.ini"


def migrate(database_path: Path) -> None:
    sync_engine = create_engine(f"sqlite:///{database_path}", poolclass=NullPool)
    alembic_cfg = Config(str(ALEMBIC_INI))
    with sync_engine.begin() as connection:
        alembic_cfg.attributes["connection"] = connection
        command.upgrade(alembic_cfg, "head")
    sync_engine.dispose()


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    path = tmp_path / "plume.db"
    migrate(path)
    return path


@pytest.fixture
def settings(database_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{database_path}",
        alembic_config=str(ALEMBIC_INI),
        queue_strategy="postgres",
        max_attempts=1,
        retry_backoff_base=1.0,
        poll_interval=0.05,
        sweep_grace=0.0,
        reap_interval=0.0,
    )


@pytest_asyncio.fixture
async def session_maker(settings: Settings) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine, maker = create_session_maker(settings.database_url, poolclass=NullPool)
    yield maker
    await engine.dispose()


@pytest.fixture
def channel() -> LocalChannel:
    return LocalChannel()


@pytest.fixture
def dispatcher(session_maker: async_sessionmaker[AsyncSession], channel: LocalChannel) -> Dispatcher:
    return Dispatcher(session_maker, channel)


class RecordingHandler:
    """Stands in for the generation call; fails for batch ids listed in ``failing``."""

    def __init__(self) -> None:
        self.calls: List[GeneratePayload] = []
        self.failing: set[str] = set()

    async def __call__(self, payload: GeneratePayload, client: httpx.AsyncClient) -> Dict[str, Any]:
        self.calls.append(payload)
        if payload.batch_id in self.failing:
            raise RuntimeError(f"generation failed for {payload.batch_id}")
        return {"ok": True}


@pytest.fixture
def recording_handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def handlers(recording_handler: RecordingHandler) -> Dict[str, JobHandler]:
    return {"generate": JobHandler(GeneratePayload, recording_handler)}


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    def reply(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, request=request, json={"ok": True})

    async with httpx.AsyncClient(base_url="http://generation.local", transport=httpx.MockTransport(reply)) as client:
        yield client


@pytest.fixture
def app_settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'app' / 'plume.db'}",
        alembic_config=str(ALEMBIC_INI),
        queue_strategy="postgres",
    )


@pytest.fixture
def client(app_settings: Settings) -> Generator[TestClient, None, None]:
    from plume_server.app import create_app

    app = create_app(app_settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def generate_payload() -> Callable[..., Dict[str, Any]]:
    def build(batch_id: str = "B1", **extra: Any) -> Dict[str, Any]:
        return {"userId": "U1", "batchId": batch_id, **extra}

    return build
