import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from rich.console import Console
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from plume_core.config import Settings
from plume_server.database import create_session_maker

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "processing": "cyan",
    "completed": "green",
    "failed": "red",
}


@asynccontextmanager
async def open_store(
    settings: Settings,
) -> AsyncGenerator[tuple[AsyncEngine, async_sessionmaker[AsyncSession]], None]:
    engine, session_maker = create_session_maker(settings.database_url)
    try:
        yield engine, session_maker
    finally:
        await engine.dispose()


def format_timestamp(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(value))


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"
