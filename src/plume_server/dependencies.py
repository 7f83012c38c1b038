from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from plume_server.database import get_session
from plume_server.queues.dispatch import Dispatcher


async def get_readonly_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with get_session(request.app.state.db_session_maker, read_only=True) as session:
        yield session


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher
