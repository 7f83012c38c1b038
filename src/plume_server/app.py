import logging
import traceback
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import Connection
from sqlalchemy.ext.asyncio import AsyncEngine

from alembic import command
from alembic.config import Config
from plume_core.config import Settings
from plume_server.database import create_session_maker
from plume_server.queues.dispatch import build_dispatcher
from plume_server.router import router
from plume_server.schemas.jobs import UnknownJobTypeError

logger = logging.getLogger("plume_server")


async def run_migrations(engine: AsyncEngine, alembic_config: str) -> None:
    def upgrade(connection: Connection) -> None:
        alembic_cfg = Config(alembic_config)
        alembic_cfg.attributes["connection"] = connection
        command.upgrade(alembic_cfg, "head")

    async with engine.begin() as conn:
        await conn.run_sync(upgrade)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        app_settings = settings or Settings()
        try:
            engine, session_maker = create_session_maker(app_settings.database_url)
            await run_migrations(engine, app_settings.alembic_config)
        except Exception as e:
            logger.warning(f"Failed to prepare job store: {e}")
            raise

        app.state.settings = app_settings
        app.state.engine = engine
        app.state.db_session_maker = session_maker
        app.state.dispatcher = build_dispatcher(app_settings, engine, session_maker)
        logger.info(f"Queue strategy: {app_settings.queue_strategy}")

        yield

        await app.state.dispatcher.close()
        await engine.dispose()
        logger.info("Application shutdown completed")

    app = FastAPI(
        title="Plume",
        description="Background job queue for content generation",
        lifespan=lifespan,
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, e: HTTPException) -> JSONResponse:
        logger.error(f"HTTP {e.status_code}: {e.detail} - {request.method} {request.url}")
        return JSONResponse(
            status_code=e.status_code,
            content={"detail": e.detail},
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, e: ValidationError) -> JSONResponse:
        logger.error(f"Validation error on {request.method} {request.url}: {e}")
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": e.errors(include_url=False, include_context=False)},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, e: ValueError) -> JSONResponse:
        logger.error(f"ValueError on {request.method} {request.url}: {e}")
        return JSONResponse(
            status_code=422 if isinstance(e, UnknownJobTypeError) else 400,
            content={"detail": str(e)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, e: Exception) -> JSONResponse:
        logger.error(f"Unhandled exception on {request.method} {request.url}:")
        logger.error(traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error": str(e)},
        )

    app.include_router(router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
