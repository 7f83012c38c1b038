"""Pydantic-based settings shared by the Plume server, worker and CLI."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for Plume."""

    model_config = SettingsConfigDict(
        env_prefix="PLUME_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8010, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database settings
    database_url: str = Field(
        default="sqlite+aiosqlite:///data/plume.db",
        description="SQLAlchemy async URL of the job store (postgresql+asyncpg://... enables LISTEN/NOTIFY)",
    )
    alembic_config: str = Field(default="alembic.ini", description="Alembic config file used at startup")

    # Queue transport
    queue_strategy: Literal["postgres", "redis"] = Field(
        default="postgres", description="Job store + notify ('postgres') or the ARQ broker ('redis')"
    )
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis DSN for the ARQ broker")
    redis_queue_name: str = Field(default="generation", description="ARQ queue name")
    broker_max_tries: int = Field(default=3, description="ARQ attempts per job before giving up")
    broker_job_timeout: int = Field(default=600, description="ARQ per-job timeout in seconds")

    # Retry policy for the job store path
    max_attempts: int = Field(default=1, ge=1, description="Attempts per job before it stays failed")
    retry_backoff_base: float = Field(default=1.0, description="Base delay in seconds for exponential backoff")

    # Worker loop
    poll_interval: float = Field(default=30.0, description="Seconds between sweeps for unsignalled pending jobs")
    sweep_grace: float = Field(default=5.0, description="Minimum age in seconds of a pending job picked by a sweep")
    sweep_batch_size: int = Field(default=100, description="Maximum jobs re-signalled per sweep")
    stale_after: float = Field(default=900.0, description="Seconds before a processing job is considered abandoned")
    reap_interval: float = Field(default=60.0, description="Seconds between stale job scans (0 disables)")

    # Content generation service
    generation_base_url: str = Field(
        default="http://localhost:8020", description="Base URL of the content generation service"
    )
    generation_api_key: str | None = Field(default=None, description="Bearer token for the generation service")
    generation_timeout: float = Field(default=300.0, description="Generation request timeout in seconds")

    # Derived properties
    @property
    def is_postgres(self) -> bool:
        return self.database_url.startswith("postgresql")

    @property
    def log_format(self) -> str:
        """Log message format."""
        return "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Global settings instance
settings = Settings()
