"""Job queue entities."""

import enum
import time
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Index
from sqlmodel import Field, SQLModel


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(SQLModel, table=True):
    """Durable record of one unit of background work."""

    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_status", "status"),
        Index("ix_jobs_created_at", "created_at"),
        Index("ix_jobs_status_created_at", "status", "created_at"),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    type: str
    payload: Dict[str, Any] = Field(sa_type=JSON)
    status: str = Field(default=JobStatus.PENDING.value)
    attempts: int = Field(default=0)
    result: Optional[Dict[str, Any]] = Field(default=None, sa_type=JSON)
    error: Optional[str] = None
    run_after: Optional[float] = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
