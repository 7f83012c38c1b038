"""Job queue schemas."""

from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class JobType(str, Enum):
    """Job types."""

    GENERATE = "generate"


class UnknownJobTypeError(ValueError):
    """Raised when a job type tag has no payload contract."""


class GeneratePayload(BaseModel):
    """Payload of a content generation job."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    user_id: str = Field(alias="userId", min_length=1)
    batch_id: str = Field(alias="batchId", min_length=1)
    brand_profile_id: Optional[str] = Field(default=None, alias="brandProfileId")


PAYLOAD_MODELS: Dict[JobType, Type[BaseModel]] = {
    JobType.GENERATE: GeneratePayload,
}


def parse_job_type(job_type: str | JobType) -> JobType:
    try:
        return JobType(job_type)
    except ValueError:
        raise UnknownJobTypeError(f"Unknown job type: {job_type}") from None


def validate_payload(job_type: JobType, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Check a payload against its job type's contract.

    The contract only checks structure; the document is stored exactly as submitted.
    """
    model = PAYLOAD_MODELS.get(job_type)
    if model is None:
        raise UnknownJobTypeError(f"No payload contract for job type: {job_type.value}")
    model.model_validate(payload)
    return dict(payload)


class JobCreate(BaseModel):
    """Job enqueue request."""

    type: JobType
    payload: Dict[str, Any] = Field(default_factory=dict)


class JobRead(BaseModel):
    """Job response model."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    payload: Dict[str, Any]
    status: str
    attempts: int
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: float
    updated_at: float


class JobList(BaseModel):
    object: str = "list"
    data: List[JobRead]
    has_more: bool = False
