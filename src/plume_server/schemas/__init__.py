"""Pydantic API schemas for request/response models.
Database models are in the entities/ module.
"""

from .jobs import GeneratePayload, JobCreate, JobList, JobRead, JobType

__all__ = [
    "GeneratePayload",
    "JobCreate",
    "JobList",
    "JobRead",
    "JobType",
]
