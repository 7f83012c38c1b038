"""SQLModel database entities for persistent storage.

API schemas are in the schemas/ module.
"""

from plume_server.entities.jobs import Job, JobStatus

__all__ = [
    "Job",
    "JobStatus",
]
