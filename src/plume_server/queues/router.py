import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from plume_server.dependencies import get_dispatcher, get_readonly_db_session
from plume_server.entities.jobs import JobStatus
from plume_server.queues import store
from plume_server.queues.dispatch import Dispatcher
from plume_server.schemas.jobs import JobCreate, JobList, JobRead, JobType

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1", tags=["jobs"])


@router.post("/jobs")
async def create_job(request: JobCreate, dispatcher: Dispatcher = Depends(get_dispatcher)) -> JobRead:
    """Queue a job. Processing happens in the worker; poll the job to learn its outcome."""
    return await dispatcher.enqueue(request.type, request.payload)


@router.get("/jobs")
async def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    type: Optional[JobType] = Query(None, description="Filter by job type"),
    limit: int = Query(10, ge=1, le=100, description="Max number of jobs to return"),
    session: AsyncSession = Depends(get_readonly_db_session),
) -> JobList:
    """List the most recently created jobs."""
    jobs = await store.list_recent(
        session,
        limit=limit + 1,
        status=status.value if status else None,
        job_type=type.value if type else None,
    )
    return JobList(data=[JobRead.model_validate(job) for job in jobs[:limit]], has_more=len(jobs) > limit)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, session: AsyncSession = Depends(get_readonly_db_session)) -> JobRead:
    """Get a specific job by ID."""
    job = await store.get(session, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobRead.model_validate(job)
