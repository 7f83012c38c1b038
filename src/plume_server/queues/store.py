import logging
import time
from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from plume_server.entities.jobs import Job, JobStatus
from plume_server.schemas.jobs import JobType

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = frozenset({"status", "attempts", "result", "error", "run_after"})

# Forward-only moves inside one attempt. PROCESSING -> PENDING is the start of a retry.
TRANSITIONS: Dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.PENDING}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def backoff_delay(attempt: int, base: float) -> float:
    """Exponential delay before retry number ``attempt`` (1-based)."""
    return base * 2 ** max(attempt - 1, 0)


async def create(session: AsyncSession, job_type: JobType, payload: Dict[str, Any]) -> Job:
    """Insert a pending job. The caller's session commits it."""
    now = time.time()
    job = Job(
        type=job_type.value,
        payload=payload,
        status=JobStatus.PENDING.value,
        attempts=0,
        created_at=now,
        updated_at=now,
    )
    session.add(job)
    await session.flush()
    await session.refresh(job)
    return job


async def get(session: AsyncSession, job_id: str) -> Optional[Job]:
    return await session.get(Job, job_id, populate_existing=True)


async def update(
    session: AsyncSession,
    job_id: str,
    *,
    expected_status: Optional[JobStatus] = None,
    **patch: Any,
) -> bool:
    """Apply a partial update in one statement.

    With ``expected_status`` the update only happens while the row still has that status,
    so concurrent writers cannot both win. Status changes always need it. Returns whether a row changed.
    """
    unknown = set(patch) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Job fields cannot be updated: {', '.join(sorted(unknown))}")

    attempts = patch.get("attempts")
    if isinstance(attempts, int) and attempts < 0:
        raise ValueError(f"Job attempts cannot be negative: {attempts}")

    if "status" in patch:
        new_status = JobStatus(patch["status"])
        if expected_status is None:
            raise ValueError("Job status changes require expected_status")
        if new_status not in TRANSITIONS[expected_status]:
            raise ValueError(f"Invalid job transition {expected_status.value} -> {new_status.value}")
        patch["status"] = new_status.value

    stmt = sa.update(Job).where(col(Job.id) == job_id)
    if expected_status is not None:
        stmt = stmt.where(col(Job.status) == expected_status.value)
    stmt = stmt.values(**patch, updated_at=time.time()).execution_options(synchronize_session=False)

    result = await session.execute(stmt)
    return result.rowcount == 1


async def claim(session: AsyncSession, job_id: str) -> bool:
    """Move a pending job to processing and count the attempt, atomically."""
    return await update(
        session,
        job_id,
        expected_status=JobStatus.PENDING,
        status=JobStatus.PROCESSING,
        attempts=col(Job.attempts) + 1,
    )


async def complete(session: AsyncSession, job_id: str, result: Dict[str, Any]) -> bool:
    return await update(
        session,
        job_id,
        expected_status=JobStatus.PROCESSING,
        status=JobStatus.COMPLETED,
        result=result,
        error=None,
        run_after=None,
    )


async def fail(
    session: AsyncSession,
    job_id: str,
    error: str,
    *,
    max_attempts: int = 1,
    backoff_base: float = 1.0,
) -> Optional[JobStatus]:
    """Record a failed attempt.

    Jobs with attempts left go back to pending, scheduled after an exponential backoff;
    the others are failed for good. Returns the new status, or None if the job was not processing.
    """
    job = await get(session, job_id)
    if job is None or job.status != JobStatus.PROCESSING.value:
        return None

    if job.attempts < max_attempts:
        delay = backoff_delay(job.attempts, backoff_base)
        changed = await update(
            session,
            job_id,
            expected_status=JobStatus.PROCESSING,
            status=JobStatus.PENDING,
            error=error,
            run_after=time.time() + delay,
        )
        if changed:
            logger.info(f"Job {job_id} attempt {job.attempts}/{max_attempts} failed, retrying in {delay:.1f}s")
            return JobStatus.PENDING
        return None

    changed = await update(session, job_id, expected_status=JobStatus.PROCESSING, status=JobStatus.FAILED, error=error)
    return JobStatus.FAILED if changed else None


async def list_recent(
    session: AsyncSession,
    *,
    limit: int = 10,
    status: Optional[str] = None,
    job_type: Optional[str] = None,
) -> List[Job]:
    """Most recently created jobs first."""
    query = select(Job)
    if status:
        query = query.where(col(Job.status) == status)
    if job_type:
        query = query.where(col(Job.type) == job_type)
    query = query.order_by(col(Job.created_at).desc()).limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all())


async def list_due(session: AsyncSession, *, now: float, grace: float, limit: int = 100) -> List[str]:
    """Ids of pending jobs old enough to have been missed by the notification channel."""
    query = (
        select(Job.id)
        .where(col(Job.status) == JobStatus.PENDING.value)
        .where(col(Job.created_at) <= now - grace)
        .where(sa.or_(col(Job.run_after).is_(None), col(Job.run_after) <= now))
        .order_by(col(Job.created_at).asc())
        .limit(limit)
    )
    result = await session.execute(query)
    return list(result.scalars().all())


async def reap_stale(session: AsyncSession, *, now: float, stale_after: float, max_attempts: int = 1) -> int:
    """Recover jobs left in processing by a worker that died.

    Returns the number of jobs requeued or failed.
    """
    query = (
        select(Job)
        .where(col(Job.status) == JobStatus.PROCESSING.value)
        .where(col(Job.updated_at) <= now - stale_after)
    )
    result = await session.execute(query)
    stale = list(result.scalars().all())

    reaped = 0
    for job in stale:
        if job.attempts < max_attempts:
            changed = await update(
                session, job.id, expected_status=JobStatus.PROCESSING, status=JobStatus.PENDING, run_after=None
            )
        else:
            changed = await update(
                session,
                job.id,
                expected_status=JobStatus.PROCESSING,
                status=JobStatus.FAILED,
                error=f"Abandoned in processing for more than {stale_after:.0f}s",
            )
        if changed:
            reaped += 1
            logger.warning(f"Reaped stale job {job.id} (attempts={job.attempts})")
    return reaped
