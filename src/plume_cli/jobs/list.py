import asyncio
from typing import List, Optional

import typer
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from plume_cli.utils import console, format_timestamp, open_store, styled_status
from plume_core.config import Settings
from plume_server.database import get_session
from plume_server.entities.jobs import Job, JobStatus
from plume_server.queues import store


async def fetch_jobs(settings: Settings, limit: int, status: Optional[str], job_type: Optional[str]) -> List[Job]:
    async with open_store(settings) as (_, session_maker):
        async with get_session(session_maker, read_only=True) as session:
            return await store.list_recent(session, limit=limit, status=status, job_type=job_type)


def list_jobs(
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Number of jobs to show"),
    status: Optional[JobStatus] = typer.Option(None, "--status", "-s", help="Only jobs in this status"),
    job_type: Optional[str] = typer.Option(None, "--type", "-t", help="Only jobs of this type"),
) -> None:
    """List the most recent jobs, newest first."""
    settings = Settings()
    try:
        jobs = asyncio.run(fetch_jobs(settings, limit, status.value if status else None, job_type))
    except SQLAlchemyError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not jobs:
        console.print("[yellow]No jobs found[/yellow]")
        return

    table = Table(title=f"Latest {len(jobs)} jobs")
    table.add_column("Job ID", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Created", style="green")
    table.add_column("Updated", style="green")
    table.add_column("Error", style="red")
    for job in jobs:
        table.add_row(
            job.id,
            job.type,
            styled_status(job.status),
            str(job.attempts),
            format_timestamp(job.created_at),
            format_timestamp(job.updated_at),
            job.error or "",
        )
    console.print(table)
