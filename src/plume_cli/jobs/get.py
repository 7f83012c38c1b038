import asyncio
import json
from typing import Optional

import typer
from sqlalchemy.exc import SQLAlchemyError

from plume_cli.utils import console, format_timestamp, open_store, styled_status
from plume_core.config import Settings
from plume_server.database import get_session
from plume_server.queues import store
from plume_server.schemas.jobs import JobRead


async def fetch_job(settings: Settings, job_id: str) -> Optional[JobRead]:
    async with open_store(settings) as (_, session_maker):
        async with get_session(session_maker, read_only=True) as session:
            job = await store.get(session, job_id)
            return JobRead.model_validate(job) if job else None


def get_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only output the job status"),
) -> None:
    """Show a single job."""
    settings = Settings()
    try:
        job = asyncio.run(fetch_job(settings, job_id))
    except SQLAlchemyError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if job is None:
        console.print(f"[red]Job {job_id} not found[/red]")
        raise typer.Exit(1)

    if quiet:
        print(job.status)
        return

    console.print(f"[cyan]Job ID:[/cyan] {job.id}")
    console.print(f"[cyan]Type:[/cyan] {job.type}")
    console.print(f"[cyan]Status:[/cyan] {styled_status(job.status)}")
    console.print(f"[cyan]Attempts:[/cyan] {job.attempts}")
    console.print(f"[cyan]Created:[/cyan] {format_timestamp(job.created_at)}")
    console.print(f"[cyan]Updated:[/cyan] {format_timestamp(job.updated_at)}")
    console.print(f"[cyan]Payload:[/cyan] {json.dumps(job.payload)}")
    if job.result is not None:
        console.print(f"[cyan]Result:[/cyan] {json.dumps(job.result)}")
    if job.error:
        console.print(f"[red]Error:[/red] {job.error}")
