import asyncio
import json
from typing import Any, Dict

import typer
from pydantic import ValidationError

from plume_cli.utils import console, open_store
from plume_core.config import Settings
from plume_server.queues.dispatch import build_dispatcher
from plume_server.schemas.jobs import JobRead, UnknownJobTypeError


async def submit_job(settings: Settings, job_type: str, payload: Dict[str, Any]) -> JobRead:
    async with open_store(settings) as (engine, session_maker):
        dispatcher = build_dispatcher(settings, engine, session_maker)
        try:
            return await dispatcher.enqueue(job_type, payload)
        finally:
            await dispatcher.close()


def enqueue_job(
    job_type: str = typer.Argument(..., help="Job type, e.g. generate"),
    payload: str = typer.Option("{}", "--payload", "-p", help="Job payload as a JSON object"),
) -> None:
    """Submit a job through the same path the API uses."""
    try:
        document = json.loads(payload)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid payload JSON: {e}[/red]")
        raise typer.Exit(1)
    if not isinstance(document, dict):
        console.print("[red]Payload must be a JSON object[/red]")
        raise typer.Exit(1)

    settings = Settings()
    try:
        job = asyncio.run(submit_job(settings, job_type, document))
    except (UnknownJobTypeError, ValidationError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Queued job {job.id}[/green] ({job.type}, {job.status})")
