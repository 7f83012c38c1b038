import typer

from plume_cli.jobs.enqueue import enqueue_job
from plume_cli.jobs.get import get_job
from plume_cli.jobs.list import list_jobs

app = typer.Typer()

app.command(name="list")(list_jobs)
app.command(name="get")(get_job)
app.command(name="enqueue")(enqueue_job)
