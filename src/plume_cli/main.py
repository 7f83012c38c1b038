"""Plume CLI - Main entry point."""

import typer

from plume_cli import jobs

app = typer.Typer(
    help="Plume - Background jobs for content generation",
    no_args_is_help=True,
)

app.add_typer(jobs.app, name="jobs", help="Inspect and enqueue jobs")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
