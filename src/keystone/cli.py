"""Keystone CLI: database setup, demo data, offline report exports and the API server.

Usage::

    # Create tables (SQLite sandboxes or a fresh database)
    keystone init-db

    # Load the demo workspace
    keystone seed

    # Export a project report without the API server
    keystone report --project-id <UUID> --type dashboard --format xlsx

    # Run the API
    keystone serve --port 8000
"""

from __future__ import annotations

import asyncio
import sys
import uuid
from pathlib import Path

import click

from keystone.config import settings


@click.group()
def cli():
    """Keystone: project risk, change and stakeholder management."""
    pass


# ── init-db ───────────────────────────────────────────────────────────


@cli.command("init-db")
def init_db_command():
    """Create all tables from the ORM metadata."""
    from keystone.db.session import close_db, init_db

    async def _run() -> None:
        await init_db(create_tables=True)
        await close_db()

    asyncio.run(_run())
    click.echo(f"Database ready: {settings.database_url.split('@')[-1]}")


# ── seed ──────────────────────────────────────────────────────────────


@cli.command()
def seed():
    """Load the demo workspace and project."""
    from keystone.seed import main as seed_main

    asyncio.run(seed_main())


# ── report ────────────────────────────────────────────────────────────


@cli.command()
@click.option("--project-id", required=True, help="Project UUID to report on.")
@click.option(
    "--type",
    "report_type",
    default="project-status",
    show_default=True,
    help="Report type (project-status, task-progress, requirements-coverage, "
    "stakeholder-engagement, risk-analytics, dashboard).",
)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "xlsx", "html"]),
    default="xlsx",
    show_default=True,
    help="Export file format.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=True, file_okay=True, path_type=Path),
    default=None,
    help="File or directory to write to (default: current directory).",
)
def report(project_id: str, report_type: str, fmt: str, output: Path | None):
    """Build a project report in-process and write it to disk."""
    try:
        project_uuid = uuid.UUID(project_id)
    except ValueError:
        click.secho(f"Error: invalid project id {project_id!r}", fg="red", err=True)
        sys.exit(1)

    path = asyncio.run(_report(project_uuid, report_type, fmt, output))
    click.echo(f"Wrote {report_type} report to {path}")


async def _report(project_id: uuid.UUID, report_type: str, fmt: str, output: Path | None) -> Path:
    from keystone.core.reports import ReportError, build_report
    from keystone.db.session import async_session_factory, close_db
    from keystone.exporters import export_report

    try:
        async with async_session_factory() as session:
            data = await build_report(session, project_id, report_type)
    except ReportError as exc:
        click.secho(f"Error: {exc}", fg="red", err=True)
        sys.exit(1)
    finally:
        await close_db()

    exported = export_report(data, fmt, title=report_type)
    if output is None:
        target = Path.cwd() / exported.filename
    elif output.is_dir():
        target = output / exported.filename
    else:
        target = output
    target.write_bytes(exported.content)
    return target


# ── serve ─────────────────────────────────────────────────────────────


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
def serve(host: str, port: int, reload: bool):
    """Run the Keystone API with uvicorn."""
    import uvicorn

    uvicorn.run("keystone.main:app", host=host, port=port, reload=reload)


# ── Entry point ───────────────────────────────────────────────────────


def main():
    cli()


if __name__ == "__main__":
    main()
