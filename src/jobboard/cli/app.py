from __future__ import annotations

import json

import typer
import uvicorn

from jobboard.api.app import create_app
from jobboard.config import get_settings
from jobboard.core.connection import probe_connection
from jobboard.crm.service import ZohoService
from jobboard.db.init import init_database
from jobboard.db.repositories import Repository
from jobboard.db.session import SessionLocal
from jobboard.logging_config import configure_logging
from jobboard.types import JobFilters

app = typer.Typer(help="Jobboard CLI")
db_app = typer.Typer(help="Data store commands")
jobs_app = typer.Typer(help="Job listing commands")
zoho_app = typer.Typer(help="Zoho CRM sync commands")

app.add_typer(db_app, name="db")
app.add_typer(jobs_app, name="jobs")
app.add_typer(zoho_app, name="zoho")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


@app.command("init")
def init_cmd() -> None:
    """Initialize the database and data directories."""
    configure_logging()
    result = init_database()
    typer.echo(json.dumps({"ok": True, **result}, indent=2))


@db_app.command("check")
def db_check() -> None:
    """Probe the data store once and report the connection status."""
    configure_logging()
    with SessionLocal() as db:
        status = probe_connection(db)
    typer.echo(
        json.dumps(
            {"connected": status.connected, "checked_at": status.checked_at.isoformat(), "error": status.error},
            indent=2,
        )
    )
    if not status.connected:
        raise typer.Exit(code=1)


@jobs_app.command("list")
def jobs_list(
    q: str = typer.Option("", "--q"),
    location: str = typer.Option("", "--location"),
    limit: int = typer.Option(20, "--limit"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        repo = Repository(db)
        jobs = repo.list_jobs(JobFilters(q=q, location=location, limit=limit))
        typer.echo(
            json.dumps(
                [
                    {
                        "id": job.id,
                        "title": job.title,
                        "company": job.company,
                        "location": job.location,
                        "job_type": job.job_type,
                        "visa_sponsorship": job.visa_sponsorship,
                        "created_at": job.created_at.isoformat() if job.created_at else None,
                    }
                    for job in jobs
                ],
                indent=2,
            )
        )


@zoho_app.command("sync-all")
def zoho_sync_all(employer_id: str = typer.Option(..., "--employer-id")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        result = ZohoService(db).sync_all_applicants(employer_id)
    if not result.ok:
        typer.echo(json.dumps({"success": False, "message": result.error}, indent=2))
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result.value, indent=2))


@zoho_app.command("sync-application")
def zoho_sync_application(application_id: str = typer.Option(..., "--application-id")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        result = ZohoService(db).sync_application(application_id)
    if not result.ok:
        typer.echo(json.dumps({"success": False, "message": result.error}, indent=2))
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result.value, indent=2))


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)
