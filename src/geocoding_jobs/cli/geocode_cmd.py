"""Geocoding CLI commands for creating, running, cancelling, and inspecting geocoding jobs."""

import asyncio
import uuid
from typing import TYPE_CHECKING

import typer

if TYPE_CHECKING:
    from geocoding_jobs.models.geocoding import Geocoding

geocode_app = typer.Typer()


@geocode_app.command("create")
def create_job(
    tenant_id: str = typer.Option(..., "--tenant", help="Tenant UUID"),
    table_name: str = typer.Option(..., "--table", help="Tenant table to geocode"),
    formatter: str = typer.Option(..., "--formatter", help="Row template, e.g. '{address}, {city}'"),
    kind: str = typer.Option("high-resolution", "--kind", help="Geocoding kind"),
    geometry_type: str | None = typer.Option(None, "--geometry-type", help="point or polygon (internal kinds)"),
    run_timeout: float | None = typer.Option(None, "--timeout", help="Run timeout in seconds"),
    run_now: bool = typer.Option(False, "--run", help="Run the job right after creating it"),  # noqa: FBT001
) -> None:
    """Create a geocoding job, optionally running it to completion."""
    asyncio.run(_create_job(tenant_id, table_name, formatter, kind, geometry_type, run_timeout, run_now))


@geocode_app.command("run")
def run_job(job_id: str = typer.Argument(..., help="Geocoding UUID")) -> None:
    """Run a pending geocoding job in the foreground."""
    asyncio.run(_run_job(job_id))


@geocode_app.command("cancel")
def cancel_job(job_id: str = typer.Argument(..., help="Geocoding UUID")) -> None:
    """Cancel a geocoding job."""
    asyncio.run(_cancel_job(job_id))


@geocode_app.command("show")
def show_job(job_id: str = typer.Argument(..., help="Geocoding UUID")) -> None:
    """Show a geocoding job with its counters and price as JSON."""
    asyncio.run(_show_job(job_id))


@geocode_app.command("list")
def list_jobs(
    tenant_id: str = typer.Option(..., "--tenant", help="Tenant UUID"),
    state: str | None = typer.Option(None, "--state", help="Only jobs in this state"),
) -> None:
    """List a tenant's geocoding jobs."""
    asyncio.run(_list_jobs(tenant_id, state))


@geocode_app.command("quota")
def show_quota(tenant_id: str = typer.Argument(..., help="Tenant UUID")) -> None:
    """Show the quota pool of a tenant and how many rows it can still geocode."""
    asyncio.run(_show_quota(tenant_id))


def _echo_summary(job: "Geocoding") -> None:
    typer.echo(f"Geocoding {job.id}: {job.state}")
    typer.echo(f"  Processable rows: {job.processable_rows or 0}")
    typer.echo(f"  Processed:        {job.processed_rows or 0}")
    typer.echo(f"  Cache hits:       {job.cache_hits or 0}")
    typer.echo(f"  Geocoded:         {job.successful_rows}")
    typer.echo(f"  Failed:           {job.failed_rows}")
    typer.echo(f"  Used credits:     {job.used_credits or 0}")
    if job.error_message:
        typer.echo(f"  Error:            {job.error_message}")


async def _create_job(
    tenant_id: str,
    table_name: str,
    formatter: str,
    kind: str,
    geometry_type: str | None,
    run_timeout: float | None,
    run_now: bool,
) -> None:
    """Async implementation of job creation."""
    from geocoding_jobs.core.config import get_settings
    from geocoding_jobs.core.database import dispose_engine, init_engine, session_scope
    from geocoding_jobs.lib.jobs.errors import GeocodingError
    from geocoding_jobs.services.geocoding_service import build_runner, create_geocoding_job

    settings = get_settings()
    init_engine(settings.database_url)

    try:
        async with session_scope() as session:
            try:
                job = await create_geocoding_job(
                    session,
                    tenant_id=uuid.UUID(tenant_id),
                    table_name=table_name,
                    formatter=formatter,
                    kind=kind,
                    geometry_type=geometry_type,
                    run_timeout=run_timeout,
                    settings=settings,
                )
            except GeocodingError as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(code=1) from e

            typer.echo(f"Geocoding job created: {job.id}")
            if run_now:
                job = await build_runner(session, job, settings=settings).run()
                _echo_summary(job)
    finally:
        await dispose_engine()


async def _run_job(job_id: str) -> None:
    """Async implementation of a foreground run."""
    from geocoding_jobs.core.config import get_settings
    from geocoding_jobs.core.database import dispose_engine, init_engine
    from geocoding_jobs.services.geocoding_service import run_geocoding_job

    settings = get_settings()
    init_engine(settings.database_url)

    try:
        job = await run_geocoding_job(uuid.UUID(job_id), settings=settings)
        if job is None:
            typer.echo(f"Geocoding {job_id} not found", err=True)
            raise typer.Exit(code=1)
        _echo_summary(job)
        if job.state != "completed":
            raise typer.Exit(code=1)
    finally:
        await dispose_engine()


async def _cancel_job(job_id: str) -> None:
    """Async implementation of cancellation."""
    from geocoding_jobs.core.config import get_settings
    from geocoding_jobs.core.database import dispose_engine, init_engine, session_scope
    from geocoding_jobs.services.geocoding_service import cancel_geocoding_job

    settings = get_settings()
    init_engine(settings.database_url)

    try:
        async with session_scope() as session:
            job = await cancel_geocoding_job(session, uuid.UUID(job_id), settings=settings)
            if job is None:
                typer.echo(f"Geocoding {job_id} not found", err=True)
                raise typer.Exit(code=1)
            typer.echo(f"Geocoding {job.id}: {job.state}")
    finally:
        await dispose_engine()


async def _show_job(job_id: str) -> None:
    """Async implementation of job display."""
    from geocoding_jobs.core.config import get_settings
    from geocoding_jobs.core.database import dispose_engine, init_engine, session_scope
    from geocoding_jobs.schemas.geocoding import GeocodingResponse
    from geocoding_jobs.services.geocoding_service import get_geocoding_job
    from geocoding_jobs.services.quota_service import get_job_price

    settings = get_settings()
    init_engine(settings.database_url)

    try:
        async with session_scope() as session:
            job = await get_geocoding_job(session, uuid.UUID(job_id))
            if job is None:
                typer.echo(f"Geocoding {job_id} not found", err=True)
                raise typer.Exit(code=1)
            response = GeocodingResponse.model_validate(job)
            response.price = await get_job_price(session, job, block_size=settings.geocoding_block_size)
            typer.echo(response.model_dump_json(indent=2))
    finally:
        await dispose_engine()


async def _list_jobs(tenant_id: str, state: str | None) -> None:
    """Async implementation of job listing."""
    from geocoding_jobs.core.config import get_settings
    from geocoding_jobs.core.database import dispose_engine, init_engine, session_scope
    from geocoding_jobs.services.geocoding_service import list_geocoding_jobs

    settings = get_settings()
    init_engine(settings.database_url)

    try:
        async with session_scope() as session:
            jobs = await list_geocoding_jobs(session, uuid.UUID(tenant_id), state=state)
            if not jobs:
                typer.echo("No geocoding jobs found")
                return
            for job in jobs:
                typer.echo(f"{job.id}  {job.state:<10} {job.kind:<16} {job.table_name or '-':<24} {job.used_credits or 0}")
    finally:
        await dispose_engine()


async def _show_quota(tenant_id: str) -> None:
    """Async implementation of quota display."""
    from geocoding_jobs.core.config import get_settings
    from geocoding_jobs.core.database import dispose_engine, init_engine, session_scope
    from geocoding_jobs.lib.jobs.errors import QuotaUninitializedError
    from geocoding_jobs.lib.quota import max_geocodable_rows
    from geocoding_jobs.schemas.geocoding import QuotaResponse
    from geocoding_jobs.services.quota_service import TenantQuotaStore

    settings = get_settings()
    init_engine(settings.database_url)

    try:
        async with session_scope() as session:
            store = TenantQuotaStore(session, uuid.UUID(tenant_id), block_size=settings.geocoding_block_size)
            try:
                snapshot = await store.snapshot()
                pool = await store.pool_key()
            except QuotaUninitializedError as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(code=1) from e
            response = QuotaResponse(
                tenant_id=uuid.UUID(tenant_id),
                pool=pool,
                quota=snapshot.quota,
                soft_limit=snapshot.soft_limit,
                used=snapshot.prior_usage,
                max_geocodable_rows=max_geocodable_rows(snapshot),
            )
            typer.echo(response.model_dump_json(indent=2))
    finally:
        await dispose_engine()
