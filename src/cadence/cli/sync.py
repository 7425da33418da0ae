"""
CLI: ``cadence sync`` — data source scheduling commands.
"""

from __future__ import annotations

import asyncio

import typer

from cadence.cli.utils import console, make_container, output, run_command
from cadence.sync.models import DataSourceRegistration, SyncFrequency

app = typer.Typer(no_args_is_help=True)


@app.command()
def register(
    tenant_id: str = typer.Option(..., "--tenant", "-t"),
    provider: str = typer.Option("hubspot", "--provider"),
    object_type: str = typer.Option("deals", "--object-type"),
    frequency: SyncFrequency = typer.Option(SyncFrequency.HOURLY, "--frequency"),
    stage_field: str | None = typer.Option(None, "--stage-field"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Register a data source for scheduled syncing."""

    async def _run(container):
        registration = DataSourceRegistration.create(
            tenant_id=tenant_id,
            provider=provider,
            object_type=object_type,
            sync_frequency=frequency,
            stage_field=stage_field,
        )
        container.store.data_sources.save(registration)
        return registration.to_dict()

    output(run_command(database, _run), as_json=json_out, title="Data Source")


@app.command()
def tick(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one scheduler tick over the due set."""

    async def _run(container):
        result = await container.scheduler.tick()
        return result.to_dict()

    data = run_command(database, _run)
    if json_out:
        output(data, as_json=True)
        return
    output(
        {k: data[k] for k in ("scanned", "succeeded", "failed", "skipped_busy", "peak_concurrency")},
        title="Tick",
    )


@app.command()
def run(
    data_source_id: str = typer.Argument(..., help="Data source to sync"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Sync one data source now."""

    async def _run(container):
        result = await container.scheduler.sync_now(data_source_id)
        return result.to_dict()

    data = run_command(database, _run)
    output(data, as_json=json_out, title="Sync Result")
    if not data["success"]:
        raise typer.Exit(code=1)


@app.command()
def runs(
    data_source_id: str = typer.Argument(...),
    limit: int = typer.Option(20, "--limit", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show recent sync runs of a data source."""

    async def _run(container):
        return [
            {
                "id": r.id,
                "status": r.status.value,
                "triggered_by": r.triggered_by.value,
                "records_processed": r.records_processed,
                "stage_changes": r.stage_changes,
                "started_at": r.started_at.isoformat(),
                "error": r.error_message,
            }
            for r in container.store.sync_runs.list_for_source(data_source_id, limit)
        ]

    output(run_command(database, _run), as_json=json_out, title="Sync Runs")


@app.command()
def loop(
    database: str | None = typer.Option(None, "--database", "-d"),
    interval: int | None = typer.Option(None, "--interval", help="Seconds between ticks"),
) -> None:
    """Tick forever at the configured interval."""
    container = make_container(database)
    seconds = interval or container.settings.tick_interval_seconds
    console.print(f"[bold green]Scheduler running[/bold green] every {seconds}s")

    async def _loop() -> None:
        try:
            while True:
                result = await container.scheduler.tick()
                console.print(
                    f"tick: scanned={result.scanned} ok={result.succeeded} failed={result.failed}"
                )
                await asyncio.sleep(seconds)
        finally:
            await container.aclose()

    try:
        asyncio.run(_loop())
    except KeyboardInterrupt:
        console.print("[dim]Scheduler stopped.[/dim]")
