"""
CLI: ``cadence automation`` — inspect and test automation rules.
"""

from __future__ import annotations

import typer

from cadence.cli.utils import output, parse_json_option, run_command

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_rules(
    tenant_id: str = typer.Option(..., "--tenant", "-t", help="Owning tenant"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List a tenant's rules."""

    async def _run(container):
        return [
            {
                "id": r.id,
                "name": r.name,
                "trigger_event": r.trigger_event.value,
                "action_type": r.action_type.value,
                "is_active": r.is_active,
            }
            for r in container.store.rules.list_for_tenant(tenant_id)
        ]

    output(run_command(database, _run), as_json=json_out, title="Automations")


@app.command()
def test(
    rule_id: str = typer.Argument(..., help="Rule to run"),
    data: str | None = typer.Option(None, "--data", help="Event data as a JSON object"),
    profile_id: str | None = typer.Option(None, "--profile", help="Profile used in sample data"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run a rule once against sample (or supplied) event data."""
    event_data = parse_json_option(data, "--data")

    async def _run(container):
        record = await container.orchestrator.run_test(
            rule_id, event_data=event_data, profile_id=profile_id
        )
        return record.to_dict()

    output(run_command(database, _run), as_json=json_out, title="Test Execution")


@app.command()
def executions(
    rule_id: str = typer.Argument(..., help="Rule whose executions to show"),
    limit: int = typer.Option(20, "--limit", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a rule's most recent execution records."""

    async def _run(container):
        return [
            {
                "id": r.id,
                "event_id": r.event_id,
                "status": r.status.value,
                "attempt": r.attempt,
                "error": r.error_message,
                "created_at": r.created_at.isoformat(),
            }
            for r in container.orchestrator.log.recent(rule_id, limit)
        ]

    output(run_command(database, _run), as_json=json_out, title="Executions")
