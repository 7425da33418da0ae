"""
CLI: ``cadence events`` — push an event through the engine.
"""

from __future__ import annotations

import typer

from cadence.cli.utils import output, parse_json_option, run_command
from cadence.core.events import DomainEvent

app = typer.Typer(no_args_is_help=True)


@app.command()
def send(
    event_type: str = typer.Argument(..., help="Event type, e.g. issue/queued"),
    tenant_id: str = typer.Option(..., "--tenant", "-t"),
    payload: str | None = typer.Option(None, "--payload", help="Payload as a JSON object"),
    event_id: str | None = typer.Option(None, "--id", help="Event id (dedup key)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Process one event and show what each matching rule did."""
    data = parse_json_option(payload, "--payload") or {}
    raw = {"type": event_type, "tenantId": tenant_id, "payload": data}
    if event_id:
        raw["id"] = event_id
    event = DomainEvent.from_dict(raw)

    async def _run(container):
        outcome = await container.processor.handle(event)
        return outcome.to_dict()

    result = run_command(database, _run)
    if json_out:
        output(result, as_json=True)
        return
    output(
        [
            {
                "rule_id": e["rule_id"],
                "status": e["status"],
                "attempt": e["attempt"],
                "deduplicated": e["deduplicated"],
                "error": e["error_message"],
            }
            for e in result["executions"]
        ],
        title=f"Event {result['event_id']}",
    )
