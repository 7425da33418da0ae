"""
Root Typer application for the cadence CLI.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

from cadence import __version__
from cadence.core.logging import configure_logging
from cadence.core.settings import get_settings

app = Typer(
    name="cadence",
    help="cadence — event automations and scheduled data sync.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cadence {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """cadence CLI — manage automations, events, data sync and the database."""


# ── Sub-command registration ─────────────────────────────────────────────

from cadence.cli.automation import app as automation_app  # noqa: E402
from cadence.cli.db import app as db_app  # noqa: E402
from cadence.cli.events import app as events_app  # noqa: E402
from cadence.cli.serve import app as serve_app  # noqa: E402
from cadence.cli.sync import app as sync_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(automation_app, name="automation", help="Automation rules.")
app.add_typer(events_app, name="events", help="Event processing.")
app.add_typer(sync_app, name="sync", help="Data source sync.")
app.add_typer(serve_app, name="serve", help="API server.")


def run() -> None:
    """Console entry point: logs go to stderr so stdout stays parseable."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json, stream=sys.stderr)
    app()


if __name__ == "__main__":
    run()
