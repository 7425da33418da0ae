"""
CLI: ``cadence db`` — database management commands.
"""

from __future__ import annotations

import typer

from cadence.cli.utils import console, err_console, output
from cadence.core.connection import parse_url
from cadence.core.schema import CORE_TABLES
from cadence.core.settings import get_settings
from cadence.storage import SqliteStore

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path or URL"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Initialise database schema (create tables)."""
    url = database or get_settings().database_url
    scheme, _target = parse_url(url)
    if scheme == "memory":
        err_console.print("[bold red]Error[/bold red]: an in-memory database cannot be initialised")
        raise typer.Exit(code=1)

    store = SqliteStore.from_url(url)
    store.close()
    if not json_out:
        console.print(f"[bold green]Initialised[/bold green] {url}")
    output({"database": url, "tables": list(CORE_TABLES.values())}, as_json=json_out, title="Database Init")
