"""
CLI utility helpers: container construction and output formatting.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from cadence.container import CadenceContainer
from cadence.core.errors import CadenceError
from cadence.core.settings import get_settings

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


# ── Container helper ─────────────────────────────────────────────────────


def make_container(database: str | None = None) -> CadenceContainer:
    """Build a container, optionally pointing it at another database."""
    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"database_url": database})
    return CadenceContainer(settings)


def run_command(database: str | None, fn: Callable[[CadenceContainer], Awaitable[T]]) -> T:
    """Run an async command against a fresh container, exiting 1 on engine errors."""

    async def _main() -> T:
        container = make_container(database)
        try:
            return await fn(container)
        finally:
            await container.aclose()

    try:
        return asyncio.run(_main())
    except CadenceError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def output(data: dict[str, Any] | list[dict[str, Any]], *, as_json: bool = False, title: str = "") -> None:
    """Render a dict or a list of dicts to the terminal."""
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(data, title=title)


def parse_json_option(value: str | None, name: str) -> dict[str, Any] | None:
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        err_console.print(f"[bold red]Error[/bold red]: {name} is not valid JSON ({e.msg})")
        raise typer.Exit(code=2) from e
    if not isinstance(parsed, dict):
        err_console.print(f"[bold red]Error[/bold red]: {name} must be a JSON object")
        raise typer.Exit(code=2)
    return parsed


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list[dict[str, Any]], *, title: str = "") -> None:
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in items[0]:
        table.add_column(col, overflow="fold")
    for item in items:
        table.add_row(*(str(v) for v in item.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
