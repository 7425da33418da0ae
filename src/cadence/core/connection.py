"""Connection factory: create sqlite connections from URL strings.

Supported forms
---------------
==================  ==========================================
``memory``          ``memory``, ``:memory:`` or ``None``
``sqlite``          ``sqlite:///path/to/file.db``
``(file path)``     ``./data/cadence.db``
==================  ==========================================

Usage::

    conn, info = create_connection("sqlite:///cadence.db", init_schema=True)
    print(info)
    # ConnectionInfo(backend='sqlite', persistent=True, path='/abs/cadence.db')
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from cadence.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a database connection."""

    backend: str
    persistent: bool
    url: str
    resolved_path: str | None = None

    def __repr__(self) -> str:
        parts = [f"backend={self.backend!r}", f"persistent={self.persistent}"]
        if self.resolved_path:
            parts.append(f"path={self.resolved_path!r}")
        else:
            parts.append(f"url={self.url!r}")
        return f"ConnectionInfo({', '.join(parts)})"


def parse_url(db: str | None) -> tuple[str, str]:
    """Parse a database URL into ``(scheme, target)``."""
    if db is None or db in ("", "memory", ":memory:"):
        return "memory", ":memory:"
    if db.startswith("sqlite:///"):
        path = db[len("sqlite:///"):]
        if not path or path == ":memory:":
            return "memory", ":memory:"
        return "file", path
    if "://" in db:
        raise ValueError(f"Unsupported database URL: {db!r} (only sqlite is supported)")
    return "file", db


def _open(target: str) -> sqlite3.Connection:
    # FastAPI runs sync dependencies in a threadpool; repositories serialize
    # access with their own lock.
    conn = sqlite3.connect(target, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def create_connection(
    db: str | None = None,
    *,
    init_schema: bool = False,
) -> tuple[sqlite3.Connection, ConnectionInfo]:
    """Create a sqlite connection from a URL or path."""
    scheme, target = parse_url(db)

    if scheme == "memory":
        conn = _open(":memory:")
        info = ConnectionInfo(backend="sqlite", persistent=False, url=":memory:")
    else:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        resolved = str(path.resolve())
        conn = _open(resolved)
        conn.execute("PRAGMA journal_mode = WAL")
        info = ConnectionInfo(
            backend="sqlite", persistent=True, url=db or target, resolved_path=resolved
        )

    if init_schema:
        from cadence.core.schema import create_tables

        create_tables(conn)
        logger.debug("db.schema_initialized", url=info.url)

    return conn, info
