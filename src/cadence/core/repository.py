"""
Base repository for sqlite-backed data access.

Repositories share one connection and one re-entrant lock, so a
read-check-write sequence inside :meth:`BaseRepository.transaction`
is atomic with respect to every other repository on the same store.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any


def ts(dt: datetime | None) -> str | None:
    """Format a datetime for storage (UTC, fixed precision, sortable)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    dt = datetime.fromisoformat(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


def dumps(value: Any) -> str:
    return json.dumps(value, default=str, sort_keys=True)


def loads(value: str | None, default: Any = None) -> Any:
    if value is None:
        return default
    return json.loads(value)


class BaseRepository:
    """Base class for data-access repositories.

    Parameters:
        conn: A ``sqlite3.Connection`` (``row_factory = sqlite3.Row``).
        lock: Shared lock; pass the same one to every repository on ``conn``.
    """

    def __init__(self, conn: sqlite3.Connection, lock: threading.RLock | None = None) -> None:
        self.conn = conn
        self.lock = lock or threading.RLock()

    # -- Query helpers -----------------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute a statement and return the raw cursor."""
        with self.lock:
            return self.conn.execute(sql, params)

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Execute a SELECT and return rows as dicts."""
        with self.lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def query_one(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        """Execute a SELECT and return the first row as a dict (or None)."""
        results = self.query(sql, params)
        return results[0] if results else None

    # -- Insert helpers ----------------------------------------------------

    def insert(self, table: str, data: dict[str, Any]) -> Any:
        """Insert a single row from a dict."""
        columns = list(data.keys())
        ph = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({ph})"
        with self.lock:
            return self.conn.execute(sql, tuple(data.values()))

    def update(self, table: str, key: dict[str, Any], data: dict[str, Any]) -> int:
        """Update columns in ``data`` for the row(s) matching ``key``."""
        sets = ", ".join(f"{col} = ?" for col in data)
        where = " AND ".join(f"{col} = ?" for col in key)
        sql = f"UPDATE {table} SET {sets} WHERE {where}"
        with self.lock:
            cursor = self.conn.execute(sql, (*data.values(), *key.values()))
        return cursor.rowcount

    def commit(self) -> None:
        with self.lock:
            self.conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the store lock and commit on success, roll back on error."""
        with self.lock:
            try:
                yield
            except BaseException:
                self.conn.rollback()
                raise
            else:
                self.conn.commit()


__all__ = ["BaseRepository", "ts", "parse_ts", "dumps", "loads"]
