"""Repositories behind the engine: protocols, in-memory and sqlite stores."""

from __future__ import annotations

from cadence.core.connection import parse_url
from cadence.storage.memory import MemoryStore
from cadence.storage.protocols import Store
from cadence.storage.sqlite import SqliteStore


def create_store(database_url: str | None = "memory", *, sqlite_memory: bool = False) -> Store:
    """Store for ``database_url``.

    ``memory`` gives a :class:`MemoryStore` unless ``sqlite_memory`` asks
    for an in-memory sqlite database; anything else is a sqlite file.
    """
    scheme, _target = parse_url(database_url)
    if scheme == "memory" and not sqlite_memory:
        return MemoryStore()
    return SqliteStore.from_url(database_url)


__all__ = ["Store", "MemoryStore", "SqliteStore", "create_store"]
