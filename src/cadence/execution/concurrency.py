"""Per-key concurrency limiting for in-process work.

A single logical owner per work item is enforced by limiting how many
holders a key may have at once: ``KeyedLimiter(1)`` keyed by data-source
id means a scheduled sync and a manual "sync now" for the same source
never overlap; ``KeyedLimiter(2)`` keyed by tenant id keeps one tenant
from filling the whole worker pool.

Example::

    per_tenant = KeyedLimiter(limit=2, name="tenant")

    async with per_tenant.hold(registration.tenant_id):
        await executor.run(registration.id, SyncTrigger.SCHEDULED)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from cadence.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class _Slot:
    semaphore: asyncio.Semaphore
    holders: int = 0
    waiters: int = field(default=0)


class KeyedLimiter:
    """Bound concurrent holders per key.

    Semaphores are created on first use of a key and dropped once no
    task holds or waits on them, so the limiter does not grow with the
    number of distinct keys ever seen.
    """

    def __init__(self, limit: int = 1, name: str = "key") -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self.name = name
        self._slots: dict[str, _Slot] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        slot = self._slots.get(key)
        if slot is None:
            slot = _Slot(asyncio.Semaphore(self.limit))
            self._slots[key] = slot

        slot.waiters += 1
        if slot.semaphore.locked():
            logger.debug("concurrency.waiting", limiter=self.name, key=key, limit=self.limit)
        try:
            await slot.semaphore.acquire()
        except BaseException:
            slot.waiters -= 1
            self._release_if_idle(key, slot)
            raise
        slot.waiters -= 1

        slot.holders += 1
        try:
            yield
        finally:
            slot.holders -= 1
            slot.semaphore.release()
            self._release_if_idle(key, slot)

    def _release_if_idle(self, key: str, slot: _Slot) -> None:
        if slot.holders == 0 and slot.waiters == 0 and self._slots.get(key) is slot:
            del self._slots[key]

    def in_flight(self, key: str) -> int:
        """Number of tasks currently holding ``key``."""
        slot = self._slots.get(key)
        return slot.holders if slot else 0

    def is_busy(self, key: str) -> bool:
        return self.in_flight(key) >= self.limit

    @property
    def active_keys(self) -> int:
        return len(self._slots)


__all__ = ["KeyedLimiter"]
