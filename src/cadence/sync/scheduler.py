"""
Sync scheduler: turns an external clock tick into bounded sync work.

ARCHITECTURE
────────────
::

    tick(now)
      ├── DueSetScanner.scan(now)          ─ at most ``due_batch_size`` sources
      └── AsyncBatchExecutor               ─ global cap (``max_concurrent_syncs``)
            gate per item:
              ├── tenant limiter           ─ ``max_concurrent_syncs_per_tenant``
              └── data-source limiter (1)  ─ never two runs of one source at once
            └── SyncExecutor.run(id, SCHEDULED)

A failing source ends its own run in ``error`` and the rest of the batch
continues. Sources that stay due after a tick wait for the next one;
nothing is queued in between.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cadence.core.logging import get_logger
from cadence.core.timestamps import utc_now
from cadence.execution.batch import AsyncBatchExecutor, AsyncBatchResult
from cadence.execution.concurrency import KeyedLimiter
from cadence.storage.protocols import DataSourceRepository
from cadence.sync.executor import SyncExecutor
from cadence.sync.models import DataSourceRegistration, SyncResult, SyncTrigger
from cadence.sync.scanner import DueSetScanner

logger = get_logger(__name__)


@dataclass
class TickResult:
    """Stats of one scheduler tick (or one ``sync_all`` batch)."""

    started_at: datetime
    completed_at: datetime
    scanned: int = 0
    skipped_busy: list[str] = field(default_factory=list)
    results: list[SyncResult] = field(default_factory=list)
    crashed: dict[str, str] = field(default_factory=dict)
    peak_concurrency: int = 0

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success) + len(self.crashed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "scanned": self.scanned,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped_busy": self.skipped_busy,
            "peak_concurrency": self.peak_concurrency,
            "results": [r.to_dict() for r in self.results],
            "crashed": self.crashed,
        }


class SyncScheduler:
    def __init__(
        self,
        scanner: DueSetScanner,
        executor: SyncExecutor,
        data_sources: DataSourceRepository,
        max_concurrency: int = 5,
        per_tenant_limit: int = 2,
    ) -> None:
        self.scanner = scanner
        self.executor = executor
        self._data_sources = data_sources
        self.max_concurrency = max_concurrency
        self._tenants = KeyedLimiter(per_tenant_limit, name="tenant")
        self._sources = KeyedLimiter(1, name="data_source")
        self.stats: dict[str, int] = {"ticks": 0, "runs": 0, "failed": 0}

    @asynccontextmanager
    async def _gate(self, registration: DataSourceRegistration) -> AsyncIterator[None]:
        async with self._tenants.hold(registration.tenant_id):
            async with self._sources.hold(registration.id):
                yield

    async def tick(self, now: datetime | None = None) -> TickResult:
        """Scan the due set at ``now`` and sync it."""
        scan_time = now or utc_now()
        due = self.scanner.scan(scan_time)
        result = await self._run_batch(due, SyncTrigger.SCHEDULED, now, started_at=scan_time)
        self.stats["ticks"] += 1
        logger.info(
            "scheduler.tick_complete",
            scanned=result.scanned,
            succeeded=result.succeeded,
            failed=result.failed,
            skipped_busy=len(result.skipped_busy),
            peak_concurrency=result.peak_concurrency,
        )
        return result

    async def sync_now(
        self, data_source_id: str, trigger: SyncTrigger = SyncTrigger.MANUAL
    ) -> SyncResult:
        """Run one source immediately, waiting for any run of it already in flight."""
        async with self._sources.hold(data_source_id):
            result = await self.executor.run(data_source_id, trigger)
        self._count(result)
        return result

    async def sync_all(self, tenant_id: str) -> TickResult:
        """Manually sync every active source of a tenant."""
        registrations = self._data_sources.list_for_tenant(tenant_id, active_only=True)
        return await self._run_batch(registrations, SyncTrigger.MANUAL, None, started_at=utc_now())

    async def _run_batch(
        self,
        registrations: list[DataSourceRegistration],
        trigger: SyncTrigger,
        now: datetime | None,
        started_at: datetime,
    ) -> TickResult:
        tick = TickResult(started_at=started_at, completed_at=started_at, scanned=len(registrations))
        batch = AsyncBatchExecutor(max_concurrency=self.max_concurrency)

        async def _handler(params: dict[str, Any]) -> SyncResult:
            return await self.executor.run(params["data_source_id"], trigger, now=now)

        for registration in registrations:
            if self._sources.is_busy(registration.id):
                logger.info("scheduler.source_busy", data_source_id=registration.id)
                tick.skipped_busy.append(registration.id)
                continue
            batch.add(
                registration.id,
                _handler,
                {"data_source_id": registration.id},
                gate=lambda reg=registration: self._gate(reg),
            )

        outcome: AsyncBatchResult = await batch.run_all()
        for item in outcome.items:
            if item.status == "completed":
                tick.results.append(item.result)
                self._count(item.result)
            else:
                tick.crashed[item.name] = item.error or "unknown error"
                self.stats["failed"] += 1
        tick.peak_concurrency = outcome.peak_concurrency
        tick.completed_at = utc_now()
        return tick

    def _count(self, result: SyncResult) -> None:
        self.stats["runs"] += 1
        if not result.success:
            self.stats["failed"] += 1


__all__ = ["SyncScheduler", "TickResult"]
