"""Due-set scanner: which data sources should sync on this tick."""

from __future__ import annotations

from datetime import datetime

from cadence.core.logging import get_logger
from cadence.core.timestamps import utc_now
from cadence.storage.protocols import DataSourceRepository
from cadence.sync.models import DataSourceRegistration

logger = get_logger(__name__)


class DueSetScanner:
    """
    Select active, non-manual registrations with
    ``next_scheduled_sync_at IS NULL OR next_scheduled_sync_at <= now``,
    never-scheduled first, then oldest due first, capped at ``batch_size``.

    Sources left over by the cap stay due and are picked up next tick.
    """

    def __init__(self, data_sources: DataSourceRepository, batch_size: int = 50) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._data_sources = data_sources
        self.batch_size = batch_size

    def scan(self, now: datetime | None = None) -> list[DataSourceRegistration]:
        now = now or utc_now()
        due = self._data_sources.list_due(now, self.batch_size)
        logger.debug("scheduler.scan", due=len(due), batch_size=self.batch_size)
        return due
