"""Scheduled data-source sync with stage-history tracking.

The executor and scheduler are imported from their modules
(``cadence.sync.executor``, ``cadence.sync.scheduler``).
"""

from cadence.sync.models import (
    DataSourceRegistration,
    StageHistoryInterval,
    SyncFrequency,
    SyncResult,
    SyncRun,
    SyncStatus,
    SyncTrigger,
)

__all__ = [
    "DataSourceRegistration",
    "StageHistoryInterval",
    "SyncFrequency",
    "SyncResult",
    "SyncRun",
    "SyncStatus",
    "SyncTrigger",
]
