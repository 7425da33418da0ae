"""Sync domain models.

- SyncFrequency: how often a registration is due, with fixed offsets
- SyncTrigger / SyncStatus: why a run started and how it ended
- DataSourceRegistration: tenant configuration of what to sync and how often
- SyncRun: one invocation of the executor (append-only)
- SyncedRecord: last stored version of an external record
- StageHistoryInterval: how long an entity stayed in one stage
- SyncResult: what :meth:`SyncExecutor.run` returns

SyncRun state machine::

    RUNNING → SUCCESS | ERROR | CANCELLED
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from cadence.core.errors import InvalidTransitionError
from cadence.core.timestamps import generate_id, utc_now


class SyncFrequency(str, Enum):
    """How often a data source is synced."""

    FIVE_MINUTES = "5min"
    FIFTEEN_MINUTES = "15min"
    HOURLY = "hourly"
    DAILY = "daily"
    MANUAL = "manual"

    @property
    def interval(self) -> timedelta | None:
        return FREQUENCY_INTERVALS[self]

    def next_run(self, after: datetime) -> datetime | None:
        """Next scheduled run after ``after``; None for manual sources."""
        interval = self.interval
        return after + interval if interval is not None else None


FREQUENCY_INTERVALS: dict[SyncFrequency, timedelta | None] = {
    SyncFrequency.FIVE_MINUTES: timedelta(minutes=5),
    SyncFrequency.FIFTEEN_MINUTES: timedelta(minutes=15),
    SyncFrequency.HOURLY: timedelta(hours=1),
    SyncFrequency.DAILY: timedelta(hours=24),
    SyncFrequency.MANUAL: None,
}


class SyncTrigger(str, Enum):
    """What started a sync run."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"
    WEBHOOK = "webhook"
    RETRY = "retry"


class SyncStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


SYNC_VALID_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.RUNNING: frozenset({SyncStatus.SUCCESS, SyncStatus.ERROR, SyncStatus.CANCELLED}),
    SyncStatus.SUCCESS: frozenset(),
    SyncStatus.ERROR: frozenset(),
    SyncStatus.CANCELLED: frozenset(),
}

# Field recorded as "the" stage per object type when a registration names none.
DEFAULT_STAGE_FIELDS: dict[str, str] = {
    "deals": "dealstage",
    "tickets": "hs_pipeline_stage",
}


@dataclass
class DataSourceRegistration:
    """What to sync, from where, and how often.

    ``next_scheduled_sync_at`` of None means "due now" for an active,
    non-manual source and "never scheduled" for a manual one.
    """

    id: str
    tenant_id: str
    provider: str
    object_type: str
    sync_frequency: SyncFrequency = SyncFrequency.HOURLY
    is_active: bool = True
    stage_field: str | None = None
    next_scheduled_sync_at: datetime | None = None
    last_sync_at: datetime | None = None
    last_sync_status: str | None = None
    last_sync_error: str | None = None
    records_count: int = 0
    settings: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def create(
        cls,
        tenant_id: str,
        provider: str,
        object_type: str,
        sync_frequency: SyncFrequency | str = SyncFrequency.HOURLY,
        stage_field: str | None = None,
        settings: dict[str, Any] | None = None,
        is_active: bool = True,
    ) -> DataSourceRegistration:
        return cls(
            id=generate_id(),
            tenant_id=tenant_id,
            provider=provider,
            object_type=object_type,
            sync_frequency=SyncFrequency(sync_frequency),
            stage_field=stage_field,
            settings=settings or {},
            is_active=is_active,
        )

    @property
    def tracked_stage_field(self) -> str | None:
        return self.stage_field or DEFAULT_STAGE_FIELDS.get(self.object_type)

    @property
    def is_schedulable(self) -> bool:
        return self.is_active and self.sync_frequency is not SyncFrequency.MANUAL

    def is_due(self, now: datetime) -> bool:
        if not self.is_schedulable:
            return False
        return self.next_scheduled_sync_at is None or self.next_scheduled_sync_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "provider": self.provider,
            "object_type": self.object_type,
            "stage_field": self.tracked_stage_field,
            "sync_frequency": self.sync_frequency.value,
            "is_active": self.is_active,
            "next_scheduled_sync_at": _iso(self.next_scheduled_sync_at),
            "last_sync_at": _iso(self.last_sync_at),
            "last_sync_status": self.last_sync_status,
            "last_sync_error": self.last_sync_error,
            "records_count": self.records_count,
        }


@dataclass
class SyncRun:
    """One executor invocation for one data source."""

    id: str
    data_source_id: str
    tenant_id: str
    triggered_by: SyncTrigger
    status: SyncStatus = SyncStatus.RUNNING
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    duration_ms: int | None = None
    records_fetched: int = 0
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    stage_changes: int = 0
    error_message: str | None = None

    @classmethod
    def start(cls, registration: DataSourceRegistration, trigger: SyncTrigger) -> SyncRun:
        return cls(
            id=generate_id(),
            data_source_id=registration.id,
            tenant_id=registration.tenant_id,
            triggered_by=trigger,
        )

    def _finish(self, target: SyncStatus, now: datetime | None) -> None:
        if target not in SYNC_VALID_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status.value, target.value, "SyncStatus")
        self.status = target
        self.completed_at = now or utc_now()
        self.duration_ms = max(
            0, int((self.completed_at - self.started_at).total_seconds() * 1000)
        )

    def succeed(self, now: datetime | None = None) -> None:
        self._finish(SyncStatus.SUCCESS, now)

    def fail(self, message: str, now: datetime | None = None) -> None:
        self.error_message = message
        self._finish(SyncStatus.ERROR, now)

    def cancel(self, now: datetime | None = None) -> None:
        self._finish(SyncStatus.CANCELLED, now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "data_source_id": self.data_source_id,
            "tenant_id": self.tenant_id,
            "triggered_by": self.triggered_by.value,
            "status": self.status.value,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "duration_ms": self.duration_ms,
            "records_fetched": self.records_fetched,
            "records_processed": self.records_processed,
            "records_created": self.records_created,
            "records_updated": self.records_updated,
            "stage_changes": self.stage_changes,
            "error_message": self.error_message,
        }


@dataclass
class SyncedRecord:
    """Stored copy of one external record, keyed by (data source, external id)."""

    data_source_id: str
    external_id: str
    tenant_id: str
    object_type: str
    data: dict[str, Any] = field(default_factory=dict)
    synced_at: datetime = field(default_factory=utc_now)


@dataclass
class StageHistoryInterval:
    """Time range an entity spent in ``to_stage``; open while ``exited_at`` is None."""

    id: str
    data_source_id: str
    tenant_id: str
    entity_type: str
    entity_id: str
    from_stage: str | None
    to_stage: str
    entered_at: datetime
    exited_at: datetime | None = None

    @classmethod
    def open(
        cls,
        data_source_id: str,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        from_stage: str | None,
        to_stage: str,
        entered_at: datetime,
    ) -> StageHistoryInterval:
        return cls(
            id=generate_id(),
            data_source_id=data_source_id,
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            from_stage=from_stage,
            to_stage=to_stage,
            entered_at=entered_at,
        )

    @property
    def is_open(self) -> bool:
        return self.exited_at is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "data_source_id": self.data_source_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "from_stage": self.from_stage,
            "to_stage": self.to_stage,
            "entered_at": _iso(self.entered_at),
            "exited_at": _iso(self.exited_at),
        }


@dataclass
class SyncResult:
    """Outcome of one :meth:`SyncExecutor.run` call."""

    data_source_id: str
    run_id: str | None
    status: SyncStatus
    trigger: SyncTrigger
    records_fetched: int = 0
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    stage_changes: int = 0
    duration_ms: int | None = None
    error_message: str | None = None
    next_scheduled_sync_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status is SyncStatus.SUCCESS

    @classmethod
    def from_run(
        cls, run: SyncRun, next_scheduled_sync_at: datetime | None = None
    ) -> SyncResult:
        return cls(
            data_source_id=run.data_source_id,
            run_id=run.id,
            status=run.status,
            trigger=run.triggered_by,
            records_fetched=run.records_fetched,
            records_processed=run.records_processed,
            records_created=run.records_created,
            records_updated=run.records_updated,
            stage_changes=run.stage_changes,
            duration_ms=run.duration_ms,
            error_message=run.error_message,
            next_scheduled_sync_at=next_scheduled_sync_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_source_id": self.data_source_id,
            "run_id": self.run_id,
            "status": self.status.value,
            "trigger": self.trigger.value,
            "success": self.success,
            "records_fetched": self.records_fetched,
            "records_processed": self.records_processed,
            "records_created": self.records_created,
            "records_updated": self.records_updated,
            "stage_changes": self.stage_changes,
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "next_scheduled_sync_at": _iso(self.next_scheduled_sync_at),
        }


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None
