"""In-memory store.

Backs tests and single-process runs. Every repository shares one lock so
the atomicity guarantees of :mod:`cadence.storage.protocols` hold even
when called from a threadpool.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterable
from datetime import datetime

from cadence.automation.models import ActionExecutionRecord, AutomationRule, DocumentPush
from cadence.core.events import DomainEvent
from cadence.sync.models import (
    DataSourceRegistration,
    StageHistoryInterval,
    SyncedRecord,
    SyncRun,
)


class _MemoryRepo:
    def __init__(self, lock: threading.RLock) -> None:
        self._lock = lock


class MemoryRuleRepository(_MemoryRepo):
    def __init__(self, lock: threading.RLock) -> None:
        super().__init__(lock)
        self._rules: dict[str, AutomationRule] = {}

    def save(self, rule: AutomationRule) -> None:
        with self._lock:
            self._rules[rule.id] = copy.deepcopy(rule)

    def get(self, rule_id: str) -> AutomationRule | None:
        with self._lock:
            rule = self._rules.get(rule_id)
            return copy.deepcopy(rule) if rule else None

    def list_active(self, tenant_id: str, trigger_event: str) -> list[AutomationRule]:
        with self._lock:
            return [
                copy.deepcopy(r)
                for r in self._rules.values()
                if r.is_active and r.tenant_id == tenant_id and r.trigger_event.value == trigger_event
            ]

    def list_for_tenant(self, tenant_id: str) -> list[AutomationRule]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._rules.values() if r.tenant_id == tenant_id]


class MemoryEventRepository(_MemoryRepo):
    def __init__(self, lock: threading.RLock) -> None:
        super().__init__(lock)
        self._events: dict[str, DomainEvent] = {}

    def record(self, event: DomainEvent) -> bool:
        with self._lock:
            if event.event_id in self._events:
                return False
            self._events[event.event_id] = event
            return True

    def get(self, event_id: str) -> DomainEvent | None:
        with self._lock:
            return self._events.get(event_id)


class MemoryExecutionRepository(_MemoryRepo):
    def __init__(self, lock: threading.RLock) -> None:
        super().__init__(lock)
        self._records: dict[str, ActionExecutionRecord] = {}

    def claim(self, record: ActionExecutionRecord) -> bool:
        with self._lock:
            if record.event_id is not None:
                for existing in self._records.values():
                    if (
                        existing.rule_id == record.rule_id
                        and existing.event_id == record.event_id
                        and existing.attempt == record.attempt
                    ):
                        return False
            self._records[record.id] = copy.deepcopy(record)
            return True

    def save(self, record: ActionExecutionRecord) -> None:
        with self._lock:
            self._records[record.id] = copy.deepcopy(record)

    def get(self, record_id: str) -> ActionExecutionRecord | None:
        with self._lock:
            record = self._records.get(record_id)
            return copy.deepcopy(record) if record else None

    def latest_for(self, rule_id: str, event_id: str) -> ActionExecutionRecord | None:
        with self._lock:
            matches = [
                r for r in self._records.values()
                if r.rule_id == rule_id and r.event_id == event_id
            ]
            if not matches:
                return None
            return copy.deepcopy(max(matches, key=lambda r: r.attempt))

    def list_for_rule(self, rule_id: str, limit: int = 50) -> list[ActionExecutionRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.rule_id == rule_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [copy.deepcopy(r) for r in records[:limit]]

    def list_for_event(self, event_id: str) -> list[ActionExecutionRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values() if r.event_id == event_id]

    def all(self) -> list[ActionExecutionRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values()]


class MemoryUserDirectory(_MemoryRepo):
    def __init__(self, lock: threading.RLock) -> None:
        super().__init__(lock)
        self._links: dict[tuple[str, str, str], str] = {}

    def lookup(self, tenant_id: str, profile_id: str, channel: str = "slack") -> str | None:
        with self._lock:
            return self._links.get((tenant_id, profile_id, channel))

    def link(
        self, tenant_id: str, profile_id: str, external_user_id: str, channel: str = "slack"
    ) -> None:
        with self._lock:
            self._links[(tenant_id, profile_id, channel)] = external_user_id


class MemoryDocumentPushRepository(_MemoryRepo):
    def __init__(self, lock: threading.RLock) -> None:
        super().__init__(lock)
        self._pushes: list[DocumentPush] = []

    def record(self, push: DocumentPush) -> None:
        with self._lock:
            self._pushes.append(push)

    def list_for_profile(self, profile_id: str) -> list[DocumentPush]:
        with self._lock:
            return [p for p in self._pushes if p.profile_id == profile_id]


class MemoryDataSourceRepository(_MemoryRepo):
    def __init__(self, lock: threading.RLock) -> None:
        super().__init__(lock)
        self._sources: dict[str, DataSourceRegistration] = {}

    def save(self, registration: DataSourceRegistration) -> None:
        with self._lock:
            self._sources[registration.id] = copy.deepcopy(registration)

    def get(self, data_source_id: str) -> DataSourceRegistration | None:
        with self._lock:
            reg = self._sources.get(data_source_id)
            return copy.deepcopy(reg) if reg else None

    def list_due(self, now: datetime, limit: int) -> list[DataSourceRegistration]:
        with self._lock:
            due = [r for r in self._sources.values() if r.is_due(now)]
        # nulls first, then oldest due time
        due.sort(key=lambda r: (r.next_scheduled_sync_at is not None, r.next_scheduled_sync_at or now))
        return [copy.deepcopy(r) for r in due[:limit]]

    def list_for_tenant(
        self, tenant_id: str, active_only: bool = False
    ) -> list[DataSourceRegistration]:
        with self._lock:
            return [
                copy.deepcopy(r)
                for r in self._sources.values()
                if r.tenant_id == tenant_id and (r.is_active or not active_only)
            ]


class MemorySyncRunRepository(_MemoryRepo):
    def __init__(self, lock: threading.RLock) -> None:
        super().__init__(lock)
        self._runs: dict[str, SyncRun] = {}

    def add(self, run: SyncRun) -> None:
        with self._lock:
            self._runs[run.id] = copy.deepcopy(run)

    def save(self, run: SyncRun) -> None:
        with self._lock:
            self._runs[run.id] = copy.deepcopy(run)

    def get(self, run_id: str) -> SyncRun | None:
        with self._lock:
            run = self._runs.get(run_id)
            return copy.deepcopy(run) if run else None

    def list_for_source(self, data_source_id: str, limit: int = 20) -> list[SyncRun]:
        with self._lock:
            runs = [r for r in self._runs.values() if r.data_source_id == data_source_id]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return [copy.deepcopy(r) for r in runs[:limit]]


class MemoryRecordRepository(_MemoryRepo):
    def __init__(self, lock: threading.RLock) -> None:
        super().__init__(lock)
        self._records: dict[tuple[str, str], SyncedRecord] = {}

    def get_many(
        self, data_source_id: str, external_ids: Iterable[str]
    ) -> dict[str, SyncedRecord]:
        with self._lock:
            found = {}
            for ext_id in external_ids:
                record = self._records.get((data_source_id, ext_id))
                if record is not None:
                    found[ext_id] = copy.deepcopy(record)
            return found

    def upsert_many(self, records: list[SyncedRecord]) -> None:
        with self._lock:
            for record in records:
                self._records[(record.data_source_id, record.external_id)] = copy.deepcopy(record)

    def count(self, data_source_id: str) -> int:
        with self._lock:
            return sum(1 for (ds_id, _) in self._records if ds_id == data_source_id)


class MemoryStageHistoryRepository(_MemoryRepo):
    def __init__(self, lock: threading.RLock) -> None:
        super().__init__(lock)
        self._intervals: list[StageHistoryInterval] = []

    def get_open(self, data_source_id: str, entity_id: str) -> StageHistoryInterval | None:
        with self._lock:
            for interval in self._intervals:
                if (
                    interval.data_source_id == data_source_id
                    and interval.entity_id == entity_id
                    and interval.is_open
                ):
                    return copy.deepcopy(interval)
            return None

    def transition(self, interval: StageHistoryInterval) -> StageHistoryInterval | None:
        with self._lock:
            closed = None
            for existing in self._intervals:
                if (
                    existing.data_source_id == interval.data_source_id
                    and existing.entity_id == interval.entity_id
                    and existing.is_open
                ):
                    existing.exited_at = interval.entered_at
                    closed = copy.deepcopy(existing)
            self._intervals.append(copy.deepcopy(interval))
            return closed

    def list_for_entity(self, data_source_id: str, entity_id: str) -> list[StageHistoryInterval]:
        with self._lock:
            return [
                copy.deepcopy(i)
                for i in self._intervals
                if i.data_source_id == data_source_id and i.entity_id == entity_id
            ]


class MemoryStore:
    """All repositories backed by process memory."""

    def __init__(self) -> None:
        lock = threading.RLock()
        self.rules = MemoryRuleRepository(lock)
        self.events = MemoryEventRepository(lock)
        self.executions = MemoryExecutionRepository(lock)
        self.directory = MemoryUserDirectory(lock)
        self.documents = MemoryDocumentPushRepository(lock)
        self.data_sources = MemoryDataSourceRepository(lock)
        self.sync_runs = MemorySyncRunRepository(lock)
        self.records = MemoryRecordRepository(lock)
        self.stage_history = MemoryStageHistoryRepository(lock)

    def close(self) -> None:
        pass


__all__ = ["MemoryStore"]
