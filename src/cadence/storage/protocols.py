"""
Repository interfaces the engine depends on.

The engine never reaches for a global database client: every component
takes the repositories it needs, and a :class:`Store` bundles them. Two
implementations ship: :class:`~cadence.storage.memory.MemoryStore` for
tests and single-process use, :class:`~cadence.storage.sqlite.SqliteStore`
for persistence.

Atomicity requirements:

- ``ExecutionRepository.claim`` inserts a record only if no record with
  the same ``(rule_id, event_id, attempt)`` exists, and reports which
  happened. Two workers racing on one (rule, event) cannot both win.
- ``RecordRepository.upsert_many`` is a per-row atomic upsert keyed by
  ``(data_source_id, external_id)``.
- ``StageHistoryRepository.transition`` closes the open interval and
  opens the next one as a single step.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol, runtime_checkable

from cadence.automation.models import ActionExecutionRecord, AutomationRule, DocumentPush
from cadence.core.events import DomainEvent
from cadence.sync.models import (
    DataSourceRegistration,
    StageHistoryInterval,
    SyncedRecord,
    SyncRun,
)


class RuleRepository(Protocol):
    def save(self, rule: AutomationRule) -> None: ...

    def get(self, rule_id: str) -> AutomationRule | None: ...

    def list_active(self, tenant_id: str, trigger_event: str) -> list[AutomationRule]:
        """Active rules of ``tenant_id`` subscribed to ``trigger_event``."""
        ...

    def list_for_tenant(self, tenant_id: str) -> list[AutomationRule]: ...


class EventRepository(Protocol):
    def record(self, event: DomainEvent) -> bool:
        """Store ``event``; False if an event with the same id was already stored."""
        ...

    def get(self, event_id: str) -> DomainEvent | None: ...


class ExecutionRepository(Protocol):
    def claim(self, record: ActionExecutionRecord) -> bool:
        """Insert ``record`` unless its (rule, event, attempt) slot is taken."""
        ...

    def save(self, record: ActionExecutionRecord) -> None:
        """Persist status/result changes of an already-claimed record."""
        ...

    def get(self, record_id: str) -> ActionExecutionRecord | None: ...

    def latest_for(self, rule_id: str, event_id: str) -> ActionExecutionRecord | None:
        """Highest-attempt record for (rule, event), if any."""
        ...

    def list_for_rule(self, rule_id: str, limit: int = 50) -> list[ActionExecutionRecord]:
        """Newest first."""
        ...

    def list_for_event(self, event_id: str) -> list[ActionExecutionRecord]: ...


@runtime_checkable
class UserDirectory(Protocol):
    """Tenant-scoped mapping from platform profiles to channel user ids."""

    def lookup(self, tenant_id: str, profile_id: str, channel: str = "slack") -> str | None: ...

    def link(
        self, tenant_id: str, profile_id: str, external_user_id: str, channel: str = "slack"
    ) -> None: ...


class DocumentPushRepository(Protocol):
    def record(self, push: DocumentPush) -> None: ...

    def list_for_profile(self, profile_id: str) -> list[DocumentPush]: ...


class DataSourceRepository(Protocol):
    def save(self, registration: DataSourceRegistration) -> None:
        """Insert or replace a registration."""
        ...

    def get(self, data_source_id: str) -> DataSourceRegistration | None: ...

    def list_due(self, now: datetime, limit: int) -> list[DataSourceRegistration]:
        """Active, non-manual registrations due at ``now``, oldest due first, nulls first."""
        ...

    def list_for_tenant(
        self, tenant_id: str, active_only: bool = False
    ) -> list[DataSourceRegistration]: ...


class SyncRunRepository(Protocol):
    def add(self, run: SyncRun) -> None: ...

    def save(self, run: SyncRun) -> None: ...

    def get(self, run_id: str) -> SyncRun | None: ...

    def list_for_source(self, data_source_id: str, limit: int = 20) -> list[SyncRun]:
        """Newest first."""
        ...


class RecordRepository(Protocol):
    def get_many(
        self, data_source_id: str, external_ids: Iterable[str]
    ) -> dict[str, SyncedRecord]: ...

    def upsert_many(self, records: list[SyncedRecord]) -> None: ...

    def count(self, data_source_id: str) -> int: ...


class StageHistoryRepository(Protocol):
    def get_open(self, data_source_id: str, entity_id: str) -> StageHistoryInterval | None: ...

    def transition(self, interval: StageHistoryInterval) -> StageHistoryInterval | None:
        """Close the entity's open interval at ``interval.entered_at``, then insert ``interval``.

        Returns the interval that was closed, if there was one.
        """
        ...

    def list_for_entity(self, data_source_id: str, entity_id: str) -> list[StageHistoryInterval]:
        """Oldest first."""
        ...


class Store(Protocol):
    """Bundle of repositories sharing one backing store."""

    rules: RuleRepository
    events: EventRepository
    executions: ExecutionRepository
    directory: UserDirectory
    documents: DocumentPushRepository
    data_sources: DataSourceRepository
    sync_runs: SyncRunRepository
    records: RecordRepository
    stage_history: StageHistoryRepository

    def close(self) -> None: ...


__all__ = [
    "RuleRepository",
    "EventRepository",
    "ExecutionRepository",
    "UserDirectory",
    "DocumentPushRepository",
    "DataSourceRepository",
    "SyncRunRepository",
    "RecordRepository",
    "StageHistoryRepository",
    "Store",
]
