"""
SQLite-backed store.

Each repository is a :class:`~cadence.core.repository.BaseRepository`
over the shared connection and lock; the tables come from
:mod:`cadence.core.schema`. Invariants that must survive concurrent
writers (one claim per (rule, event, attempt), one open stage interval
per entity) are backed by unique indexes, not only by code.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from cadence.automation.actions.config import parse_action_config
from cadence.automation.models import (
    ActionExecutionRecord,
    AutomationRule,
    DocumentPush,
    ExecutionStatus,
    TriggerEvent,
)
from cadence.core.connection import create_connection
from cadence.core.events import DomainEvent
from cadence.core.repository import BaseRepository, dumps, loads, parse_ts, ts
from cadence.core.schema import CORE_TABLES, create_tables
from cadence.core.timestamps import utc_now
from cadence.sync.models import (
    DataSourceRegistration,
    StageHistoryInterval,
    SyncedRecord,
    SyncFrequency,
    SyncRun,
    SyncStatus,
    SyncTrigger,
)

T = CORE_TABLES


# =============================================================================
# AUTOMATIONS
# =============================================================================


class SqliteRuleRepository(BaseRepository):
    def save(self, rule: AutomationRule) -> None:
        with self.transaction():
            self.execute(f"DELETE FROM {T['rules']} WHERE id = ?", (rule.id,))
            self.insert(T["rules"], {
                "id": rule.id,
                "tenant_id": rule.tenant_id,
                "name": rule.name,
                "trigger_event": rule.trigger_event.value,
                "trigger_conditions": dumps(rule.trigger_conditions),
                "action_type": rule.action_type.value,
                "action_config": dumps(rule.action.to_config_dict()),
                "is_active": int(rule.is_active),
                "created_at": ts(rule.created_at),
                "updated_at": ts(rule.updated_at),
            })

    def get(self, rule_id: str) -> AutomationRule | None:
        row = self.query_one(f"SELECT * FROM {T['rules']} WHERE id = ?", (rule_id,))
        return self._to_rule(row) if row else None

    def list_active(self, tenant_id: str, trigger_event: str) -> list[AutomationRule]:
        rows = self.query(
            f"SELECT * FROM {T['rules']} "
            "WHERE tenant_id = ? AND trigger_event = ? AND is_active = 1",
            (tenant_id, trigger_event),
        )
        return [self._to_rule(row) for row in rows]

    def list_for_tenant(self, tenant_id: str) -> list[AutomationRule]:
        rows = self.query(
            f"SELECT * FROM {T['rules']} WHERE tenant_id = ? ORDER BY created_at",
            (tenant_id,),
        )
        return [self._to_rule(row) for row in rows]

    @staticmethod
    def _to_rule(row: dict[str, Any]) -> AutomationRule:
        # Stored config was validated on save; re-parsing keeps the typed union.
        return AutomationRule(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            trigger_event=TriggerEvent(row["trigger_event"]),
            trigger_conditions=loads(row["trigger_conditions"], {}),
            action=parse_action_config(row["action_type"], loads(row["action_config"], {})),
            is_active=bool(row["is_active"]),
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )


class SqliteEventRepository(BaseRepository):
    def record(self, event: DomainEvent) -> bool:
        with self.transaction():
            cursor = self.execute(
                f"INSERT OR IGNORE INTO {T['events']} "
                "(id, tenant_id, event_type, payload, occurred_at, received_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    event.event_id,
                    event.tenant_id,
                    event.event_type,
                    dumps(event.payload),
                    ts(event.occurred_at),
                    ts(utc_now()),
                ),
            )
            return cursor.rowcount == 1

    def get(self, event_id: str) -> DomainEvent | None:
        row = self.query_one(f"SELECT * FROM {T['events']} WHERE id = ?", (event_id,))
        if row is None:
            return None
        return DomainEvent(
            event_type=row["event_type"],
            tenant_id=row["tenant_id"],
            payload=loads(row["payload"], {}),
            occurred_at=parse_ts(row["occurred_at"]),
            event_id=row["id"],
        )


class SqliteExecutionRepository(BaseRepository):
    def claim(self, record: ActionExecutionRecord) -> bool:
        try:
            with self.transaction():
                self.insert(T["executions"], self._to_row(record))
        except sqlite3.IntegrityError:
            return False
        return True

    def save(self, record: ActionExecutionRecord) -> None:
        row = self._to_row(record)
        row.pop("id")
        with self.transaction():
            self.update(T["executions"], {"id": record.id}, row)

    def get(self, record_id: str) -> ActionExecutionRecord | None:
        row = self.query_one(f"SELECT * FROM {T['executions']} WHERE id = ?", (record_id,))
        return self._to_record(row) if row else None

    def latest_for(self, rule_id: str, event_id: str) -> ActionExecutionRecord | None:
        row = self.query_one(
            f"SELECT * FROM {T['executions']} WHERE rule_id = ? AND event_id = ? "
            "ORDER BY attempt DESC LIMIT 1",
            (rule_id, event_id),
        )
        return self._to_record(row) if row else None

    def list_for_rule(self, rule_id: str, limit: int = 50) -> list[ActionExecutionRecord]:
        rows = self.query(
            f"SELECT * FROM {T['executions']} WHERE rule_id = ? "
            "ORDER BY created_at DESC LIMIT ?",
            (rule_id, limit),
        )
        return [self._to_record(row) for row in rows]

    def list_for_event(self, event_id: str) -> list[ActionExecutionRecord]:
        rows = self.query(
            f"SELECT * FROM {T['executions']} WHERE event_id = ? ORDER BY created_at",
            (event_id,),
        )
        return [self._to_record(row) for row in rows]

    @staticmethod
    def _to_row(record: ActionExecutionRecord) -> dict[str, Any]:
        return {
            "id": record.id,
            "rule_id": record.rule_id,
            "tenant_id": record.tenant_id,
            "event_id": record.event_id,
            "event_type": record.event_type,
            "event_data": dumps(record.event_data),
            "status": record.status.value,
            "result": dumps(record.result) if record.result is not None else None,
            "error_message": record.error_message,
            "retryable": int(record.retryable),
            "attempt": record.attempt,
            "is_test": int(record.is_test),
            "created_at": ts(record.created_at),
            "started_at": ts(record.started_at),
            "completed_at": ts(record.completed_at),
        }

    @staticmethod
    def _to_record(row: dict[str, Any]) -> ActionExecutionRecord:
        return ActionExecutionRecord(
            id=row["id"],
            rule_id=row["rule_id"],
            tenant_id=row["tenant_id"],
            event_id=row["event_id"],
            event_type=row["event_type"],
            event_data=loads(row["event_data"], {}),
            status=ExecutionStatus(row["status"]),
            result=loads(row["result"]),
            error_message=row["error_message"],
            retryable=bool(row["retryable"]),
            attempt=row["attempt"],
            is_test=bool(row["is_test"]),
            created_at=parse_ts(row["created_at"]),
            started_at=parse_ts(row["started_at"]),
            completed_at=parse_ts(row["completed_at"]),
        )


class SqliteUserDirectory(BaseRepository):
    def lookup(self, tenant_id: str, profile_id: str, channel: str = "slack") -> str | None:
        row = self.query_one(
            f"SELECT external_user_id FROM {T['user_directory']} "
            "WHERE tenant_id = ? AND profile_id = ? AND channel = ?",
            (tenant_id, profile_id, channel),
        )
        return row["external_user_id"] if row else None

    def link(
        self, tenant_id: str, profile_id: str, external_user_id: str, channel: str = "slack"
    ) -> None:
        with self.transaction():
            self.execute(
                f"INSERT INTO {T['user_directory']} "
                "(tenant_id, profile_id, channel, external_user_id) VALUES (?, ?, ?, ?) "
                "ON CONFLICT (tenant_id, profile_id, channel) "
                "DO UPDATE SET external_user_id = excluded.external_user_id",
                (tenant_id, profile_id, channel, external_user_id),
            )


class SqliteDocumentPushRepository(BaseRepository):
    def record(self, push: DocumentPush) -> None:
        with self.transaction():
            self.insert(T["document_pushes"], {
                "id": push.id,
                "tenant_id": push.tenant_id,
                "profile_id": push.profile_id,
                "document_id": push.document_id,
                "document_type": push.document_type,
                "source_id": push.source_id,
                "title": push.title,
                "folder": push.folder,
                "status": push.status,
                "pushed_at": ts(push.pushed_at),
            })

    def list_for_profile(self, profile_id: str) -> list[DocumentPush]:
        rows = self.query(
            f"SELECT * FROM {T['document_pushes']} WHERE profile_id = ? ORDER BY pushed_at",
            (profile_id,),
        )
        return [
            DocumentPush(**{**row, "pushed_at": parse_ts(row["pushed_at"])})
            for row in rows
        ]


# =============================================================================
# SYNC
# =============================================================================


class SqliteDataSourceRepository(BaseRepository):
    def save(self, registration: DataSourceRegistration) -> None:
        r = registration
        with self.transaction():
            self.execute(
                f"INSERT OR REPLACE INTO {T['data_sources']} "
                "(id, tenant_id, provider, object_type, stage_field, sync_frequency, "
                "is_active, next_scheduled_sync_at, last_sync_at, last_sync_status, "
                "last_sync_error, records_count, settings, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    r.id, r.tenant_id, r.provider, r.object_type, r.stage_field,
                    r.sync_frequency.value, int(r.is_active), ts(r.next_scheduled_sync_at),
                    ts(r.last_sync_at), r.last_sync_status, r.last_sync_error,
                    r.records_count, dumps(r.settings), ts(r.created_at),
                ),
            )

    def get(self, data_source_id: str) -> DataSourceRegistration | None:
        row = self.query_one(
            f"SELECT * FROM {T['data_sources']} WHERE id = ?", (data_source_id,)
        )
        return self._to_registration(row) if row else None

    def list_due(self, now: datetime, limit: int) -> list[DataSourceRegistration]:
        rows = self.query(
            f"SELECT * FROM {T['data_sources']} "
            "WHERE is_active = 1 AND sync_frequency != 'manual' "
            "AND (next_scheduled_sync_at IS NULL OR next_scheduled_sync_at <= ?) "
            "ORDER BY next_scheduled_sync_at IS NOT NULL, next_scheduled_sync_at ASC "
            "LIMIT ?",
            (ts(now), limit),
        )
        return [self._to_registration(row) for row in rows]

    def list_for_tenant(
        self, tenant_id: str, active_only: bool = False
    ) -> list[DataSourceRegistration]:
        sql = f"SELECT * FROM {T['data_sources']} WHERE tenant_id = ?"
        if active_only:
            sql += " AND is_active = 1"
        rows = self.query(sql + " ORDER BY created_at", (tenant_id,))
        return [self._to_registration(row) for row in rows]

    @staticmethod
    def _to_registration(row: dict[str, Any]) -> DataSourceRegistration:
        return DataSourceRegistration(
            id=row["id"],
            tenant_id=row["tenant_id"],
            provider=row["provider"],
            object_type=row["object_type"],
            stage_field=row["stage_field"],
            sync_frequency=SyncFrequency(row["sync_frequency"]),
            is_active=bool(row["is_active"]),
            next_scheduled_sync_at=parse_ts(row["next_scheduled_sync_at"]),
            last_sync_at=parse_ts(row["last_sync_at"]),
            last_sync_status=row["last_sync_status"],
            last_sync_error=row["last_sync_error"],
            records_count=row["records_count"],
            settings=loads(row["settings"], {}),
            created_at=parse_ts(row["created_at"]),
        )


class SqliteSyncRunRepository(BaseRepository):
    def add(self, run: SyncRun) -> None:
        with self.transaction():
            self.insert(T["sync_runs"], self._to_row(run))

    def save(self, run: SyncRun) -> None:
        row = self._to_row(run)
        row.pop("id")
        with self.transaction():
            self.update(T["sync_runs"], {"id": run.id}, row)

    def get(self, run_id: str) -> SyncRun | None:
        row = self.query_one(f"SELECT * FROM {T['sync_runs']} WHERE id = ?", (run_id,))
        return self._to_run(row) if row else None

    def list_for_source(self, data_source_id: str, limit: int = 20) -> list[SyncRun]:
        rows = self.query(
            f"SELECT * FROM {T['sync_runs']} WHERE data_source_id = ? "
            "ORDER BY started_at DESC LIMIT ?",
            (data_source_id, limit),
        )
        return [self._to_run(row) for row in rows]

    @staticmethod
    def _to_row(run: SyncRun) -> dict[str, Any]:
        return {
            "id": run.id,
            "data_source_id": run.data_source_id,
            "tenant_id": run.tenant_id,
            "triggered_by": run.triggered_by.value,
            "status": run.status.value,
            "started_at": ts(run.started_at),
            "completed_at": ts(run.completed_at),
            "duration_ms": run.duration_ms,
            "records_fetched": run.records_fetched,
            "records_processed": run.records_processed,
            "records_created": run.records_created,
            "records_updated": run.records_updated,
            "stage_changes": run.stage_changes,
            "error_message": run.error_message,
        }

    @staticmethod
    def _to_run(row: dict[str, Any]) -> SyncRun:
        return SyncRun(
            id=row["id"],
            data_source_id=row["data_source_id"],
            tenant_id=row["tenant_id"],
            triggered_by=SyncTrigger(row["triggered_by"]),
            status=SyncStatus(row["status"]),
            started_at=parse_ts(row["started_at"]),
            completed_at=parse_ts(row["completed_at"]),
            duration_ms=row["duration_ms"],
            records_fetched=row["records_fetched"],
            records_processed=row["records_processed"],
            records_created=row["records_created"],
            records_updated=row["records_updated"],
            stage_changes=row["stage_changes"],
            error_message=row["error_message"],
        )


class SqliteRecordRepository(BaseRepository):
    def get_many(
        self, data_source_id: str, external_ids: Iterable[str]
    ) -> dict[str, SyncedRecord]:
        ids = list(external_ids)
        found: dict[str, SyncedRecord] = {}
        # stay under sqlite's bound-parameter limit
        for start in range(0, len(ids), 500):
            chunk = ids[start:start + 500]
            ph = ", ".join("?" for _ in chunk)
            rows = self.query(
                f"SELECT * FROM {T['synced_records']} "
                f"WHERE data_source_id = ? AND external_id IN ({ph})",
                (data_source_id, *chunk),
            )
            for row in rows:
                found[row["external_id"]] = SyncedRecord(
                    data_source_id=row["data_source_id"],
                    external_id=row["external_id"],
                    tenant_id=row["tenant_id"],
                    object_type=row["object_type"],
                    data=loads(row["data"], {}),
                    synced_at=parse_ts(row["synced_at"]),
                )
        return found

    def upsert_many(self, records: list[SyncedRecord]) -> None:
        if not records:
            return
        with self.transaction():
            self.conn.executemany(
                f"INSERT INTO {T['synced_records']} "
                "(data_source_id, external_id, tenant_id, object_type, data, synced_at) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT (data_source_id, external_id) DO UPDATE SET "
                "data = excluded.data, synced_at = excluded.synced_at",
                [
                    (r.data_source_id, r.external_id, r.tenant_id, r.object_type,
                     dumps(r.data), ts(r.synced_at))
                    for r in records
                ],
            )

    def count(self, data_source_id: str) -> int:
        row = self.query_one(
            f"SELECT COUNT(*) AS n FROM {T['synced_records']} WHERE data_source_id = ?",
            (data_source_id,),
        )
        return row["n"] if row else 0


class SqliteStageHistoryRepository(BaseRepository):
    def get_open(self, data_source_id: str, entity_id: str) -> StageHistoryInterval | None:
        row = self.query_one(
            f"SELECT * FROM {T['stage_history']} "
            "WHERE data_source_id = ? AND entity_id = ? AND exited_at IS NULL",
            (data_source_id, entity_id),
        )
        return self._to_interval(row) if row else None

    def transition(self, interval: StageHistoryInterval) -> StageHistoryInterval | None:
        with self.transaction():
            closed = self.get_open(interval.data_source_id, interval.entity_id)
            if closed is not None:
                self.update(
                    T["stage_history"],
                    {"id": closed.id},
                    {"exited_at": ts(interval.entered_at)},
                )
                closed.exited_at = interval.entered_at
            self.insert(T["stage_history"], {
                "id": interval.id,
                "data_source_id": interval.data_source_id,
                "tenant_id": interval.tenant_id,
                "entity_type": interval.entity_type,
                "entity_id": interval.entity_id,
                "from_stage": interval.from_stage,
                "to_stage": interval.to_stage,
                "entered_at": ts(interval.entered_at),
                "exited_at": ts(interval.exited_at),
            })
        return closed

    def list_for_entity(self, data_source_id: str, entity_id: str) -> list[StageHistoryInterval]:
        rows = self.query(
            f"SELECT * FROM {T['stage_history']} "
            "WHERE data_source_id = ? AND entity_id = ? ORDER BY entered_at, rowid",
            (data_source_id, entity_id),
        )
        return [self._to_interval(row) for row in rows]

    @staticmethod
    def _to_interval(row: dict[str, Any]) -> StageHistoryInterval:
        return StageHistoryInterval(
            id=row["id"],
            data_source_id=row["data_source_id"],
            tenant_id=row["tenant_id"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            from_stage=row["from_stage"],
            to_stage=row["to_stage"],
            entered_at=parse_ts(row["entered_at"]),
            exited_at=parse_ts(row["exited_at"]),
        )


class SqliteStore:
    """All repositories over one sqlite connection."""

    def __init__(self, conn: sqlite3.Connection, *, init_schema: bool = True) -> None:
        self.conn = conn
        if init_schema:
            create_tables(conn)
        lock = threading.RLock()
        self.rules = SqliteRuleRepository(conn, lock)
        self.events = SqliteEventRepository(conn, lock)
        self.executions = SqliteExecutionRepository(conn, lock)
        self.directory = SqliteUserDirectory(conn, lock)
        self.documents = SqliteDocumentPushRepository(conn, lock)
        self.data_sources = SqliteDataSourceRepository(conn, lock)
        self.sync_runs = SqliteSyncRunRepository(conn, lock)
        self.records = SqliteRecordRepository(conn, lock)
        self.stage_history = SqliteStageHistoryRepository(conn, lock)

    @classmethod
    def from_url(cls, database_url: str | None) -> SqliteStore:
        conn, _info = create_connection(database_url)
        return cls(conn)

    def close(self) -> None:
        self.conn.close()


__all__ = ["SqliteStore"]
