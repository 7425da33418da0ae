"""Repository behaviour shared by the memory and sqlite stores.

Every test runs against both backends; the sqlite one uses a file under
``tmp_path`` so reopening it exercises persistence.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from cadence.automation.models import ActionExecutionRecord, AutomationRule, DocumentPush, ExecutionStatus
from cadence.core.connection import parse_url
from cadence.core.events import DomainEvent
from cadence.core.timestamps import generate_id
from cadence.storage import MemoryStore, SqliteStore, create_store
from cadence.sync.models import (
    DataSourceRegistration,
    StageHistoryInterval,
    SyncedRecord,
    SyncRun,
    SyncStatus,
    SyncTrigger,
)
from conftest import T0


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        yield MemoryStore()
    else:
        store = SqliteStore.from_url(str(tmp_path / "cadence.db"))
        yield store
        store.close()


def _rule(**kwargs) -> AutomationRule:
    kwargs.setdefault("trigger_conditions", {"new_status": "off_track"})
    return AutomationRule.create("org-1", "rock/status.changed", "channel_message", {"channel_id": "C1"}, **kwargs)


# =============================================================================
# Automation repositories
# =============================================================================


class TestRuleRepository:
    def test_save_and_get_round_trip(self, any_store):
        rule = _rule(name="Off track")
        any_store.rules.save(rule)
        loaded = any_store.rules.get(rule.id)

        assert loaded.to_dict() == rule.to_dict()
        assert any_store.rules.get("missing") is None

    def test_list_active_filters(self, any_store):
        active = _rule()
        any_store.rules.save(active)
        any_store.rules.save(_rule(is_active=False))
        assert [r.id for r in any_store.rules.list_active("org-1", "rock/status.changed")] == [active.id]
        assert any_store.rules.list_active("org-2", "rock/status.changed") == []
        assert len(any_store.rules.list_for_tenant("org-1")) == 2

    def test_save_overwrites(self, any_store):
        rule = _rule()
        any_store.rules.save(rule)
        rule.is_active = False
        any_store.rules.save(rule)
        assert any_store.rules.get(rule.id).is_active is False
        assert len(any_store.rules.list_for_tenant("org-1")) == 1


class TestEventRepository:
    def test_record_is_idempotent(self, any_store):
        event = DomainEvent("issue/queued", "org-1", {"title": "x"}, occurred_at=T0, event_id="evt-1")
        assert any_store.events.record(event) is True
        assert any_store.events.record(event) is False

        loaded = any_store.events.get("evt-1")
        assert loaded.payload == {"title": "x"}
        assert loaded.occurred_at == T0


class TestExecutionRepository:
    def test_claim_is_unique_per_attempt(self, any_store):
        rule = _rule()
        any_store.rules.save(rule)
        first = ActionExecutionRecord.create(rule, "evt-1", "rock/status.changed", {"a": 1})
        duplicate = ActionExecutionRecord.create(rule, "evt-1", "rock/status.changed", {"a": 1})
        second = ActionExecutionRecord.create(rule, "evt-1", "rock/status.changed", {"a": 1}, attempt=2)

        assert any_store.executions.claim(first) is True
        assert any_store.executions.claim(duplicate) is False
        assert any_store.executions.claim(second) is True
        assert any_store.executions.latest_for(rule.id, "evt-1").attempt == 2
        assert len(any_store.executions.list_for_event("evt-1")) == 2

    def test_test_runs_are_never_unique(self, any_store):
        rule = _rule()
        any_store.rules.save(rule)
        for _ in range(2):
            record = ActionExecutionRecord.create(rule, None, "rock/status.changed", {}, is_test=True)
            assert any_store.executions.claim(record) is True
        assert len(any_store.executions.list_for_rule(rule.id)) == 2

    def test_save_persists_state(self, any_store):
        rule = _rule()
        any_store.rules.save(rule)
        record = ActionExecutionRecord.create(rule, "evt-1", "rock/status.changed", {})
        any_store.executions.claim(record)

        record.mark_running()
        record.mark_error("down", retryable=True, details={"category": "INFRASTRUCTURE"})
        any_store.executions.save(record)

        loaded = any_store.executions.get(record.id)
        assert loaded.status is ExecutionStatus.ERROR
        assert loaded.retryable is True
        assert loaded.error_message == "down"
        assert loaded.result == {"category": "INFRASTRUCTURE"}
        assert loaded.completed_at is not None


class TestDirectoryAndDocuments:
    def test_directory_link_and_relink(self, any_store):
        any_store.directory.link("org-1", "profile-1", "U1")
        any_store.directory.link("org-1", "profile-1", "U2")
        assert any_store.directory.lookup("org-1", "profile-1") == "U2"
        assert any_store.directory.lookup("org-2", "profile-1") is None
        assert any_store.directory.lookup("org-1", "profile-1", channel="teams") is None

    def test_document_pushes(self, any_store):
        push = DocumentPush(
            id=generate_id(),
            tenant_id="org-1",
            profile_id="profile-1",
            document_id="doc-1",
            document_type="briefing",
            source_id="b1",
            title="Morning Briefing",
            folder="/Cadence",
            pushed_at=T0,
        )
        any_store.documents.record(push)
        [loaded] = any_store.documents.list_for_profile("profile-1")
        assert loaded.to_dict() == push.to_dict()


# =============================================================================
# Sync repositories
# =============================================================================


class TestDataSourceRepository:
    def test_due_ordering_and_filters(self, any_store):
        never = DataSourceRegistration.create("org-1", "hubspot", "deals")
        old = DataSourceRegistration.create("org-1", "hubspot", "deals")
        old.next_scheduled_sync_at = T0 - timedelta(hours=2)
        recent = DataSourceRegistration.create("org-1", "hubspot", "deals")
        recent.next_scheduled_sync_at = T0 - timedelta(minutes=1)
        future = DataSourceRegistration.create("org-1", "hubspot", "deals")
        future.next_scheduled_sync_at = T0 + timedelta(minutes=1)
        manual = DataSourceRegistration.create("org-1", "hubspot", "deals", sync_frequency="manual")
        inactive = DataSourceRegistration.create("org-1", "hubspot", "deals", is_active=False)
        for reg in (recent, future, manual, inactive, old, never):
            any_store.data_sources.save(reg)

        due = any_store.data_sources.list_due(T0, 10)
        assert [r.id for r in due] == [never.id, old.id, recent.id]
        assert len(any_store.data_sources.list_due(T0, 2)) == 2
        assert len(any_store.data_sources.list_for_tenant("org-1")) == 6
        assert len(any_store.data_sources.list_for_tenant("org-1", active_only=True)) == 5

    def test_round_trip(self, any_store):
        reg = DataSourceRegistration.create(
            "org-1", "hubspot", "deals", "15min", stage_field="pipeline", settings={"properties": ["a"]}
        )
        reg.last_sync_at = T0
        any_store.data_sources.save(reg)
        loaded = any_store.data_sources.get(reg.id)
        assert loaded.to_dict() == reg.to_dict()
        assert loaded.settings == {"properties": ["a"]}


class TestSyncRunAndRecords:
    def test_runs_newest_first(self, any_store):
        reg = DataSourceRegistration.create("org-1", "hubspot", "deals")
        any_store.data_sources.save(reg)
        for hour in range(3):
            run = SyncRun.start(reg, SyncTrigger.SCHEDULED)
            run.started_at = T0 + timedelta(hours=hour)
            any_store.sync_runs.add(run)
            run.records_fetched = hour
            run.succeed(run.started_at + timedelta(seconds=2))
            any_store.sync_runs.save(run)

        runs = any_store.sync_runs.list_for_source(reg.id)
        assert [r.records_fetched for r in runs] == [2, 1, 0]
        assert all(r.status is SyncStatus.SUCCESS for r in runs)
        assert runs[0].duration_ms == 2000
        assert len(any_store.sync_runs.list_for_source(reg.id, limit=1)) == 1

    def test_record_upsert(self, any_store):
        reg = DataSourceRegistration.create("org-1", "hubspot", "deals")
        any_store.data_sources.save(reg)

        def record(ext_id, **data):
            return SyncedRecord(reg.id, ext_id, "org-1", "deals", data=data, synced_at=T0)

        any_store.records.upsert_many([record("d1", dealstage="a"), record("d2", dealstage="a")])
        any_store.records.upsert_many([record("d1", dealstage="b")])

        found = any_store.records.get_many(reg.id, ["d1", "d2", "d3"])
        assert set(found) == {"d1", "d2"}
        assert found["d1"].data == {"dealstage": "b"}
        assert any_store.records.count(reg.id) == 2


class TestStageHistoryRepository:
    def test_transition_closes_open_interval(self, any_store):
        reg = DataSourceRegistration.create("org-1", "hubspot", "deals")
        any_store.data_sources.save(reg)

        def interval(from_stage, to_stage, at):
            return StageHistoryInterval.open(reg.id, "org-1", "deals", "d1", from_stage, to_stage, at)

        assert any_store.stage_history.transition(interval(None, "a", T0)) is None
        closed = any_store.stage_history.transition(interval("a", "b", T0 + timedelta(hours=1)))

        assert closed.to_stage == "a"
        assert closed.exited_at == T0 + timedelta(hours=1)
        history = any_store.stage_history.list_for_entity(reg.id, "d1")
        assert [(i.to_stage, i.is_open) for i in history] == [("a", False), ("b", True)]
        assert any_store.stage_history.get_open(reg.id, "d1").to_stage == "b"


# =============================================================================
# Factory
# =============================================================================


class TestCreateStore:
    def test_memory(self):
        assert isinstance(create_store("memory"), MemoryStore)
        assert isinstance(create_store(None), MemoryStore)

    def test_sqlite_memory(self):
        store = create_store("memory", sqlite_memory=True)
        assert isinstance(store, SqliteStore)
        store.close()

    def test_sqlite_file_persists(self, tmp_path):
        path = str(tmp_path / "persist.db")
        store = create_store(f"sqlite:///{path}")
        rule = _rule()
        store.rules.save(rule)
        store.close()

        reopened = create_store(path)
        assert reopened.rules.get(rule.id) is not None
        reopened.close()

    def test_parse_url(self):
        assert parse_url(":memory:") == ("memory", ":memory:")
        assert parse_url("sqlite:///data/c.db") == ("file", "data/c.db")
        with pytest.raises(ValueError):
            parse_url("postgresql://localhost/db")
