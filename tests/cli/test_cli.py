"""CLI tests through Typer's CliRunner against a sqlite file under tmp_path.

Assertions read the database back instead of parsing rendered output.
"""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from cadence import __version__
from cadence.automation.models import AutomationRule, ExecutionStatus
from cadence.cli.app import app
from cadence.storage import SqliteStore
from cadence.sync.models import SyncStatus

runner = CliRunner()


@pytest.fixture
def db(tmp_path) -> str:
    path = str(tmp_path / "cli.db")
    result = runner.invoke(app, ["db", "init", "--database", path])
    assert result.exit_code == 0, result.output
    return path


@pytest.fixture
def rule(db) -> AutomationRule:
    rule = AutomationRule.create(
        "org-1",
        "rock/status.changed",
        "channel_message",
        {"channel_id": "C1"},
        trigger_conditions={"new_status": "off_track"},
        name="Off track rocks",
    )
    store = SqliteStore.from_url(db)
    store.rules.save(rule)
    store.close()
    return rule


def _open(path: str) -> SqliteStore:
    return SqliteStore.from_url(path)


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"cadence {__version__}" in result.output

    def test_help_lists_groups(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for group in ("db", "automation", "events", "sync", "serve"):
            assert group in result.output


class TestDb:
    def test_init_creates_tables(self, db):
        store = _open(db)
        tables = {
            row["name"]
            for row in store.conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        store.close()
        assert {"automation_rules", "automation_executions", "sync_data_sources", "sync_stage_history"} <= tables

    def test_init_is_idempotent(self, db):
        assert runner.invoke(app, ["db", "init", "--database", db]).exit_code == 0

    def test_memory_database_is_rejected(self):
        result = runner.invoke(app, ["db", "init", "--database", "memory"])
        assert result.exit_code == 1


class TestAutomation:
    def test_list(self, db, rule):
        result = runner.invoke(app, ["automation", "list", "--tenant", "org-1", "--database", db, "--json"])
        assert result.exit_code == 0
        assert "Off track rocks" in result.output

    def test_test_run_with_unmet_conditions(self, db, rule):
        result = runner.invoke(
            app,
            ["automation", "test", rule.id, "--data", '{"new_status": "on_track"}', "--database", db],
        )
        assert result.exit_code == 0, result.output

        store = _open(db)
        [record] = store.executions.list_for_rule(rule.id)
        store.close()
        assert record.is_test is True
        assert record.status is ExecutionStatus.SKIPPED

    def test_bad_json_data_exits_2(self, db, rule):
        result = runner.invoke(app, ["automation", "test", rule.id, "--data", "{nope", "--database", db])
        assert result.exit_code == 2

    def test_unknown_rule_exits_1(self, db):
        result = runner.invoke(app, ["automation", "test", "missing", "--database", db])
        assert result.exit_code == 1

    def test_executions(self, db, rule):
        runner.invoke(app, ["automation", "test", rule.id, "--data", "{}", "--database", db])
        result = runner.invoke(app, ["automation", "executions", rule.id, "--database", db, "--json"])
        assert result.exit_code == 0
        assert '"status": "skipped"' in result.output


class TestEvents:
    def test_send_records_event_and_execution(self, db, rule):
        result = runner.invoke(
            app,
            [
                "events", "send", "rock/status.changed",
                "--tenant", "org-1",
                "--payload", '{"new_status": "on_track"}',
                "--id", "evt-1",
                "--database", db,
            ],
        )
        assert result.exit_code == 0, result.output

        store = _open(db)
        event = store.events.get("evt-1")
        records = store.executions.list_for_event("evt-1")
        store.close()
        assert event.payload == {"new_status": "on_track"}
        assert [r.status for r in records] == [ExecutionStatus.SKIPPED]

    def test_replay_is_deduplicated(self, db, rule):
        args = ["events", "send", "rock/status.changed", "--tenant", "org-1", "--id", "evt-1", "--database", db]
        runner.invoke(app, args)
        runner.invoke(app, args)

        store = _open(db)
        records = store.executions.list_for_event("evt-1")
        store.close()
        assert len(records) == 1


class TestSync:
    def test_register_and_run(self, db):
        result = runner.invoke(
            app, ["sync", "register", "--tenant", "org-1", "--frequency", "15min", "--database", db]
        )
        assert result.exit_code == 0, result.output

        store = _open(db)
        [registration] = store.data_sources.list_for_tenant("org-1")
        store.close()
        assert registration.provider == "hubspot"
        assert registration.sync_frequency.value == "15min"

        # No HubSpot connection is configured, so the run fails and is recorded.
        result = runner.invoke(app, ["sync", "run", registration.id, "--database", db])
        assert result.exit_code == 1

        store = _open(db)
        [run] = store.sync_runs.list_for_source(registration.id)
        stored = store.data_sources.get(registration.id)
        store.close()
        assert run.status is SyncStatus.ERROR
        assert stored.last_sync_status == "error"
        assert stored.next_scheduled_sync_at is None

        result = runner.invoke(app, ["sync", "runs", registration.id, "--database", db, "--json"])
        assert result.exit_code == 0
        assert '"status": "error"' in result.output

    def test_run_unknown_source_exits_1(self, db):
        assert runner.invoke(app, ["sync", "run", "missing", "--database", db]).exit_code == 1

    def test_tick_with_nothing_due(self, db):
        result = runner.invoke(app, ["sync", "tick", "--database", db])
        assert result.exit_code == 0
        assert "scanned" in result.output
