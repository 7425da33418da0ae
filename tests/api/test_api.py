"""HTTP API tests through FastAPI's TestClient over a faked container."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cadence import __version__
from cadence.api import create_app

PREFIX = "/api/v1"


@pytest.fixture
def client(container):
    with TestClient(create_app(container=container)) as test_client:
        yield test_client


def _create_rule(client, **overrides) -> dict:
    body = {
        "tenant_id": "org-1",
        "name": "Off track rocks",
        "trigger_event": "rock/status.changed",
        "trigger_conditions": {"new_status": "off_track"},
        "action_type": "channel_message",
        "action_config": {"channel_id": "C1", "message_template": "{{title}} is off track"},
    }
    body.update(overrides)
    response = client.post(f"{PREFIX}/automations", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "service": "cadence",
            "version": __version__,
            "database": "memory",
        }


class TestAutomations:
    def test_create_get_and_list(self, client):
        rule = _create_rule(client)
        assert rule["action_type"] == "channel_message"
        assert rule["is_active"] is True

        assert client.get(f"{PREFIX}/automations/{rule['id']}").json() == rule
        listed = client.get(f"{PREFIX}/automations", params={"tenant_id": "org-1"}).json()
        assert [r["id"] for r in listed] == [rule["id"]]
        assert client.get(f"{PREFIX}/automations", params={"tenant_id": "org-2"}).json() == []

    def test_create_with_explicit_id(self, client):
        rule = _create_rule(client, id="rule-1")
        assert rule["id"] == "rule-1"

    def test_invalid_config_is_problem_400(self, client):
        response = client.post(
            f"{PREFIX}/automations",
            json={
                "tenant_id": "org-1",
                "trigger_event": "issue/queued",
                "action_type": "channel_message",
                "action_config": {},
            },
        )
        assert response.status_code == 400
        assert response.headers["content-type"].startswith("application/problem+json")
        problem = response.json()
        assert problem["status"] == 400
        assert problem["title"] == "Invalid configuration"
        assert problem["errors"][0]["field"] == "channel_id"
        assert problem["errors"][0]["code"] == "CONFIG"

    def test_unknown_trigger_is_400(self, client):
        response = client.post(
            f"{PREFIX}/automations",
            json={
                "tenant_id": "org-1",
                "trigger_event": "rock/exploded",
                "action_type": "channel_message",
                "action_config": {"channel_id": "C1"},
            },
        )
        assert response.status_code == 400

    def test_missing_rule_is_problem_404(self, client):
        response = client.get(f"{PREFIX}/automations/missing")
        assert response.status_code == 404
        problem = response.json()
        assert problem["detail"] == "Automation not found: missing"
        assert problem["instance"] == f"{PREFIX}/automations/missing"

    def test_run_test_with_sample_data(self, client, channel):
        rule = _create_rule(client)
        response = client.post(f"{PREFIX}/automations/{rule['id']}/test")

        assert response.status_code == 200
        record = response.json()
        assert record["status"] == "success"
        assert record["is_test"] is True
        assert record["result"]["is_test"] is True
        assert channel.sent[0][0] == "C1"

    def test_run_test_with_event_data(self, client, channel):
        rule = _create_rule(client)
        response = client.post(
            f"{PREFIX}/automations/{rule['id']}/test",
            json={"event_data": {"new_status": "on_track"}},
        )
        assert response.json()["status"] == "skipped"
        assert channel.sent == []

    def test_run_test_missing_rule(self, client):
        assert client.post(f"{PREFIX}/automations/missing/test").status_code == 404

    def test_executions(self, client):
        rule = _create_rule(client)
        client.post(f"{PREFIX}/automations/{rule['id']}/test")
        client.post(f"{PREFIX}/automations/{rule['id']}/test")

        executions = client.get(f"{PREFIX}/automations/{rule['id']}/executions").json()
        assert len(executions) == 2
        limited = client.get(f"{PREFIX}/automations/{rule['id']}/executions", params={"limit": 1}).json()
        assert len(limited) == 1
        assert client.get(f"{PREFIX}/automations/missing/executions").status_code == 404


class TestEvents:
    def test_event_runs_matching_rules(self, client, channel):
        _create_rule(client)
        response = client.post(
            f"{PREFIX}/events",
            json={
                "id": "evt-1",
                "type": "rock/status.changed",
                "tenantId": "org-1",
                "payload": {"new_status": "off_track", "title": "Launch"},
            },
        )

        assert response.status_code == 200
        outcome = response.json()
        assert outcome["event_id"] == "evt-1"
        assert len(outcome["executions"]) == 1
        assert outcome["executions"][0]["status"] == "success"
        assert outcome["executions"][0]["deduplicated"] is False
        assert channel.sent == [("C1", "Launch is off track")]

    def test_replayed_event_is_deduplicated(self, client, channel):
        _create_rule(client)
        body = {
            "id": "evt-1",
            "type": "rock/status.changed",
            "tenantId": "org-1",
            "payload": {"new_status": "off_track"},
        }
        client.post(f"{PREFIX}/events", json=body)
        replay = client.post(f"{PREFIX}/events", json=body).json()

        assert replay["executions"][0]["deduplicated"] is True
        assert len(channel.sent) == 1

    def test_event_without_tenant_is_ignored(self, client):
        response = client.post(f"{PREFIX}/events", json={"type": "issue/queued"})
        assert response.status_code == 200
        assert response.json()["ignored_reason"] == "no_tenant"

    def test_retryable_failure_is_202(self, client, channel):
        channel.ok = False
        channel.error = "channel_not_found"
        _create_rule(client)
        response = client.post(
            f"{PREFIX}/events",
            json={"type": "rock/status.changed", "tenantId": "org-1", "payload": {"new_status": "off_track"}},
        )
        assert response.status_code == 202
        assert response.json()["needs_redelivery"] is True

    def test_missing_type_is_validation_error(self, client):
        assert client.post(f"{PREFIX}/events", json={"tenantId": "org-1"}).status_code == 422


class TestSync:
    def _register(self, client, **overrides) -> dict:
        body = {"tenant_id": "org-1", "provider": "fake", "object_type": "deals"}
        body.update(overrides)
        response = client.post(f"{PREFIX}/sync/sources", json=body)
        assert response.status_code == 201, response.text
        return response.json()

    def test_register_and_get(self, client):
        source = self._register(client, sync_frequency="15min")
        assert source["sync_frequency"] == "15min"
        assert source["stage_field"] == "dealstage"
        assert client.get(f"{PREFIX}/sync/sources/{source['id']}").json() == source

    def test_bad_frequency_is_422(self, client):
        response = client.post(
            f"{PREFIX}/sync/sources",
            json={"tenant_id": "org-1", "provider": "fake", "object_type": "deals", "sync_frequency": "weekly"},
        )
        assert response.status_code == 422

    def test_run_runs_and_stages(self, client, provider):
        source = self._register(client)
        provider.set(source["id"], {"d1": {"dealstage": "appointment"}})

        result = client.post(f"{PREFIX}/sync/sources/{source['id']}/run").json()
        assert result["success"] is True
        assert result["records_created"] == 1
        assert result["trigger"] == "manual"

        runs = client.get(f"{PREFIX}/sync/sources/{source['id']}/runs").json()
        assert len(runs) == 1
        assert runs[0]["status"] == "success"

        stages = client.get(f"{PREFIX}/sync/sources/{source['id']}/stages/d1").json()
        assert [s["to_stage"] for s in stages] == ["appointment"]
        assert stages[0]["exited_at"] is None

    def test_failed_run_is_reported_not_raised(self, client, provider):
        source = self._register(client, tenant_id="org-9")
        response = client.post(f"{PREFIX}/sync/sources/{source['id']}/run")
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_unknown_source_is_404(self, client):
        assert client.get(f"{PREFIX}/sync/sources/missing").status_code == 404
        assert client.post(f"{PREFIX}/sync/sources/missing/run").status_code == 404
        assert client.get(f"{PREFIX}/sync/sources/missing/runs").status_code == 404

    def test_tick_syncs_due_sources(self, client):
        self._register(client)
        self._register(client, tenant_id="org-2")
        self._register(client, sync_frequency="manual")

        tick = client.post(f"{PREFIX}/sync/tick").json()
        assert tick["scanned"] == 2
        assert tick["succeeded"] == 2
        assert tick["failed"] == 0
