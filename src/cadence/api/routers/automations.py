"""
Automation rules router.

Rules are validated when saved: an unknown trigger or action type, or an
action configuration that does not fit its adapter, is rejected with a
400 problem response listing the offending fields.

Endpoints:
    POST /automations                     Create or replace a rule
    GET  /automations                     List a tenant's rules
    GET  /automations/{rule_id}           Get one rule
    POST /automations/{rule_id}/test      Run a rule against sample data
    GET  /automations/{rule_id}/executions  Recent execution records
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from cadence.api.deps import ContainerDep
from cadence.automation.models import AutomationRule
from cadence.core.errors import RuleNotFoundError

router = APIRouter(prefix="/automations")


# ------------------------------------------------------------------ #
# Schemas
# ------------------------------------------------------------------ #


class CreateAutomationRequest(BaseModel):
    id: str | None = None
    tenant_id: str
    name: str = ""
    trigger_event: str
    trigger_conditions: dict[str, Any] = Field(default_factory=dict)
    action_type: str
    action_config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class RunTestRequest(BaseModel):
    event_data: dict[str, Any] | None = None
    profile_id: str | None = None


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _get_rule(container: Any, rule_id: str) -> AutomationRule:
    rule = container.store.rules.get(rule_id)
    if rule is None:
        raise RuleNotFoundError(f"Automation not found: {rule_id}").with_context(rule_id=rule_id)
    return rule


# ------------------------------------------------------------------ #
# Endpoints
# ------------------------------------------------------------------ #


@router.post("", status_code=201)
def create_automation(body: CreateAutomationRequest, container: ContainerDep) -> dict[str, Any]:
    rule = AutomationRule.create(
        tenant_id=body.tenant_id,
        trigger_event=body.trigger_event,
        action_type=body.action_type,
        action_config=body.action_config,
        trigger_conditions=body.trigger_conditions,
        name=body.name,
        is_active=body.is_active,
        rule_id=body.id,
    )
    container.store.rules.save(rule)
    return rule.to_dict()


@router.get("")
def list_automations(
    container: ContainerDep, tenant_id: str = Query(..., description="Owning tenant")
) -> list[dict[str, Any]]:
    return [rule.to_dict() for rule in container.store.rules.list_for_tenant(tenant_id)]


@router.get("/{rule_id}")
def get_automation(rule_id: str, container: ContainerDep) -> dict[str, Any]:
    return _get_rule(container, rule_id).to_dict()


@router.post("/{rule_id}/test")
async def test_automation(
    rule_id: str, container: ContainerDep, body: RunTestRequest | None = None
) -> dict[str, Any]:
    """Run the rule once, tagged as a test; sample data is used when none is given."""
    body = body or RunTestRequest()
    record = await container.orchestrator.run_test(
        rule_id, event_data=body.event_data, profile_id=body.profile_id
    )
    return record.to_dict()


@router.get("/{rule_id}/executions")
def list_executions(
    rule_id: str,
    container: ContainerDep,
    limit: int = Query(50, ge=1, le=500),
) -> list[dict[str, Any]]:
    _get_rule(container, rule_id)
    return [r.to_dict() for r in container.orchestrator.log.recent(rule_id, limit)]
