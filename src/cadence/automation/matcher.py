"""Rule matcher: which of a tenant's rules subscribe to an event type."""

from __future__ import annotations

from cadence.automation.models import AutomationRule, TriggerEvent
from cadence.storage.protocols import RuleRepository


class RuleMatcher:
    def __init__(self, rules: RuleRepository) -> None:
        self._rules = rules

    def find_candidates(self, tenant_id: str, event_type: str) -> list[AutomationRule]:
        """Active rules of ``tenant_id`` triggered by ``event_type``.

        An unsupported event type has no subscribers; the result is empty,
        not an error. Order is unspecified.
        """
        if not TriggerEvent.is_supported(event_type):
            return []
        return [
            rule
            for rule in self._rules.list_active(tenant_id, event_type)
            if rule.is_active and rule.trigger_event.value == event_type
        ]
