"""
Action dispatcher: a closed registry of adapters keyed by action type.

Example::

    dispatcher = ActionDispatcher()
    dispatcher.register(ChannelMessageAction(slack_clients))
    result = await dispatcher.execute(
        "channel_message",
        {"channel_id": "C123"},
        event_payload,
        tenant_id="org_1",
        event_type="rock/status.changed",
    )

The dispatcher is not idempotent; callers deduplicate on (rule, event)
before dispatching.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from cadence.automation.actions.config import parse_action_config
from cadence.automation.actions.protocol import ActionAdapter, ActionContext, ActionResult
from cadence.automation.models import ActionType
from cadence.core.errors import UnknownActionTypeError
from cadence.core.logging import get_logger

logger = get_logger(__name__)


class ActionDispatcher:
    """Select and run the adapter for an action type."""

    def __init__(self, adapters: list[ActionAdapter] | None = None) -> None:
        self._adapters: dict[ActionType, ActionAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ActionAdapter) -> None:
        self._adapters[ActionType(adapter.action_type)] = adapter

    def supports(self, action_type: str | ActionType) -> bool:
        try:
            return ActionType.parse(action_type) in self._adapters
        except UnknownActionTypeError:
            return False

    @property
    def action_types(self) -> list[ActionType]:
        return sorted(self._adapters, key=lambda t: t.value)

    async def execute(
        self,
        action_type: str | ActionType,
        action_config: Mapping[str, Any] | BaseModel,
        event_payload: Mapping[str, Any],
        tenant_id: str,
        event_type: str = "",
    ) -> ActionResult:
        """Run one action.

        Raises:
            UnknownActionTypeError: no adapter is registered for ``action_type``.
            InvalidActionConfigError: raw ``action_config`` fails validation.
            CadenceError: whatever the adapter raises.
        """
        kind = ActionType.parse(action_type)
        adapter = self._adapters.get(kind)
        if adapter is None:
            raise UnknownActionTypeError(
                f"No adapter registered for action type {kind.value!r}"
            ).with_context(tenant_id=tenant_id, action_type=kind.value)

        config = (
            action_config
            if isinstance(action_config, BaseModel)
            else parse_action_config(kind, action_config)
        )
        context = ActionContext(tenant_id=tenant_id, event_type=event_type, payload=event_payload)

        logger.debug("action.dispatch", action_type=kind.value, tenant_id=tenant_id)
        return await adapter.execute(config, context)


__all__ = ["ActionDispatcher"]
