"""Event-driven automations: rules, conditions, actions and the orchestrator.

The orchestrator and action adapters are imported from their modules
(``cadence.automation.orchestrator``, ``cadence.automation.actions``);
only the dependency-free pieces are re-exported here.
"""

from cadence.automation.conditions import evaluate
from cadence.automation.models import (
    ActionExecutionRecord,
    ActionType,
    AutomationRule,
    ExecutionStatus,
    TriggerEvent,
)
from cadence.automation.templates import interpolate, render_message

__all__ = [
    "evaluate",
    "interpolate",
    "render_message",
    "ActionExecutionRecord",
    "ActionType",
    "AutomationRule",
    "ExecutionStatus",
    "TriggerEvent",
]
