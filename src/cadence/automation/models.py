"""Automation domain models.

Defines the data structures the automation pipeline reads and writes:

- TriggerEvent: the closed, versioned list of event types rules can subscribe to
- ActionType: the closed set of action adapters
- AutomationRule: tenant-configured trigger + conditions + typed action
- ActionExecutionRecord: one attempt of one rule for one event

Execution records follow a strictly forward state machine::

    PENDING → RUNNING → SUCCESS | SKIPPED | ERROR
    PENDING → ERROR            (claimed, but the store failed before it started)

Terminal states never transition again. ``SKIPPED`` means the rule's
conditions did not match; it is not a failure.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from cadence.core.errors import InvalidTransitionError, InvalidTriggerError, UnknownActionTypeError
from cadence.core.timestamps import generate_id, utc_now


class TriggerEvent(str, Enum):
    """Domain event types automations can subscribe to."""

    MEETING_CREATED = "l10/meeting.created"
    MEETING_UPDATED = "l10/meeting.updated"
    MEETING_STARTING_SOON = "l10/meeting.starting_soon"
    MEETING_STARTED = "l10/meeting.started"
    MEETING_COMPLETED = "l10/meeting.completed"
    ISSUE_CREATED = "issue/created"
    ISSUE_QUEUED = "issue/queued"
    ISSUE_RESOLVED = "issue/resolved"
    ROCK_CREATED = "rock/created"
    ROCK_STATUS_CHANGED = "rock/status.changed"
    ROCK_COMPLETED = "rock/completed"
    TODO_CREATED = "todo/created"
    TODO_COMPLETED = "todo/completed"
    TODO_OVERDUE = "todo/overdue"
    HEADLINE_CREATED = "headline/created"
    SCORECARD_BELOW_GOAL = "scorecard/below_goal"
    SCORECARD_ENTRY_CREATED = "scorecard/entry.created"

    @classmethod
    def is_supported(cls, value: str) -> bool:
        return value in _TRIGGER_VALUES

    @classmethod
    def parse(cls, value: str | TriggerEvent) -> TriggerEvent:
        if isinstance(value, TriggerEvent):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidTriggerError(f"Unsupported trigger event: {value!r}") from None


_TRIGGER_VALUES = frozenset(t.value for t in TriggerEvent)


class ActionType(str, Enum):
    """Action adapters a rule can dispatch to."""

    CHANNEL_MESSAGE = "channel_message"
    DIRECT_MESSAGE = "direct_message"
    DOCUMENT_PUSH = "document_push"
    WEBHOOK = "webhook"

    @classmethod
    def parse(cls, value: str | ActionType) -> ActionType:
        """Parse an action type, accepting the legacy provider-specific names."""
        if isinstance(value, ActionType):
            return value
        value = LEGACY_ACTION_ALIASES.get(value, value)
        try:
            return cls(value)
        except ValueError:
            raise UnknownActionTypeError(f"Unknown action type: {value!r}") from None


LEGACY_ACTION_ALIASES: dict[str, str] = {
    "slack_channel_message": ActionType.CHANNEL_MESSAGE.value,
    "slack_dm": ActionType.DIRECT_MESSAGE.value,
    "push_remarkable": ActionType.DOCUMENT_PUSH.value,
}


class ExecutionStatus(str, Enum):
    """Status of one (rule, event) attempt."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({ExecutionStatus.SUCCESS, ExecutionStatus.SKIPPED, ExecutionStatus.ERROR})

EXECUTION_VALID_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.RUNNING, ExecutionStatus.ERROR}),
    ExecutionStatus.RUNNING: frozenset({
        ExecutionStatus.SUCCESS,
        ExecutionStatus.SKIPPED,
        ExecutionStatus.ERROR,
    }),
    ExecutionStatus.SUCCESS: frozenset(),
    ExecutionStatus.SKIPPED: frozenset(),
    ExecutionStatus.ERROR: frozenset(),
}


def validate_transition(current: ExecutionStatus, target: ExecutionStatus) -> None:
    """Raise :class:`InvalidTransitionError` unless ``current → target`` is allowed."""
    if target not in EXECUTION_VALID_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value, "ExecutionStatus")


@dataclass
class AutomationRule:
    """Tenant-configured mapping from a trigger event and conditions to an action.

    ``action`` is the typed, validated configuration; its variant decides
    the action type. Build rules through :meth:`create` (or
    :func:`~cadence.automation.actions.config.parse_action_config`) so
    configuration problems surface when the rule is saved, not when an
    event arrives.
    """

    id: str
    tenant_id: str
    trigger_event: TriggerEvent
    action: Any  # ActionConfig union, see cadence.automation.actions.config
    trigger_conditions: dict[str, Any] = field(default_factory=dict)
    name: str = ""
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def action_type(self) -> ActionType:
        return self.action.kind

    @classmethod
    def create(
        cls,
        tenant_id: str,
        trigger_event: str | TriggerEvent,
        action_type: str | ActionType,
        action_config: Mapping[str, Any] | None = None,
        trigger_conditions: Mapping[str, Any] | None = None,
        name: str = "",
        is_active: bool = True,
        rule_id: str | None = None,
    ) -> AutomationRule:
        """Validate and build a rule; raises a ConfigurationError subclass on bad input."""
        from cadence.automation.actions.config import parse_action_config

        return cls(
            id=rule_id or generate_id(),
            tenant_id=tenant_id,
            trigger_event=TriggerEvent.parse(trigger_event),
            action=parse_action_config(action_type, action_config or {}),
            trigger_conditions=dict(trigger_conditions or {}),
            name=name,
            is_active=is_active,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "trigger_event": self.trigger_event.value,
            "trigger_conditions": self.trigger_conditions,
            "action_type": self.action_type.value,
            "action_config": self.action.to_config_dict(),
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class ActionExecutionRecord:
    """One attempt of one rule against one event.

    ``event_id`` is None for manual test runs. ``attempt`` starts at 1 and
    only grows when a retryable error is replayed by redelivery.
    """

    id: str
    rule_id: str
    tenant_id: str
    event_id: str | None
    event_type: str
    event_data: dict[str, Any] = field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.PENDING
    result: dict[str, Any] | None = None
    error_message: str | None = None
    retryable: bool = False
    attempt: int = 1
    is_test: bool = False
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def create(
        cls,
        rule: AutomationRule,
        event_id: str | None,
        event_type: str,
        event_data: Mapping[str, Any],
        attempt: int = 1,
        is_test: bool = False,
    ) -> ActionExecutionRecord:
        """Create a new record in PENDING status."""
        return cls(
            id=generate_id(),
            rule_id=rule.id,
            tenant_id=rule.tenant_id,
            event_id=event_id,
            event_type=event_type,
            event_data=dict(event_data),
            attempt=attempt,
            is_test=is_test,
        )

    def transition_to(self, target: ExecutionStatus) -> None:
        validate_transition(self.status, target)
        self.status = target
        if target is ExecutionStatus.RUNNING:
            self.started_at = utc_now()
        elif target.is_terminal:
            self.completed_at = utc_now()

    def mark_running(self) -> None:
        self.transition_to(ExecutionStatus.RUNNING)

    def mark_success(self, result: dict[str, Any]) -> None:
        self.result = result
        self.transition_to(ExecutionStatus.SUCCESS)

    def mark_skipped(self, reason: str = "conditions_not_met") -> None:
        self.result = {"reason": reason}
        self.transition_to(ExecutionStatus.SKIPPED)

    def mark_error(self, message: str, *, retryable: bool = False, details: dict[str, Any] | None = None) -> None:
        self.error_message = message
        self.retryable = retryable
        if details:
            self.result = details
        self.transition_to(ExecutionStatus.ERROR)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "tenant_id": self.tenant_id,
            "event_id": self.event_id,
            "event_type": self.event_type,
            "event_data": self.event_data,
            "status": self.status.value,
            "result": self.result,
            "error_message": self.error_message,
            "retryable": self.retryable,
            "attempt": self.attempt,
            "is_test": self.is_test,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class DocumentPush:
    """Provenance of a document delivered to a user's device."""

    id: str
    tenant_id: str
    profile_id: str
    document_id: str
    document_type: str
    source_id: str | None
    title: str
    folder: str
    status: str = "pushed"
    pushed_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "profile_id": self.profile_id,
            "document_id": self.document_id,
            "document_type": self.document_type,
            "source_id": self.source_id,
            "title": self.title,
            "folder": self.folder,
            "status": self.status,
            "pushed_at": self.pushed_at.isoformat(),
        }
