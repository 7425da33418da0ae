"""
Automation orchestrator.

Manages the lifecycle of one event against a tenant's rules:

1. Drop events with no tenant, record the event (idempotent by id)
2. Find candidate rules for (tenant, event type)
3. Per rule, concurrently and in isolation:
   claim an execution record (deduplicated per (rule, event)),
   mark it running, evaluate conditions (``skipped`` when unmet),
   dispatch the action and finish the record as ``success`` or ``error``.
   A store failure ends only that rule, with its record as ``error``

The orchestrator never retries within a pass. :class:`EventProcessor`
wraps it with an explicit :class:`~cadence.execution.redelivery.Redelivery`
capability that replays the whole event while some rule ended in a
retryable error.

Example::

    orchestrator = AutomationOrchestrator(store, dispatcher)
    outcome = await orchestrator.process_event(
        DomainEvent("rock/status.changed", "org_1", {"new_status": "off_track"})
    )
    for record in outcome.records:
        print(record.rule_id, record.status)
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cadence.automation.actions.dispatcher import ActionDispatcher
from cadence.automation.conditions import evaluate, unmet_conditions
from cadence.automation.log import ExecutionLog
from cadence.automation.matcher import RuleMatcher
from cadence.automation.models import ActionExecutionRecord, AutomationRule, ExecutionStatus, TriggerEvent
from cadence.automation.samples import sample_event_data
from cadence.core.errors import CadenceError, RuleNotFoundError, categorize_error, is_retryable
from cadence.core.events import DomainEvent, EventBus
from cadence.core.logging import LogContext, get_logger
from cadence.execution.redelivery import NoRedelivery, Redelivery
from cadence.storage.protocols import Store

logger = get_logger(__name__)


@dataclass
class RuleExecution:
    """What happened to one rule for one event."""

    record: ActionExecutionRecord
    deduplicated: bool = False
    recorded: bool = True


@dataclass
class EventOutcome:
    """Result of one pass of an event through the orchestrator."""

    event_id: str
    event_type: str
    tenant_id: str | None
    executions: list[RuleExecution] = field(default_factory=list)
    ignored_reason: str | None = None

    @property
    def records(self) -> list[ActionExecutionRecord]:
        return [e.record for e in self.executions]

    @property
    def dispatched(self) -> int:
        return sum(1 for e in self.executions if not e.deduplicated)

    @property
    def needs_redelivery(self) -> bool:
        return any(
            r.status is ExecutionStatus.ERROR and r.retryable for r in self.records
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "tenant_id": self.tenant_id,
            "ignored_reason": self.ignored_reason,
            "needs_redelivery": self.needs_redelivery,
            "executions": [
                {**e.record.to_dict(), "deduplicated": e.deduplicated, "recorded": e.recorded}
                for e in self.executions
            ],
        }


class AutomationOrchestrator:
    def __init__(
        self,
        store: Store,
        dispatcher: ActionDispatcher,
        dedup_window_seconds: int = 86400,
        lease_seconds: int = 300,
    ) -> None:
        self._store = store
        self.dispatcher = dispatcher
        self.matcher = RuleMatcher(store.rules)
        self.log = ExecutionLog(store.executions, dedup_window_seconds, lease_seconds)

    async def process_event(self, event: DomainEvent) -> EventOutcome:
        outcome = EventOutcome(
            event_id=event.event_id, event_type=event.event_type, tenant_id=event.tenant_id
        )
        if not event.tenant_id:
            logger.debug("automation.event_ignored", event_id=event.event_id, reason="no_tenant")
            outcome.ignored_reason = "no_tenant"
            return outcome

        async with LogContext(event_id=event.event_id, tenant_id=event.tenant_id):
            self._store.events.record(event)
            logger.info("automation.event_received", event_type=event.event_type)

            if not TriggerEvent.is_supported(event.event_type):
                outcome.ignored_reason = "unknown_event_type"
                return outcome

            rules = self.matcher.find_candidates(event.tenant_id, event.event_type)
            if not rules:
                return outcome

            outcome.executions = list(
                await asyncio.gather(
                    *(
                        self._run_rule(rule, event.event_id, event.event_type, event.payload)
                        for rule in rules
                    )
                )
            )

        logger.info(
            "automation.event_processed",
            event_id=event.event_id,
            rules=len(rules),
            dispatched=outcome.dispatched,
            needs_redelivery=outcome.needs_redelivery,
        )
        return outcome

    async def run_test(
        self,
        rule_id: str,
        event_data: Mapping[str, Any] | None = None,
        profile_id: str | None = None,
    ) -> ActionExecutionRecord:
        """Run one rule's pipeline against sample or supplied data, tagged as a test.

        Raises:
            RuleNotFoundError: no rule with ``rule_id``.
        """
        rule = self._store.rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Automation not found: {rule_id}").with_context(rule_id=rule_id)

        data = (
            dict(event_data)
            if event_data is not None
            else sample_event_data(rule.trigger_event, rule.tenant_id, profile_id)
        )
        execution = await self._run_rule(
            rule, None, rule.trigger_event.value, data, is_test=True
        )
        return execution.record

    async def _run_rule(
        self,
        rule: AutomationRule,
        event_id: str | None,
        event_type: str,
        data: Mapping[str, Any],
        is_test: bool = False,
    ) -> RuleExecution:
        logged_data = {**data, "is_test": True} if is_test else dict(data)
        try:
            record, deduplicated = self.log.begin(rule, event_id, event_type, logged_data, is_test)
        except Exception as e:
            # Nothing was written; report a transient error record so the
            # event is redelivered when the store failure is retryable.
            record = ActionExecutionRecord.create(rule, event_id, event_type, logged_data, is_test=is_test)
            record.mark_error(
                str(e) or type(e).__name__,
                retryable=is_retryable(e),
                details={"category": categorize_error(e).value, "stage": "claim"},
            )
            logger.error("automation.claim_failed", rule_id=rule.id, event_id=event_id, exc_info=True)
            return RuleExecution(record, recorded=False)
        if deduplicated:
            return RuleExecution(record, deduplicated=True)

        async with LogContext(rule_id=rule.id, action_type=rule.action_type.value):
            try:
                await self._execute(rule, record, event_type, data, is_test)
            except Exception as e:
                self.log.abandon(record, e)
                logger.error("automation.rule_crashed", error=str(e) or type(e).__name__, exc_info=True)

        return RuleExecution(record)

    async def _execute(
        self,
        rule: AutomationRule,
        record: ActionExecutionRecord,
        event_type: str,
        data: Mapping[str, Any],
        is_test: bool,
    ) -> None:
        self.log.start(record)

        if not evaluate(rule.trigger_conditions, data):
            self.log.skip(record)
            if is_test:
                record.result = {**(record.result or {}), "is_test": True}
                self._store.executions.save(record)
            logger.info(
                "automation.rule_skipped",
                unmet=unmet_conditions(rule.trigger_conditions, data),
            )
            return

        try:
            result = await self.dispatcher.execute(
                rule.action_type, rule.action, data, rule.tenant_id, event_type
            )
        except CadenceError as e:
            self.log.fail(record, e.message, retryable=e.retryable, details=e.to_dict())
            logger.warning(
                "automation.action_failed",
                error=e.message,
                category=e.category.value,
                retryable=e.retryable,
            )
        except Exception as e:
            self.log.fail(record, str(e) or type(e).__name__, retryable=is_retryable(e))
            logger.error("automation.action_crashed", error=str(e), exc_info=True)
        else:
            payload = result.to_dict()
            if is_test:
                payload["is_test"] = True
            self.log.succeed(record, payload)
            logger.info("automation.action_succeeded", success=result.success)


class EventProcessor:
    """Feeds events to the orchestrator through a redelivery capability.

    :meth:`handle` delivers and redelivers in line. :meth:`submit`
    delivers once and leaves any redelivery to a background task, so a
    request handler answers without waiting out the backoff.
    """

    def __init__(
        self,
        orchestrator: AutomationOrchestrator,
        redelivery: Redelivery | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.redelivery = redelivery or NoRedelivery()
        self._background: set[asyncio.Task[EventOutcome | None]] = set()

    async def handle(self, event: DomainEvent) -> EventOutcome:
        return await self.redelivery.deliver(event, self.orchestrator.process_event)

    async def submit(self, event: DomainEvent) -> EventOutcome:
        """Deliver ``event`` once; schedule redelivery when the outcome asks for it."""
        outcome = await self.orchestrator.process_event(event)
        if outcome.needs_redelivery:
            task = asyncio.create_task(
                self._redeliver(event, outcome), name=f"redeliver-{event.event_id}"
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        return outcome

    async def _redeliver(self, event: DomainEvent, first: EventOutcome) -> EventOutcome | None:
        # Nobody awaits this task: failures end here, in the log.
        try:
            return await self.redelivery.redeliver(event, self.orchestrator.process_event, first)
        except Exception:
            logger.error("redelivery.background_failed", event_id=event.event_id, exc_info=True)
            return None

    @property
    def pending(self) -> int:
        """Background redeliveries still running."""
        return len(self._background)

    async def drain(self) -> None:
        """Wait for every background redelivery to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background redeliveries; their events stay in the execution log."""
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)

    async def subscribe(self, bus: EventBus, pattern: str = "*") -> str:
        """Subscribe to ``bus``; returns the subscription id."""

        async def _on_event(event: DomainEvent) -> None:
            await self.handle(event)

        return await bus.subscribe(pattern, _on_event)


__all__ = [
    "AutomationOrchestrator",
    "EventOutcome",
    "EventProcessor",
    "RuleExecution",
]
