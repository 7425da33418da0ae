"""
Execution log: claims, deduplicates and finishes execution records.

Dedup is keyed by ``(rule_id, event_id)``. For a live event the log
looks at the newest record for that pair:

==========================================  ================================
latest record (inside the dedup window)     outcome
==========================================  ================================
none, or older than the window              claim attempt 1 (or next attempt)
pending / running, inside the lease         deduplicated (another worker owns it)
pending / running, lease expired            claim ``attempt + 1``
success / skipped                           deduplicated
error, ``retryable=False``                  deduplicated
error, ``retryable=True``                   claim ``attempt + 1``
==========================================  ================================

The claim itself is an insert-if-absent on ``(rule_id, event_id,
attempt)``, so two workers that both pass the check cannot both win.
Test runs have no event id and are never deduplicated.

A claimed record always ends terminal: when the store fails part way
through a rule, :meth:`ExecutionLog.abandon` marks it ``error``. If even
that write fails the row stays in flight until its lease expires.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from cadence.automation.models import ActionExecutionRecord, AutomationRule, ExecutionStatus
from cadence.core.errors import categorize_error, is_retryable
from cadence.core.logging import get_logger
from cadence.core.timestamps import utc_now
from cadence.storage.protocols import ExecutionRepository

logger = get_logger(__name__)


class ExecutionLog:
    def __init__(
        self,
        executions: ExecutionRepository,
        dedup_window_seconds: int = 86400,
        lease_seconds: int = 300,
    ) -> None:
        self._executions = executions
        self.dedup_window = timedelta(seconds=dedup_window_seconds)
        self.lease = timedelta(seconds=lease_seconds)

    def _next_attempt(self, rule: AutomationRule, event_id: str) -> tuple[int, ActionExecutionRecord | None]:
        latest = self._executions.latest_for(rule.id, event_id)
        if latest is None:
            return 1, None
        now = utc_now()
        if now - latest.created_at > self.dedup_window:
            return latest.attempt + 1, None
        if latest.status is ExecutionStatus.ERROR and latest.retryable:
            return latest.attempt + 1, None
        if not latest.status.is_terminal and now - (latest.started_at or latest.created_at) > self.lease:
            logger.warning(
                "automation.lease_expired",
                rule_id=rule.id,
                event_id=event_id,
                status=latest.status.value,
                attempt=latest.attempt,
            )
            return latest.attempt + 1, None
        return latest.attempt, latest

    def begin(
        self,
        rule: AutomationRule,
        event_id: str | None,
        event_type: str,
        event_data: Mapping[str, Any],
        is_test: bool = False,
    ) -> tuple[ActionExecutionRecord, bool]:
        """Claim a pending record for (rule, event).

        Returns ``(record, deduplicated)``. When ``deduplicated`` is True the
        record is the existing one and nothing must be dispatched.
        """
        attempt = 1
        if event_id is not None and not is_test:
            attempt, existing = self._next_attempt(rule, event_id)
            if existing is not None:
                logger.info(
                    "automation.deduplicated",
                    rule_id=rule.id,
                    event_id=event_id,
                    status=existing.status.value,
                    attempt=existing.attempt,
                )
                return existing, True

        record = ActionExecutionRecord.create(
            rule, event_id, event_type, event_data, attempt=attempt, is_test=is_test
        )
        if not self._executions.claim(record):
            # Lost the race for this attempt slot.
            existing = self._executions.latest_for(rule.id, event_id) if event_id else None
            logger.info("automation.claim_lost", rule_id=rule.id, event_id=event_id, attempt=attempt)
            return existing or record, True
        return record, False

    def start(self, record: ActionExecutionRecord) -> None:
        record.mark_running()
        self._executions.save(record)

    def succeed(self, record: ActionExecutionRecord, result: dict[str, Any]) -> None:
        record.mark_success(result)
        self._executions.save(record)

    def skip(self, record: ActionExecutionRecord, reason: str = "conditions_not_met") -> None:
        record.mark_skipped(reason)
        self._executions.save(record)

    def fail(
        self,
        record: ActionExecutionRecord,
        message: str,
        *,
        retryable: bool,
        details: dict[str, Any] | None = None,
    ) -> None:
        record.mark_error(message, retryable=retryable, details=details)
        self._executions.save(record)

    def abandon(self, record: ActionExecutionRecord, error: Exception) -> None:
        """Bring a record whose processing crashed to a terminal state.

        A record still pending or running is marked ``error`` (retryable
        when ``error`` is); a record already terminal in memory is written
        again as is. A failing write is logged and the row is left to the
        lease.
        """
        if not record.status.is_terminal:
            record.mark_error(
                str(error) or type(error).__name__,
                retryable=is_retryable(error),
                details={"category": categorize_error(error).value, "stage": "store"},
            )
        try:
            self._executions.save(record)
        except Exception as e:
            logger.error(
                "automation.record_abandoned",
                record_id=record.id,
                status=record.status.value,
                error=str(e) or type(e).__name__,
                exc_info=True,
            )

    def recent(self, rule_id: str, limit: int = 50) -> list[ActionExecutionRecord]:
        """Newest records of a rule first."""
        return self._executions.list_for_rule(rule_id, limit)

    def for_event(self, event_id: str) -> list[ActionExecutionRecord]:
        return self._executions.list_for_event(event_id)


__all__ = ["ExecutionLog"]
