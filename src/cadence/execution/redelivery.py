"""Redeliver-with-backoff capability for event processing.

The automation orchestrator does not retry within a pass: a rule whose
action failed with a retryable error ends in ``error``. Whether the
event is handed to the orchestrator again is decided here, explicitly,
instead of being assumed from a message queue's redelivery semantics.

Replays are safe because the orchestrator deduplicates on
``(rule_id, event_id)``: rules that already succeeded or were skipped are
not dispatched again, and only retryable failures get a new attempt.

Example::

    redelivery = BackoffRedelivery(ExponentialBackoff(max_retries=3))
    outcome = await redelivery.deliver(event, orchestrator.process_event)

    # or, after delivering once yourself:
    outcome = await redelivery.redeliver(event, orchestrator.process_event, first)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar, runtime_checkable

from cadence.core.events import DomainEvent
from cadence.core.logging import get_logger
from cadence.execution.retry import ExponentialBackoff, RetryStrategy

logger = get_logger(__name__)


class Redeliverable(Protocol):
    """Outcome of one delivery; says whether another delivery could help."""

    @property
    def needs_redelivery(self) -> bool: ...


T = TypeVar("T", bound=Redeliverable)


@runtime_checkable
class Redelivery(Protocol):
    """At-least-once delivery of one event to a handler."""

    async def deliver(
        self, event: DomainEvent, handler: Callable[[DomainEvent], Awaitable[T]]
    ) -> T:
        ...

    async def redeliver(
        self, event: DomainEvent, handler: Callable[[DomainEvent], Awaitable[T]], outcome: T
    ) -> T:
        """Continue after a first delivery the caller already made."""
        ...


class NoRedelivery:
    """Deliver exactly once; used for manual runs and tests."""

    async def deliver(
        self, event: DomainEvent, handler: Callable[[DomainEvent], Awaitable[T]]
    ) -> T:
        return await handler(event)

    async def redeliver(
        self, event: DomainEvent, handler: Callable[[DomainEvent], Awaitable[T]], outcome: T
    ) -> T:
        return outcome


class BackoffRedelivery:
    """Replay the whole event while its outcome asks for it, with backoff.

    An exception from the handler itself (for example the store being
    unavailable) is replayed too when it is retryable, and re-raised once
    the strategy gives up or when it is not retryable.
    """

    def __init__(
        self,
        strategy: RetryStrategy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.strategy = strategy or ExponentialBackoff()
        self._sleep = sleep

    async def deliver(
        self, event: DomainEvent, handler: Callable[[DomainEvent], Awaitable[T]]
    ) -> T:
        return await self._run(event, handler, None)

    async def redeliver(
        self, event: DomainEvent, handler: Callable[[DomainEvent], Awaitable[T]], outcome: T
    ) -> T:
        return await self._run(event, handler, outcome)

    async def _run(
        self,
        event: DomainEvent,
        handler: Callable[[DomainEvent], Awaitable[T]],
        outcome: T | None,
    ) -> T:
        attempt = 0
        while True:
            if outcome is None:
                try:
                    outcome = await handler(event)
                except Exception as e:
                    if not self.strategy.should_retry(attempt, e):
                        raise
                    logger.warning(
                        "redelivery.handler_failed",
                        event_id=event.event_id,
                        attempt=attempt,
                        error=str(e),
                    )

            if outcome is not None:
                if not outcome.needs_redelivery:
                    return outcome
                if not self.strategy.should_retry(attempt):
                    logger.warning(
                        "redelivery.exhausted",
                        event_id=event.event_id,
                        event_type=event.event_type,
                        attempts=attempt + 1,
                    )
                    return outcome

            delay = self.strategy.next_delay(attempt)
            attempt += 1
            outcome = None
            logger.info(
                "redelivery.scheduled",
                event_id=event.event_id,
                event_type=event.event_type,
                attempt=attempt,
                delay_seconds=round(delay, 3),
            )
            await self._sleep(delay)


__all__ = ["Redeliverable", "Redelivery", "NoRedelivery", "BackoffRedelivery"]
