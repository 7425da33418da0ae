"""
Domain event model and event bus protocol.

Producers elsewhere in the platform publish typed domain events
(``issue/queued``, ``rock/status.changed``, ...). The bus hands them to
whatever subscribed, which in a running engine is the automation
``EventProcessor``.

Inbound wire contract::

    {"type": "rock/status.changed", "tenantId": "org-1",
     "payload": {...}, "occurredAt": "2026-01-01T00:00:00+00:00", "id": "..."}

Example::

    bus = InMemoryEventBus()

    async def handler(event: DomainEvent) -> None:
        print(event.event_type, event.payload)

    await bus.subscribe("rock/*", handler)
    await bus.publish(DomainEvent(event_type="rock/created", tenant_id="org-1"))

Modules
-------
memory      InMemoryEventBus -- asyncio, single-node
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from cadence.core.timestamps import from_iso8601, generate_id, to_iso8601, utc_now

__all__ = [
    "DomainEvent",
    "EventBus",
    "EventHandler",
]


@dataclass(frozen=True)
class DomainEvent:
    """Immutable domain occurrence handed to the engine.

    Attributes:
        event_type: Slash/dot type string (e.g. ``issue/queued``)
        tenant_id: Owning organization; events without one are ignored
        payload: Event-specific data
        occurred_at: When the event occurred (UTC)
        event_id: Unique event identifier, the dedup key half for automations
    """

    event_type: str
    tenant_id: str | None
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utc_now)
    event_id: str = field(default_factory=generate_id)

    def matches(self, pattern: str) -> bool:
        """Check if event type matches a pattern.

        ``*`` matches everything, ``rock/*`` matches every ``rock/...`` type,
        anything else must match exactly.
        """
        if pattern == "*":
            return True
        if pattern.endswith("*"):
            return self.event_type.startswith(pattern[:-1])
        return self.event_type == pattern

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.event_id,
            "type": self.event_type,
            "tenantId": self.tenant_id,
            "payload": dict(self.payload),
            "occurredAt": to_iso8601(self.occurred_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DomainEvent:
        """Build from the inbound contract; ``id`` and ``occurredAt`` are optional."""
        kwargs: dict[str, Any] = {
            "event_type": data["type"],
            "tenant_id": data.get("tenantId"),
            "payload": dict(data.get("payload") or {}),
        }
        if data.get("occurredAt"):
            occurred = data["occurredAt"]
            if not isinstance(occurred, datetime):
                occurred = from_iso8601(occurred)
            elif occurred.tzinfo is None:
                occurred = occurred.replace(tzinfo=UTC)
            kwargs["occurred_at"] = occurred
        if data.get("id"):
            kwargs["event_id"] = data["id"]
        return cls(**kwargs)


EventHandler = Callable[[DomainEvent], Awaitable[None]]


@runtime_checkable
class EventBus(Protocol):
    """Protocol for event bus implementations.

    Supports publish/subscribe with wildcard patterns. Implementations
    must be async-compatible.
    """

    async def publish(self, event: DomainEvent) -> None:
        """Publish an event to all matching subscribers."""
        ...

    async def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """Subscribe to events matching a pattern and return a subscription id."""
        ...

    async def unsubscribe(self, subscription_id: str) -> None:
        ...

    async def close(self) -> None:
        """Clean up resources (connections, queues, etc.)."""
        ...
