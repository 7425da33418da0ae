"""Tests for cadence.core.events — DomainEvent contract and in-memory bus."""

from __future__ import annotations

from datetime import UTC, datetime

from cadence.core.events import DomainEvent
from cadence.core.events.memory import InMemoryEventBus


class TestDomainEvent:
    def test_from_inbound_contract(self):
        event = DomainEvent.from_dict(
            {
                "id": "evt-1",
                "type": "issue/queued",
                "tenantId": "org-1",
                "payload": {"issue_id": "i1"},
                "occurredAt": "2025-03-03T09:00:00+00:00",
            }
        )
        assert event.event_id == "evt-1"
        assert event.event_type == "issue/queued"
        assert event.tenant_id == "org-1"
        assert event.payload == {"issue_id": "i1"}
        assert event.occurred_at == datetime(2025, 3, 3, 9, 0, tzinfo=UTC)

    def test_id_and_time_are_optional(self):
        event = DomainEvent.from_dict({"type": "todo/created", "tenantId": "org-1"})
        assert event.event_id
        assert event.payload == {}

    def test_to_dict_uses_contract_names(self):
        data = DomainEvent("rock/created", "org-1", {"x": 1}, event_id="e").to_dict()
        assert data["type"] == "rock/created"
        assert data["tenantId"] == "org-1"
        assert data["id"] == "e"

    def test_pattern_matching(self):
        event = DomainEvent("rock/status.changed", "org-1")
        assert event.matches("*")
        assert event.matches("rock/*")
        assert event.matches("rock/status.changed")
        assert not event.matches("issue/*")


class TestInMemoryEventBus:
    async def test_publish_reaches_matching_subscribers(self):
        bus = InMemoryEventBus()
        seen: list[str] = []

        async def handler(event: DomainEvent) -> None:
            seen.append(event.event_type)

        await bus.subscribe("issue/*", handler)
        await bus.publish(DomainEvent("issue/queued", "org-1"))
        await bus.publish(DomainEvent("rock/created", "org-1"))
        assert seen == ["issue/queued"]

    async def test_handler_errors_do_not_propagate(self):
        bus = InMemoryEventBus()
        seen: list[str] = []

        async def broken(event: DomainEvent) -> None:
            raise RuntimeError("boom")

        async def fine(event: DomainEvent) -> None:
            seen.append(event.event_id)

        await bus.subscribe("*", broken)
        await bus.subscribe("*", fine)
        await bus.publish(DomainEvent("todo/created", "org-1", event_id="e1"))
        assert seen == ["e1"]

    async def test_unsubscribe_and_close(self):
        bus = InMemoryEventBus()
        seen: list[str] = []

        async def handler(event: DomainEvent) -> None:
            seen.append(event.event_id)

        sub = await bus.subscribe("*", handler)
        await bus.unsubscribe(sub)
        await bus.publish(DomainEvent("todo/created", "org-1"))
        await bus.close()
        await bus.publish(DomainEvent("todo/created", "org-1"))
        assert seen == []
