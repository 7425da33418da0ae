"""
Event ingestion router.

Accepts events in the inbound contract shape
(``{id?, type, tenantId, payload, occurredAt?}``) and runs them through
the event processor once, returning the per-rule outcome. Retryable
failures are redelivered in the background.

Endpoints:
    POST /events   Process one event
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Response
from pydantic import BaseModel, ConfigDict, Field

from cadence.api.deps import ContainerDep
from cadence.core.events import DomainEvent

router = APIRouter(prefix="/events")


# ------------------------------------------------------------------ #
# Schemas
# ------------------------------------------------------------------ #


class EventIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    type: str
    tenant_id: str | None = Field(default=None, alias="tenantId")
    payload: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime | None = Field(default=None, alias="occurredAt")


# ------------------------------------------------------------------ #
# Endpoints
# ------------------------------------------------------------------ #


@router.post("")
async def ingest_event(body: EventIn, container: ContainerDep, response: Response) -> dict[str, Any]:
    """Process an event once and report what each matching rule did.

    Responds 202 when a retryable failure left the event due for
    redelivery; the redelivery runs in the background.
    """
    event = DomainEvent.from_dict(body.model_dump(by_alias=True, exclude_none=True))
    outcome = await container.processor.submit(event)
    if outcome.needs_redelivery:
        response.status_code = 202
    return outcome.to_dict()
