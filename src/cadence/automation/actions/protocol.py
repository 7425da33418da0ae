"""
Action adapter protocol and data classes.

Defines the contracts action adapters implement and the external
collaborators they talk to. Concrete adapters live next to this module;
concrete collaborators (Slack, HTTP document destination) live in
:mod:`cadence.integrations`.

An adapter either returns an :class:`ActionResult` or raises a
:class:`~cadence.core.errors.CadenceError`. A non-2xx webhook response
is not an exception: it comes back as ``ActionResult.partial(...)``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from cadence.automation.models import ActionType


@dataclass
class ActionResult:
    """Result envelope of one adapter call, stored on the execution record."""

    action_type: ActionType
    data: dict[str, Any] = field(default_factory=dict)
    success: bool = True

    @classmethod
    def ok(cls, action_type: ActionType, **data: Any) -> ActionResult:
        return cls(action_type=action_type, data=data, success=True)

    @classmethod
    def partial(cls, action_type: ActionType, **data: Any) -> ActionResult:
        """The action ran but its target reported a failure."""
        return cls(action_type=action_type, data=data, success=False)

    def to_dict(self) -> dict[str, Any]:
        return {**self.data, "success": self.success}


@dataclass(frozen=True)
class ActionContext:
    """What an adapter sees of the triggering event."""

    tenant_id: str
    event_type: str
    payload: Mapping[str, Any]


@dataclass
class SendResult:
    """Channel client response: ``{ok, id?, error?}``."""

    ok: bool
    id: str | None = None
    error: str | None = None


@dataclass
class Document:
    """A produced document ready for upload."""

    title: str
    content: bytes
    content_type: str = "application/pdf"


# =============================================================================
# COLLABORATORS
# =============================================================================


@runtime_checkable
class ChannelClient(Protocol):
    """Messaging workspace client for one tenant."""

    async def send(self, destination: str, content: str) -> SendResult:
        """Post ``content`` to a channel."""
        ...

    async def send_direct(self, user_id: str, content: str) -> SendResult:
        """Send ``content`` as a direct message to a workspace user."""
        ...


class ChannelClientFactory(Protocol):
    def for_tenant(self, tenant_id: str) -> ChannelClient | None:
        """Client for the tenant's connected workspace, or None when not connected."""
        ...


class DocumentProducer(Protocol):
    async def produce(
        self, document_type: str, source_id: str, payload: Mapping[str, Any]
    ) -> Document:
        ...


class DocumentDestination(Protocol):
    @property
    def default_folder(self) -> str | None: ...

    async def upload(self, document: Document, folder: str) -> str:
        """Upload ``document`` and return the remote document id."""
        ...


class DocumentDestinationFactory(Protocol):
    def for_profile(self, tenant_id: str, profile_id: str) -> DocumentDestination | None:
        """Destination registered for the profile, or None when it has no device."""
        ...


# =============================================================================
# ADAPTER
# =============================================================================


@runtime_checkable
class ActionAdapter(Protocol):
    """Performs the side effect of one action type."""

    @property
    def action_type(self) -> ActionType: ...

    async def execute(self, config: Any, context: ActionContext) -> ActionResult:
        ...


__all__ = [
    "ActionResult",
    "ActionContext",
    "SendResult",
    "Document",
    "ChannelClient",
    "ChannelClientFactory",
    "DocumentProducer",
    "DocumentDestination",
    "DocumentDestinationFactory",
    "ActionAdapter",
]
