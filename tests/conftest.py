"""
Shared pytest fixtures and fakes for cadence tests.

The fakes stand in for the external collaborators (channel clients,
document services, CRM providers) so the engine can be exercised end to
end against an in-memory store.

Usage:
    def test_something(store, channel, container):
        ...
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from cadence.automation.actions import Document, SendResult
from cadence.container import CadenceContainer
from cadence.core.settings import CadenceSettings
from cadence.execution import NoRedelivery
from cadence.storage import MemoryStore
from cadence.sync.models import DataSourceRegistration
from cadence.sync.providers import (
    Credentials,
    ExternalRecord,
    FetchResult,
    InMemoryCredentialStore,
    ProviderRegistry,
    RefreshingCredentialResolver,
)

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)


# =============================================================================
# Channel fakes
# =============================================================================


class FakeChannelClient:
    """Records every send; can be told to fail or raise."""

    def __init__(self, ok: bool = True, error: str | None = None, exc: Exception | None = None):
        self.ok = ok
        self.error = error
        self.exc = exc
        self.sent: list[tuple[str, str]] = []
        self.direct: list[tuple[str, str]] = []

    async def send(self, destination: str, content: str) -> SendResult:
        if self.exc is not None:
            raise self.exc
        self.sent.append((destination, content))
        if not self.ok:
            return SendResult(ok=False, error=self.error)
        return SendResult(ok=True, id=f"msg-{len(self.sent)}")

    async def send_direct(self, user_id: str, content: str) -> SendResult:
        if self.exc is not None:
            raise self.exc
        self.direct.append((user_id, content))
        if not self.ok:
            return SendResult(ok=False, error=self.error)
        return SendResult(ok=True, id=f"dm-{len(self.direct)}")

    @property
    def calls(self) -> int:
        return len(self.sent) + len(self.direct)


class FakeChannelFactory:
    def __init__(self, client: FakeChannelClient | None = None, connected: set[str] | None = None):
        self.client = client or FakeChannelClient()
        self.connected = connected

    def for_tenant(self, tenant_id: str) -> FakeChannelClient | None:
        if self.connected is not None and tenant_id not in self.connected:
            return None
        return self.client


# =============================================================================
# Document fakes
# =============================================================================


class FakeProducer:
    def __init__(self, exc: Exception | None = None):
        self.exc = exc
        self.calls: list[tuple[str, str]] = []

    async def produce(self, document_type: str, source_id: str, payload: Mapping[str, Any]) -> Document:
        if self.exc is not None:
            raise self.exc
        self.calls.append((document_type, source_id))
        return Document(title="rendered", content=b"%PDF-1.7")


class FakeDestination:
    def __init__(self, default_folder: str | None = None):
        self.default_folder = default_folder
        self.uploads: list[tuple[Document, str]] = []

    async def upload(self, document: Document, folder: str) -> str:
        self.uploads.append((document, folder))
        return f"doc-{len(self.uploads)}"


class FakeDestinationFactory:
    def __init__(self, destinations: dict[str, FakeDestination] | None = None):
        self.destinations = destinations or {}

    def for_profile(self, tenant_id: str, profile_id: str) -> FakeDestination | None:
        return self.destinations.get(profile_id)


# =============================================================================
# Sync fakes
# =============================================================================


class FakeProvider:
    """Provider serving a mutable record set per data source.

    ``delay`` makes every fetch sleep so tests can observe concurrency;
    ``in_flight`` and ``peak`` track simultaneous fetches.
    """

    name = "fake"

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.records: dict[str, list[ExternalRecord]] = {}
        self.fail_with: dict[str, Exception] = {}
        self.fetches: list[str] = []
        self.in_flight = 0
        self.peak = 0

    def set(self, data_source_id: str, rows: dict[str, dict[str, Any]]) -> None:
        self.records[data_source_id] = [ExternalRecord(k, dict(v)) for k, v in rows.items()]

    async def fetch(self, registration: DataSourceRegistration, credentials: Credentials) -> FetchResult:
        self.fetches.append(registration.id)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if registration.id in self.fail_with:
                raise self.fail_with[registration.id]
            return FetchResult(records=list(self.records.get(registration.id, [])))
        finally:
            self.in_flight -= 1


def make_credentials(*tenants: str, provider: str = "fake") -> InMemoryCredentialStore:
    creds = InMemoryCredentialStore()
    for tenant in tenants:
        creds.save(
            tenant,
            provider,
            Credentials(access_token=f"token-{tenant}", expires_at=datetime.now(UTC) + timedelta(hours=1)),
        )
    return creds


# =============================================================================
# Store fakes
# =============================================================================


class FlakyRepository:
    """Wraps a repository so one method raises queued errors before delegating.

    Each call to ``method`` pops the next entry of ``errors``: an exception
    is raised, ``None`` lets that call through. Once the queue is empty
    every call goes to the wrapped repository.
    """

    def __init__(self, inner: Any, method: str, errors: list[Exception | None]):
        self._inner = inner
        self._method = method
        self.errors = list(errors)
        self.calls = 0

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._inner, name)
        if name != self._method:
            return attr

        def flaky(*args: Any, **kwargs: Any) -> Any:
            self.calls += 1
            if self.errors:
                error = self.errors.pop(0)
                if error is not None:
                    raise error
            return attr(*args, **kwargs)

        return flaky


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def channel() -> FakeChannelClient:
    return FakeChannelClient()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def settings() -> CadenceSettings:
    return CadenceSettings(_env_file=None, database_url="memory", document_folder="/Cadence")


@pytest.fixture
def container(settings, store, channel, provider) -> CadenceContainer:
    """Container over the memory store with every collaborator faked."""
    credential_store = make_credentials("org-1", "org-2")
    return CadenceContainer(
        settings,
        store=store,
        channel_clients=FakeChannelFactory(channel),
        document_producer=FakeProducer(),
        document_destinations=FakeDestinationFactory({"profile-1": FakeDestination()}),
        providers=ProviderRegistry([provider]),
        credentials=RefreshingCredentialResolver(credential_store),
        redelivery=NoRedelivery(),
    )
