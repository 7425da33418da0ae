"""Tests for credential resolution and the provider registry."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from cadence.core.errors import CredentialExpiredError, ProviderUnavailableError, UnknownProviderError
from cadence.sync.providers import (
    Credentials,
    InMemoryCredentialStore,
    ProviderRegistry,
    RefreshingCredentialResolver,
)
from conftest import FakeProvider


class StubRefresher:
    def __init__(self, exc: Exception | None = None):
        self.exc = exc
        self.calls = 0

    async def refresh(self, provider: str, credentials: Credentials) -> Credentials:
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return Credentials(
            access_token="fresh",
            refresh_token=credentials.refresh_token,
            expires_at=datetime.now(UTC) + timedelta(hours=1),
        )


def _store(expires_in: timedelta | None, refresh_token: str | None = "r1") -> InMemoryCredentialStore:
    store = InMemoryCredentialStore()
    expires_at = datetime.now(UTC) + expires_in if expires_in is not None else None
    store.save("org-1", "hubspot", Credentials("stale", refresh_token, expires_at))
    return store


class TestRefreshingCredentialResolver:
    async def test_missing_connection_is_not_retryable(self):
        resolver = RefreshingCredentialResolver(InMemoryCredentialStore())
        with pytest.raises(CredentialExpiredError) as exc_info:
            await resolver.resolve("org-1", "hubspot")
        assert exc_info.value.retryable is False

    async def test_valid_token_is_returned_as_is(self):
        refresher = StubRefresher()
        resolver = RefreshingCredentialResolver(_store(timedelta(hours=1)), refresher)
        credentials = await resolver.resolve("org-1", "hubspot")
        assert credentials.access_token == "stale"
        assert refresher.calls == 0

    async def test_token_without_expiry_never_refreshes(self):
        resolver = RefreshingCredentialResolver(_store(None), StubRefresher())
        assert (await resolver.resolve("org-1", "hubspot")).access_token == "stale"

    async def test_expiring_token_is_refreshed_and_saved(self):
        store = _store(timedelta(minutes=2))
        refresher = StubRefresher()
        resolver = RefreshingCredentialResolver(store, refresher, refresh_skew_seconds=300)

        credentials = await resolver.resolve("org-1", "hubspot")
        assert credentials.access_token == "fresh"
        assert store.get("org-1", "hubspot").access_token == "fresh"

        await resolver.resolve("org-1", "hubspot")
        assert refresher.calls == 1

    async def test_expired_without_refresh_token(self):
        resolver = RefreshingCredentialResolver(_store(timedelta(minutes=-5), refresh_token=None), StubRefresher())
        with pytest.raises(CredentialExpiredError, match="cannot be refreshed"):
            await resolver.resolve("org-1", "hubspot")

    async def test_refresher_engine_error_propagates(self):
        refresher = StubRefresher(exc=ProviderUnavailableError("oauth down"))
        resolver = RefreshingCredentialResolver(_store(timedelta(0)), refresher)
        with pytest.raises(ProviderUnavailableError):
            await resolver.resolve("org-1", "hubspot")

    async def test_refresher_crash_is_wrapped(self):
        refresher = StubRefresher(exc=RuntimeError("boom"))
        resolver = RefreshingCredentialResolver(_store(timedelta(0)), refresher)
        with pytest.raises(CredentialExpiredError, match="boom"):
            await resolver.resolve("org-1", "hubspot")


class TestProviderRegistry:
    def test_lookup(self):
        provider = FakeProvider()
        registry = ProviderRegistry([provider])
        assert registry.get("fake") is provider
        assert "fake" in registry
        assert registry.names == ["fake"]

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError) as exc_info:
            ProviderRegistry().get("salesforce")
        assert exc_info.value.retryable is False
