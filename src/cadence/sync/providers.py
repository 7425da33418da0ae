"""
Provider adapters and credential resolution.

A provider adapter fetches the current state of one object type from an
external system (for example HubSpot deals). Adapters are registered by
provider name; a registration naming an unknown provider fails its sync
with :class:`~cadence.core.errors.UnknownProviderError`.

Credentials are read-only to the engine and re-resolved on every sync:
:class:`RefreshingCredentialResolver` refreshes a token that expires
within the skew window before handing it to the adapter.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from cadence.core.errors import CadenceError, CredentialExpiredError, UnknownProviderError
from cadence.core.logging import get_logger
from cadence.core.timestamps import utc_now
from cadence.sync.models import DataSourceRegistration

logger = get_logger(__name__)


@dataclass
class ExternalRecord:
    """One record as the provider returned it."""

    external_id: str
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass
class FetchResult:
    records: list[ExternalRecord] = field(default_factory=list)


@dataclass
class Credentials:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def expires_within(self, skew: timedelta, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at - skew <= (now or utc_now())


@runtime_checkable
class ProviderAdapter(Protocol):
    """Fetches records of ``registration.object_type`` from one provider."""

    @property
    def name(self) -> str: ...

    async def fetch(
        self, registration: DataSourceRegistration, credentials: Credentials
    ) -> FetchResult:
        ...


class ProviderRegistry:
    """Provider adapters keyed by provider name."""

    def __init__(self, adapters: list[ProviderAdapter] | None = None) -> None:
        self._adapters: dict[str, ProviderAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.name] = adapter

    def get(self, provider: str) -> ProviderAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise UnknownProviderError(
                f"No provider adapter registered for {provider!r}"
            ).with_context(provider=provider)
        return adapter

    def __contains__(self, provider: str) -> bool:
        return provider in self._adapters

    @property
    def names(self) -> list[str]:
        return sorted(self._adapters)


# =============================================================================
# CREDENTIALS
# =============================================================================


class CredentialResolver(Protocol):
    async def resolve(self, tenant_id: str, provider: str) -> Credentials:
        """Current credentials for (tenant, provider); raises CredentialExpiredError."""
        ...


class CredentialStore(Protocol):
    def get(self, tenant_id: str, provider: str) -> Credentials | None: ...

    def save(self, tenant_id: str, provider: str, credentials: Credentials) -> None: ...


class TokenRefresher(Protocol):
    async def refresh(self, provider: str, credentials: Credentials) -> Credentials: ...


class InMemoryCredentialStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._credentials: dict[tuple[str, str], Credentials] = {}

    def get(self, tenant_id: str, provider: str) -> Credentials | None:
        with self._lock:
            return self._credentials.get((tenant_id, provider))

    def save(self, tenant_id: str, provider: str, credentials: Credentials) -> None:
        with self._lock:
            self._credentials[(tenant_id, provider)] = credentials


class RefreshingCredentialResolver:
    """Resolve credentials from a store, refreshing ones about to expire."""

    def __init__(
        self,
        store: CredentialStore,
        refresher: TokenRefresher | None = None,
        refresh_skew_seconds: int = 300,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self.skew = timedelta(seconds=refresh_skew_seconds)

    async def resolve(self, tenant_id: str, provider: str) -> Credentials:
        credentials = self._store.get(tenant_id, provider)
        if credentials is None:
            raise CredentialExpiredError(
                f"No {provider} connection for this organization", retryable=False
            ).with_context(tenant_id=tenant_id, provider=provider)

        if not credentials.expires_within(self.skew):
            return credentials

        if self._refresher is None or not credentials.refresh_token:
            raise CredentialExpiredError(
                f"{provider} token expired and cannot be refreshed"
            ).with_context(tenant_id=tenant_id, provider=provider)

        try:
            refreshed = await self._refresher.refresh(provider, credentials)
        except CadenceError:
            raise
        except Exception as e:
            raise CredentialExpiredError(
                f"Failed to refresh {provider} token: {e}", cause=e
            ).with_context(tenant_id=tenant_id, provider=provider) from e

        self._store.save(tenant_id, provider, refreshed)
        logger.info("sync.credentials_refreshed", tenant_id=tenant_id, provider=provider)
        return refreshed


__all__ = [
    "ExternalRecord",
    "FetchResult",
    "Credentials",
    "ProviderAdapter",
    "ProviderRegistry",
    "CredentialResolver",
    "CredentialStore",
    "TokenRefresher",
    "InMemoryCredentialStore",
    "RefreshingCredentialResolver",
]
