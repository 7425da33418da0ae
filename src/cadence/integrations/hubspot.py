"""HubSpot CRM provider adapter and OAuth token refresher.

Fetches every object of a registration's ``object_type`` through the
CRM v3 list endpoint, following ``paging.next.after`` cursors. The
properties requested come from ``registration.settings["properties"]``
plus the tracked stage field.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import httpx

from cadence.core.errors import CredentialExpiredError, ProviderUnavailableError
from cadence.core.logging import get_logger
from cadence.core.timestamps import utc_now
from cadence.sync.models import DataSourceRegistration
from cadence.sync.providers import Credentials, ExternalRecord, FetchResult

logger = get_logger(__name__)

DEFAULT_PROPERTIES: dict[str, list[str]] = {
    "deals": [
        "dealname",
        "dealstage",
        "pipeline",
        "amount",
        "closedate",
        "createdate",
        "hs_lastmodifieddate",
        "hubspot_owner_id",
    ],
}


class HubSpotProvider:
    name = "hubspot"

    def __init__(
        self,
        base_url: str = "https://api.hubapi.com",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        page_size: int = 100,
        max_pages: int = 500,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout
        self.page_size = page_size
        self.max_pages = max_pages

    def properties_for(self, registration: DataSourceRegistration) -> list[str]:
        props = list(
            registration.settings.get("properties")
            or DEFAULT_PROPERTIES.get(registration.object_type, [])
        )
        stage_field = registration.tracked_stage_field
        if stage_field and stage_field not in props:
            props.append(stage_field)
        return props

    async def fetch(
        self, registration: DataSourceRegistration, credentials: Credentials
    ) -> FetchResult:
        if self._client is not None:
            return await self._fetch_all(self._client, registration, credentials)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._fetch_all(client, registration, credentials)

    async def _fetch_all(
        self,
        client: httpx.AsyncClient,
        registration: DataSourceRegistration,
        credentials: Credentials,
    ) -> FetchResult:
        url = f"{self._base_url}/crm/v3/objects/{registration.object_type}"
        headers = {"Authorization": f"Bearer {credentials.access_token}"}
        params: dict[str, Any] = {
            "limit": self.page_size,
            "properties": ",".join(self.properties_for(registration)),
            "archived": "false",
        }

        result = FetchResult()
        for _page in range(self.max_pages):
            try:
                response = await client.get(url, params=params, headers=headers, timeout=self._timeout)
            except httpx.HTTPError as e:
                raise ProviderUnavailableError(
                    f"HubSpot request failed: {e}", cause=e
                ).with_context(provider=self.name, url=url) from e

            if response.status_code == 401:
                raise CredentialExpiredError(
                    "HubSpot rejected the access token"
                ).with_context(provider=self.name, http_status=401)
            if not response.is_success:
                raise ProviderUnavailableError(
                    f"HubSpot returned {response.status_code}: {response.text[:200]}"
                ).with_context(provider=self.name, url=url, http_status=response.status_code)

            body = response.json()
            for item in body.get("results", []):
                result.records.append(
                    ExternalRecord(external_id=str(item["id"]), properties=item.get("properties") or {})
                )

            after = ((body.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break
            params["after"] = after
        else:
            logger.warning("hubspot.page_limit_reached", max_pages=self.max_pages)

        logger.debug("hubspot.fetched", object_type=registration.object_type, records=len(result.records))
        return result


class HubSpotTokenRefresher:
    """OAuth refresh-token grant against HubSpot."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = "https://api.hubapi.com",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    async def refresh(self, provider: str, credentials: Credentials) -> Credentials:
        data = {
            "grant_type": "refresh_token",
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": credentials.refresh_token or "",
        }
        url = f"{self._base_url}/oauth/v1/token"
        try:
            if self._client is not None:
                response = await self._client.post(url, data=data, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, data=data)
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(f"Token refresh failed: {e}", cause=e).with_context(
                provider=provider
            ) from e

        if not response.is_success:
            raise CredentialExpiredError(
                f"Token refresh rejected with {response.status_code}"
            ).with_context(provider=provider, http_status=response.status_code)

        body = response.json()
        return Credentials(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token") or credentials.refresh_token,
            expires_at=utc_now() + timedelta(seconds=int(body.get("expires_in", 1800))),
        )


__all__ = ["HubSpotProvider", "HubSpotTokenRefresher"]
