"""HTTP document producer and destination.

The producer asks a rendering service for a document by type and source
id; the destination uploads it to the device registered for a profile.
Both raise :class:`~cadence.core.errors.DocumentDestinationUnavailableError`
(retryable) when the service cannot be reached or refuses the request.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import httpx

from cadence.automation.actions.protocol import Document
from cadence.core.errors import DocumentDestinationUnavailableError


class _HttpService:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = client
        self._timeout = timeout

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        url = f"{self._base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, headers=headers, timeout=self._timeout, **kwargs
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DocumentDestinationUnavailableError(
                f"Document service request failed: {e}", cause=e
            ).with_context(url=url) from e
        return response


class HttpDocumentProducer(_HttpService):
    async def produce(
        self, document_type: str, source_id: str, payload: Mapping[str, Any]
    ) -> Document:
        response = await self._request("GET", f"/render/{document_type}/{source_id}")
        return Document(
            title=response.headers.get("X-Document-Title", ""),
            content=response.content,
            content_type=response.headers.get("Content-Type", "application/pdf"),
        )


class HttpDocumentDestination(_HttpService):
    def __init__(self, base_url: str, profile_id: str, token: str | None = None, **kwargs: Any) -> None:
        super().__init__(base_url, token, **kwargs)
        self.profile_id = profile_id
        self.default_folder: str | None = None

    async def upload(self, document: Document, folder: str) -> str:
        response = await self._request(
            "POST",
            f"/profiles/{self.profile_id}/documents",
            data={"title": document.title, "folder": folder},
            files={"file": (f"{document.title}.pdf", document.content, document.content_type)},
        )
        return str(response.json()["id"])


class HttpDocumentDestinationFactory:
    """Destinations for profiles that connected a device.

    ``folders`` maps a profile to its preferred folder, used when the
    rule does not name one.
    """

    def __init__(
        self,
        base_url: str | None,
        token: str | None = None,
        connected_profiles: Iterable[str] | None = None,
        folders: Mapping[str, str] | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url
        self._token = token
        self._profiles = set(connected_profiles) if connected_profiles is not None else None
        self._folders = dict(folders or {})
        self._client = client
        self._timeout = timeout

    def connect(self, profile_id: str, folder: str | None = None) -> None:
        if self._profiles is not None:
            self._profiles.add(profile_id)
        if folder:
            self._folders[profile_id] = folder

    def for_profile(self, tenant_id: str, profile_id: str) -> HttpDocumentDestination | None:
        if not self._base_url:
            return None
        if self._profiles is not None and profile_id not in self._profiles:
            return None
        destination = HttpDocumentDestination(
            self._base_url, profile_id, self._token, client=self._client, timeout=self._timeout
        )
        destination.default_folder = self._folders.get(profile_id)
        return destination


__all__ = [
    "HttpDocumentProducer",
    "HttpDocumentDestination",
    "HttpDocumentDestinationFactory",
]
