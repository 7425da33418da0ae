"""Slack Web API channel client.

Implements :class:`~cadence.automation.actions.protocol.ChannelClient`
over ``chat.postMessage`` and ``conversations.open``. Slack answers
API-level failures with HTTP 200 and ``{"ok": false, "error": ...}``;
those come back as ``SendResult(ok=False)``. Transport failures raise
:class:`~cadence.core.errors.ChannelNotConnectedError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from cadence.automation.actions.protocol import SendResult
from cadence.core.errors import ChannelNotConnectedError
from cadence.core.logging import get_logger

logger = get_logger(__name__)


class SlackClient:
    def __init__(
        self,
        token: str,
        base_url: str = "https://slack.com/api",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    async def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{method}"
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ChannelNotConnectedError(f"Slack {method} failed: {e}", cause=e) from e
        return response.json()

    async def send(self, destination: str, content: str) -> SendResult:
        body = await self._call("chat.postMessage", {"channel": destination, "text": content})
        if not body.get("ok"):
            logger.warning("slack.api_error", method="chat.postMessage", error=body.get("error"))
            return SendResult(ok=False, error=body.get("error"))
        return SendResult(ok=True, id=body.get("ts"))

    async def send_direct(self, user_id: str, content: str) -> SendResult:
        opened = await self._call("conversations.open", {"users": user_id})
        if not opened.get("ok"):
            logger.warning("slack.api_error", method="conversations.open", error=opened.get("error"))
            return SendResult(ok=False, error=opened.get("error"))
        return await self.send(opened["channel"]["id"], content)


class SlackClientFactory:
    """Per-tenant Slack clients from a token map, with an optional shared bot token."""

    def __init__(
        self,
        tokens: Mapping[str, str] | None = None,
        default_token: str | None = None,
        base_url: str = "https://slack.com/api",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._tokens = dict(tokens or {})
        self._default_token = default_token
        self._base_url = base_url
        self._client = client
        self._timeout = timeout

    def connect(self, tenant_id: str, token: str) -> None:
        self._tokens[tenant_id] = token

    def for_tenant(self, tenant_id: str) -> SlackClient | None:
        token = self._tokens.get(tenant_id) or self._default_token
        if not token:
            return None
        return SlackClient(token, self._base_url, client=self._client, timeout=self._timeout)


__all__ = ["SlackClient", "SlackClientFactory"]
