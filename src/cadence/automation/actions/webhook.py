"""Outbound webhook action.

Sends the raw event payload as a JSON body. The action counts as run
whenever the endpoint answered: a non-2xx status is returned as a
partial result carrying the status code, not raised. Only transport
failures (DNS, connect, timeout) raise, as a retryable
:class:`~cadence.core.errors.InfrastructureError`.
"""

from __future__ import annotations

import httpx

from cadence.automation.actions.config import WebhookConfig
from cadence.automation.actions.protocol import ActionContext, ActionResult
from cadence.automation.models import ActionType
from cadence.core.errors import InfrastructureError
from cadence.core.logging import get_logger

logger = get_logger(__name__)


class WebhookAction:
    action_type = ActionType.WEBHOOK

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        self._client = client
        self._timeout = timeout

    async def execute(self, config: WebhookConfig, context: ActionContext) -> ActionResult:
        headers = {"Content-Type": "application/json", **config.headers}
        body = dict(context.payload) if config.method != "GET" else None

        try:
            if self._client is not None:
                response = await self._client.request(
                    config.method, config.url, headers=headers, json=body, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(
                        config.method, config.url, headers=headers, json=body
                    )
        except httpx.HTTPError as e:
            raise InfrastructureError(
                f"Webhook request failed: {e}", cause=e
            ).with_context(
                tenant_id=context.tenant_id,
                action_type=self.action_type.value,
                url=config.url,
            ) from e

        if response.is_success:
            return ActionResult.ok(self.action_type, url=config.url, status=response.status_code)

        logger.warning(
            "action.webhook_non_2xx",
            url=config.url,
            status=response.status_code,
            tenant_id=context.tenant_id,
        )
        return ActionResult.partial(self.action_type, url=config.url, status=response.status_code)
