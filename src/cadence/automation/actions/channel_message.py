"""Channel message action: post a rendered template to a workspace channel."""

from __future__ import annotations

from cadence.automation.actions.config import ChannelMessageConfig
from cadence.automation.actions.protocol import ActionContext, ActionResult, ChannelClientFactory
from cadence.automation.models import ActionType
from cadence.automation.templates import render_message
from cadence.core.errors import ChannelNotConnectedError
from cadence.core.logging import get_logger

logger = get_logger(__name__)


class ChannelMessageAction:
    action_type = ActionType.CHANNEL_MESSAGE

    def __init__(self, clients: ChannelClientFactory) -> None:
        self._clients = clients

    async def execute(self, config: ChannelMessageConfig, context: ActionContext) -> ActionResult:
        client = self._clients.for_tenant(context.tenant_id)
        if client is None:
            raise ChannelNotConnectedError(
                "Slack not connected for this organization"
            ).with_context(tenant_id=context.tenant_id, action_type=self.action_type.value)

        message = render_message(config.message_template, context.event_type, context.payload)
        sent = await client.send(config.channel_id, message)
        if not sent.ok:
            raise ChannelNotConnectedError(
                f"Failed to send channel message: {sent.error or 'unknown error'}"
            ).with_context(tenant_id=context.tenant_id, action_type=self.action_type.value)

        logger.debug("action.channel_message_sent", channel_id=config.channel_id, message_id=sent.id)
        return ActionResult.ok(
            self.action_type, channel_id=config.channel_id, message_sent=True, message_id=sent.id
        )
