"""Direct message action: message the workspace user an event points at."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cadence.automation.actions.config import DirectMessageConfig
from cadence.automation.actions.protocol import ActionContext, ActionResult, ChannelClientFactory
from cadence.automation.models import ActionType
from cadence.automation.templates import render_message
from cadence.core.errors import ChannelNotConnectedError, TargetResolutionError

if TYPE_CHECKING:
    from cadence.storage.protocols import UserDirectory


class DirectMessageAction:
    """
    Resolve the recipient, then send.

    An explicit ``slack_user_id`` wins. Otherwise ``payload[user_field]``
    names a platform profile, mapped to a workspace user through the
    tenant's :class:`UserDirectory`. A missing mapping is a
    :class:`TargetResolutionError` (redelivery cannot create one).
    """

    action_type = ActionType.DIRECT_MESSAGE

    def __init__(
        self,
        clients: ChannelClientFactory,
        directory: UserDirectory,
        channel: str = "slack",
    ) -> None:
        self._clients = clients
        self._directory = directory
        self._channel = channel

    def resolve_target(self, config: DirectMessageConfig, context: ActionContext) -> str:
        if config.slack_user_id:
            return config.slack_user_id

        profile_id = context.payload.get(config.user_field) if config.user_field else None
        if not profile_id:
            raise TargetResolutionError(
                f"Event has no {config.user_field!r} to address the message to"
            ).with_context(tenant_id=context.tenant_id, action_type=self.action_type.value)

        user_id = self._directory.lookup(context.tenant_id, str(profile_id), self._channel)
        if not user_id:
            raise TargetResolutionError(
                "Target user does not have Slack linked"
            ).with_context(
                tenant_id=context.tenant_id,
                action_type=self.action_type.value,
                profile_id=str(profile_id),
            )
        return user_id

    async def execute(self, config: DirectMessageConfig, context: ActionContext) -> ActionResult:
        client = self._clients.for_tenant(context.tenant_id)
        if client is None:
            raise ChannelNotConnectedError(
                "Slack not connected for this organization"
            ).with_context(tenant_id=context.tenant_id, action_type=self.action_type.value)

        user_id = self.resolve_target(config, context)
        message = render_message(config.message_template, context.event_type, context.payload)
        sent = await client.send_direct(user_id, message)
        if not sent.ok:
            raise ChannelNotConnectedError(
                f"Failed to send DM: {sent.error or 'unknown error'}"
            ).with_context(tenant_id=context.tenant_id, action_type=self.action_type.value)

        return ActionResult.ok(
            self.action_type, slack_user_id=user_id, dm_sent=True, message_id=sent.id
        )
