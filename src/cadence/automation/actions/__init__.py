"""Action adapters, their typed configuration and the dispatcher."""

from cadence.automation.actions.channel_message import ChannelMessageAction
from cadence.automation.actions.config import (
    ActionConfig,
    ChannelMessageConfig,
    DirectMessageConfig,
    DocumentPushConfig,
    WebhookConfig,
    parse_action_config,
)
from cadence.automation.actions.direct_message import DirectMessageAction
from cadence.automation.actions.dispatcher import ActionDispatcher
from cadence.automation.actions.document_push import DocumentPushAction
from cadence.automation.actions.protocol import (
    ActionAdapter,
    ActionContext,
    ActionResult,
    ChannelClient,
    ChannelClientFactory,
    Document,
    DocumentDestination,
    DocumentDestinationFactory,
    DocumentProducer,
    SendResult,
)
from cadence.automation.actions.webhook import WebhookAction

__all__ = [
    "ActionConfig",
    "ChannelMessageConfig",
    "DirectMessageConfig",
    "DocumentPushConfig",
    "WebhookConfig",
    "parse_action_config",
    "ActionAdapter",
    "ActionContext",
    "ActionResult",
    "ChannelClient",
    "ChannelClientFactory",
    "Document",
    "DocumentDestination",
    "DocumentDestinationFactory",
    "DocumentProducer",
    "SendResult",
    "ActionDispatcher",
    "ChannelMessageAction",
    "DirectMessageAction",
    "DocumentPushAction",
    "WebhookAction",
]
