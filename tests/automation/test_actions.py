"""Tests for the action adapters and the dispatcher."""

from __future__ import annotations

import json

import httpx
import pytest

from cadence.automation.actions import (
    ActionContext,
    ActionDispatcher,
    ChannelMessageAction,
    DirectMessageAction,
    DocumentPushAction,
    WebhookAction,
    parse_action_config,
)
from cadence.automation.models import ActionType
from cadence.core.errors import (
    ChannelNotConnectedError,
    DocumentDestinationUnavailableError,
    InfrastructureError,
    InvalidActionConfigError,
    TargetResolutionError,
    UnknownActionTypeError,
)
from conftest import (
    FakeChannelClient,
    FakeChannelFactory,
    FakeDestination,
    FakeDestinationFactory,
    FakeProducer,
)


def _ctx(payload: dict, tenant_id: str = "org-1", event_type: str = "issue/queued") -> ActionContext:
    return ActionContext(tenant_id=tenant_id, event_type=event_type, payload=payload)


# =============================================================================
# Channel message
# =============================================================================


class TestChannelMessage:
    async def test_posts_rendered_message(self, channel):
        action = ChannelMessageAction(FakeChannelFactory(channel))
        config = parse_action_config("channel_message", {"channel_id": "C1", "message_template": "New: {{title}}"})
        result = await action.execute(config, _ctx({"title": "Broken build"}))

        assert channel.sent == [("C1", "New: Broken build")]
        assert result.success is True
        assert result.to_dict() == {
            "channel_id": "C1",
            "message_sent": True,
            "message_id": "msg-1",
            "success": True,
        }

    async def test_not_connected_is_retryable(self):
        action = ChannelMessageAction(FakeChannelFactory(connected=set()))
        config = parse_action_config("channel_message", {"channel_id": "C1"})
        with pytest.raises(ChannelNotConnectedError) as exc_info:
            await action.execute(config, _ctx({}))
        assert exc_info.value.retryable is True
        assert exc_info.value.message == "Slack not connected for this organization"

    async def test_channel_refusal_raises(self):
        client = FakeChannelClient(ok=False, error="channel_not_found")
        action = ChannelMessageAction(FakeChannelFactory(client))
        config = parse_action_config("channel_message", {"channel_id": "C404"})
        with pytest.raises(ChannelNotConnectedError, match="channel_not_found"):
            await action.execute(config, _ctx({}))


# =============================================================================
# Direct message
# =============================================================================


class TestDirectMessage:
    async def test_resolves_through_directory(self, store, channel):
        store.directory.link("org-1", "profile-1", "U123")
        action = DirectMessageAction(FakeChannelFactory(channel), store.directory)
        config = parse_action_config("direct_message", {"message_template": "{{title}} is yours"})
        result = await action.execute(config, _ctx({"owner_id": "profile-1", "title": "Issue 9"}))

        assert channel.direct == [("U123", "Issue 9 is yours")]
        assert result.data["slack_user_id"] == "U123"
        assert result.data["dm_sent"] is True

    async def test_directory_is_tenant_scoped(self, store, channel):
        store.directory.link("org-2", "profile-1", "U999")
        action = DirectMessageAction(FakeChannelFactory(channel), store.directory)
        config = parse_action_config("direct_message", {})
        with pytest.raises(TargetResolutionError) as exc_info:
            await action.execute(config, _ctx({"owner_id": "profile-1"}))
        assert exc_info.value.retryable is False
        assert channel.direct == []

    async def test_missing_user_field(self, store, channel):
        action = DirectMessageAction(FakeChannelFactory(channel), store.directory)
        config = parse_action_config("direct_message", {"user_field": "assignee_id"})
        with pytest.raises(TargetResolutionError, match="assignee_id"):
            await action.execute(config, _ctx({"owner_id": "profile-1"}))

    async def test_explicit_user_id_skips_directory(self, store, channel):
        action = DirectMessageAction(FakeChannelFactory(channel), store.directory)
        config = parse_action_config("direct_message", {"slack_user_id": "U777"})
        await action.execute(config, _ctx({}))
        assert channel.direct[0][0] == "U777"


# =============================================================================
# Document push
# =============================================================================


class TestDocumentPush:
    def _action(self, store, destination=None, producer=None):
        destinations = FakeDestinationFactory({"profile-1": destination} if destination else {})
        return DocumentPushAction(producer or FakeProducer(), destinations, store.documents, default_folder="/Cadence")

    async def test_pushes_meeting_agenda_and_records_provenance(self, store):
        destination = FakeDestination()
        action = self._action(store, destination)
        config = parse_action_config("document_push", {"document_type": "meeting_agenda"})
        result = await action.execute(
            config, _ctx({"owner_id": "profile-1", "meeting_id": "m1", "title": "Weekly L10"})
        )

        document, folder = destination.uploads[0]
        assert document.title == "Weekly L10"
        assert folder == "/Cadence"
        assert result.data == {"document_id": "doc-1", "pushed": True, "title": "Weekly L10", "folder": "/Cadence"}

        pushes = store.documents.list_for_profile("profile-1")
        assert len(pushes) == 1
        assert pushes[0].source_id == "m1"
        assert pushes[0].document_id == "doc-1"

    async def test_briefing_uses_default_title(self, store):
        destination = FakeDestination()
        action = self._action(store, destination)
        config = parse_action_config("document_push", {"document_type": "briefing"})
        result = await action.execute(config, _ctx({"owner_id": "profile-1", "briefing_id": "b1", "title": "x"}))
        assert result.data["title"] == "Morning Briefing"

    async def test_folder_precedence(self, store):
        destination = FakeDestination(default_folder="/Device")
        action = self._action(store, destination)
        payload = {"owner_id": "profile-1", "briefing_id": "b1"}

        config = parse_action_config("document_push", {"document_type": "briefing"})
        assert (await action.execute(config, _ctx(payload))).data["folder"] == "/Device"

        config = parse_action_config("document_push", {"document_type": "briefing", "folder_path": "/Rule"})
        assert (await action.execute(config, _ctx(payload))).data["folder"] == "/Rule"

    async def test_missing_source_id(self, store):
        action = self._action(store, FakeDestination())
        config = parse_action_config("document_push", {"document_type": "meeting_agenda"})
        with pytest.raises(TargetResolutionError, match="meeting_id"):
            await action.execute(config, _ctx({"owner_id": "profile-1"}))

    async def test_unconnected_profile_is_retryable(self, store):
        action = self._action(store)
        config = parse_action_config("document_push", {"document_type": "briefing"})
        with pytest.raises(DocumentDestinationUnavailableError) as exc_info:
            await action.execute(config, _ctx({"owner_id": "profile-1", "briefing_id": "b1"}))
        assert exc_info.value.retryable is True

    async def test_producer_crash_is_wrapped(self, store):
        action = self._action(store, FakeDestination(), producer=FakeProducer(exc=OSError("renderer down")))
        config = parse_action_config("document_push", {"document_type": "briefing"})
        with pytest.raises(DocumentDestinationUnavailableError, match="renderer down"):
            await action.execute(config, _ctx({"owner_id": "profile-1", "briefing_id": "b1"}))
        assert store.documents.list_for_profile("profile-1") == []


# =============================================================================
# Webhook
# =============================================================================


class TestWebhook:
    async def test_2xx_is_success(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            action = WebhookAction(client)
            config = parse_action_config(
                "webhook", {"url": "https://hooks.example.com/in", "headers": {"X-Token": "t"}}
            )
            result = await action.execute(config, _ctx({"issue_id": "i1"}))

        assert result.to_dict() == {"url": "https://hooks.example.com/in", "status": 204, "success": True}
        assert seen[0].method == "POST"
        assert seen[0].headers["X-Token"] == "t"
        assert json.loads(seen[0].content) == {"issue_id": "i1"}

    async def test_non_2xx_is_partial_not_raised(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport) as client:
            action = WebhookAction(client)
            config = parse_action_config("webhook", {"url": "https://hooks.example.com/in"})
            result = await action.execute(config, _ctx({}))
        assert result.success is False
        assert result.data["status"] == 500

    async def test_transport_error_is_retryable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            action = WebhookAction(client)
            config = parse_action_config("webhook", {"url": "https://hooks.example.com/in"})
            with pytest.raises(InfrastructureError) as exc_info:
                await action.execute(config, _ctx({}))
        assert exc_info.value.retryable is True


# =============================================================================
# Dispatcher
# =============================================================================


class TestDispatcher:
    async def test_selects_adapter_and_parses_raw_config(self, channel):
        dispatcher = ActionDispatcher([ChannelMessageAction(FakeChannelFactory(channel))])
        result = await dispatcher.execute(
            "slack_channel_message", {"channel_id": "C1"}, {"title": "t"}, "org-1", "issue/queued"
        )
        assert result.success
        assert channel.sent == [("C1", "*issue/queued*: t")]

    async def test_unregistered_type_is_configuration_error(self):
        dispatcher = ActionDispatcher([])
        with pytest.raises(UnknownActionTypeError) as exc_info:
            await dispatcher.execute("webhook", {"url": "https://x.example"}, {}, "org-1")
        assert exc_info.value.retryable is False

    async def test_bad_raw_config(self, channel):
        dispatcher = ActionDispatcher([ChannelMessageAction(FakeChannelFactory(channel))])
        with pytest.raises(InvalidActionConfigError):
            await dispatcher.execute("channel_message", {}, {}, "org-1")

    def test_supports(self, channel):
        dispatcher = ActionDispatcher([ChannelMessageAction(FakeChannelFactory(channel))])
        assert dispatcher.supports("channel_message")
        assert dispatcher.supports("slack_channel_message")
        assert not dispatcher.supports("webhook")
        assert not dispatcher.supports("nonsense")
        assert dispatcher.action_types == [ActionType.CHANNEL_MESSAGE]
