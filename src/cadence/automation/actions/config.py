"""Typed action configuration.

Each action type carries its own pydantic model; together they form a
discriminated union on ``action_type``. Rules are validated against it
when saved, so a missing ``channel_id`` or an unknown document type is
reported to the tenant admin instead of surfacing as a failed execution.

Example::

    config = parse_action_config("channel_message", {"channel_id": "C123"})
    assert isinstance(config, ChannelMessageConfig)
    assert config.kind is ActionType.CHANNEL_MESSAGE
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from cadence.automation.models import ActionType
from cadence.core.errors import InvalidActionConfigError


class _ActionConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    @property
    def kind(self) -> ActionType:
        return ActionType(self.action_type)  # type: ignore[attr-defined]

    def to_config_dict(self) -> dict[str, Any]:
        """Configuration as stored on the rule (without the discriminator)."""
        return self.model_dump(exclude={"action_type"}, exclude_none=True)


class ChannelMessageConfig(_ActionConfig):
    action_type: Literal["channel_message"] = "channel_message"
    channel_id: str = Field(min_length=1)
    message_template: str | None = None


class DirectMessageConfig(_ActionConfig):
    action_type: Literal["direct_message"] = "direct_message"
    user_field: str | None = "owner_id"
    slack_user_id: str | None = None
    message_template: str | None = None

    @model_validator(mode="after")
    def _needs_target(self) -> DirectMessageConfig:
        if not self.user_field and not self.slack_user_id:
            raise ValueError("direct_message requires user_field or slack_user_id")
        return self


class DocumentPushConfig(_ActionConfig):
    action_type: Literal["document_push"] = "document_push"
    document_type: Literal["meeting_agenda", "briefing"]
    target_user_field: str = "owner_id"
    folder_path: str | None = None


class WebhookConfig(_ActionConfig):
    action_type: Literal["webhook"] = "webhook"
    url: str
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v

    @field_validator("method")
    @classmethod
    def _method(cls, v: str) -> str:
        v = v.upper()
        if v not in {"GET", "POST", "PUT", "PATCH", "DELETE"}:
            raise ValueError(f"unsupported HTTP method {v!r}")
        return v


ActionConfig = Annotated[
    Union[ChannelMessageConfig, DirectMessageConfig, DocumentPushConfig, WebhookConfig],
    Field(discriminator="action_type"),
]

_ACTION_CONFIG = TypeAdapter(ActionConfig)


def parse_action_config(
    action_type: str | ActionType, config: Mapping[str, Any]
) -> ActionConfig:
    """Validate raw configuration for ``action_type``.

    Raises:
        UnknownActionTypeError: ``action_type`` has no adapter.
        InvalidActionConfigError: the configuration does not fit the adapter.
    """
    kind = ActionType.parse(action_type)
    payload = {**dict(config), "action_type": kind.value}
    try:
        return _ACTION_CONFIG.validate_python(payload)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"][1:]) or kind.value, "message": err["msg"]}
            for err in e.errors()
        ]
        summary = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
        raise InvalidActionConfigError(
            f"Invalid {kind.value} configuration: {summary}", errors=errors, cause=e
        ).with_context(action_type=kind.value) from e


__all__ = [
    "ActionConfig",
    "ChannelMessageConfig",
    "DirectMessageConfig",
    "DocumentPushConfig",
    "WebhookConfig",
    "parse_action_config",
]
