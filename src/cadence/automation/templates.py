"""Message templates for channel and direct-message actions."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def _render_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def interpolate(template: str, data: Mapping[str, Any]) -> str:
    """Replace ``{{field}}`` with ``data[field]``.

    Placeholders with no matching key are left in place.
    """

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in data:
            return match.group(0)
        return _render_value(data[key])

    return PLACEHOLDER.sub(_sub, template)


def default_message(event_type: str, data: Mapping[str, Any]) -> str:
    title = data.get("title")
    if title:
        return f"*{event_type}*: {title}"
    return f"Event triggered: {event_type}"


def render_message(template: str | None, event_type: str, data: Mapping[str, Any]) -> str:
    """Render ``template`` (or the default message) against event data."""
    return interpolate(template or default_message(event_type, data), data)
