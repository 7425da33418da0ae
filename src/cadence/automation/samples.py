"""Sample event data for manual test runs.

When an admin presses "test" on a rule without supplying event data,
the pipeline runs against a realistic payload for the rule's trigger,
with the admin as owner so direct messages land with them.
"""

from __future__ import annotations

from typing import Any

from cadence.automation.models import TriggerEvent
from cadence.core.timestamps import utc_now

_MEETING = {"meeting_id": "sample-meeting-id", "title": "Sample L10 Meeting"}
_ISSUE = {"issue_id": "sample-issue-id", "title": "Sample Issue Title", "priority": 2}
_ROCK = {
    "rock_id": "sample-rock-id",
    "title": "Sample Rock Title",
    "old_status": "on_track",
    "new_status": "off_track",
    "rock_level": "individual",
}
_TODO = {"todo_id": "sample-todo-id", "title": "Sample To-Do"}


def sample_event_data(
    trigger: TriggerEvent | str,
    tenant_id: str,
    profile_id: str | None = None,
) -> dict[str, Any]:
    """Build a payload shaped like a real ``trigger`` event."""
    trigger = TriggerEvent.parse(trigger)
    now = utc_now().isoformat()
    owner = profile_id or "sample-profile-id"
    data: dict[str, Any] = {
        "organization_id": tenant_id,
        "triggered_by": owner,
        "timestamp": now,
    }

    name = trigger.value
    if name.startswith("l10/meeting."):
        data.update(_MEETING, scheduled_at=now)
    elif name.startswith("issue/"):
        data.update(_ISSUE, owner_id=owner)
    elif name.startswith("rock/"):
        data.update(_ROCK, owner_id=owner)
        if trigger is TriggerEvent.ROCK_CREATED:
            data.pop("old_status")
            data["new_status"] = "on_track"
    elif name.startswith("todo/"):
        data.update(_TODO, owner_id=owner, due_date=now)
    elif trigger is TriggerEvent.HEADLINE_CREATED:
        data.update(
            headline_id="sample-headline-id",
            title="Sample Headline - Great customer win!",
            headline_type="customer",
            created_by=owner,
        )
    elif trigger is TriggerEvent.SCORECARD_BELOW_GOAL:
        data.update(
            metric_id="sample-metric-id",
            metric_name="Sample Metric",
            current_value=75,
            goal=100,
            owner_id=owner,
        )
    elif trigger is TriggerEvent.SCORECARD_ENTRY_CREATED:
        data.update(
            metric_id="sample-metric-id",
            metric_name="Sample Metric",
            value=120,
            owner_id=owner,
        )
    return data
