"""Stage-transition tracker.

Only the registration's tracked stage field produces history; other
field changes on the same record never do. An entity has at most one
open interval: every transition closes the open one (``exited_at`` set
to the new interval's ``entered_at``) before opening the next, in a
single repository step.

The open interval, not the stored record, is the entity's current
stage. Tracking the same stage twice is a no-op, so a sync that failed
after writing some transitions can simply be run again.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from cadence.storage.protocols import StageHistoryRepository
from cadence.sync.models import DataSourceRegistration, StageHistoryInterval


def stage_value(properties: dict[str, Any], field: str | None) -> str | None:
    if not field:
        return None
    value = properties.get(field)
    if value is None or value == "":
        return None
    return str(value)


class StageTransitionTracker:
    def __init__(self, history: StageHistoryRepository) -> None:
        self._history = history

    def track(
        self,
        registration: DataSourceRegistration,
        entity_id: str,
        new_stage: str | None,
        now: datetime,
    ) -> StageHistoryInterval | None:
        """Move an entity to ``new_stage``; returns the interval opened, if any.

        An entity without history gets its initial interval
        (``from_stage`` None). Nothing is opened when the stage equals the
        open interval's or the new value is empty.
        """
        if new_stage is None:
            return None
        current = self._history.get_open(registration.id, entity_id)
        from_stage = current.to_stage if current else None
        if new_stage == from_stage:
            return None

        interval = StageHistoryInterval.open(
            data_source_id=registration.id,
            tenant_id=registration.tenant_id,
            entity_type=registration.object_type,
            entity_id=entity_id,
            from_stage=from_stage,
            to_stage=new_stage,
            entered_at=now,
        )
        self._history.transition(interval)
        return interval

    def history(self, registration: DataSourceRegistration, entity_id: str) -> list[StageHistoryInterval]:
        return self._history.list_for_entity(registration.id, entity_id)
