"""Drag-to-reschedule for unified events.

Only three source types can be moved, and each one stores its date in a
different collection field. The controller re-checks ``can_drag`` and the
stored series before every write, so a stale or forged client event cannot
move a deadline or a single recurring occurrence.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime, tzinfo
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from proposal_calendar.errors import (
    IllegalRescheduleError,
    MalformedRecurrenceRuleError,
    RescheduleWriteError,
)
from proposal_calendar.models import (
    SOURCE_COLLECTIONS,
    SourceType,
    UnifiedEvent,
    parse_recurrence_rule,
)
from proposal_calendar.store import EntityStore

logger = logging.getLogger(__name__)

_SOURCE_LABELS: dict[str, str] = {
    "proposal_deadline": "proposal deadlines",
    "review_deadline": "review deadlines",
    "compliance_due": "compliance deadlines",
}


class DragState(StrEnum):
    """Lifecycle of one drag gesture."""

    IDLE = "idle"
    DRAG_STARTED = "drag_started"
    REJECTED = "rejected"
    COMMITTED = "committed"


class RescheduleResult(BaseModel):
    """Outcome of a committed reschedule."""

    event_id: str
    original_id: str
    source_type: SourceType
    state: DragState
    start_date: datetime
    end_date: datetime
    patch: dict[str, Any] = Field(default_factory=dict)


class ScheduleChange(BaseModel):
    """One recommended move: an event id and its exact new start."""

    event_id: str
    new_start: datetime


class BatchRescheduleResult(BaseModel):
    applied: list[RescheduleResult] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


def build_patch(source_type: SourceType, start: datetime, end: datetime) -> dict[str, Any]:
    """Return the store update that moves an event of *source_type* to *start*."""
    if source_type == "calendar_event":
        return {"start_date": start.isoformat(), "end_date": end.isoformat()}
    if source_type == "proposal_task":
        return {"due_date": start.isoformat()}
    if source_type == "client_meeting":
        return {"scheduled_date": start.isoformat()}
    raise ValueError(f"No reschedule field for source type {source_type!r}")


def rejection_message(event: UnifiedEvent, *, recurring: bool = False) -> str:
    if recurring or event.is_recurring_instance:
        return (
            "Recurring event instances cannot be dragged. "
            "Edit the series to change every occurrence."
        )
    label = _SOURCE_LABELS.get(event.source_type, event.source_type.replace("_", " "))
    return f"Cannot reschedule {label} from the calendar."


def _has_stored_rule(record: Mapping[str, Any]) -> bool:
    try:
        return parse_recurrence_rule(record.get("recurrence_rule")) is not None
    except MalformedRecurrenceRuleError:
        # Shown as a single event, so it moves like one.
        return False


class RescheduleController:
    """Apply drag gestures to the entity store.

    The controller keeps no per-gesture state, so one instance can serve
    concurrent requests. Each gesture ends either in a RescheduleResult
    (``committed``) or an IllegalRescheduleError (``rejected``).

    Parameters
    ----------
    store:
        Entity store that owns the source collections.
    timezone:
        Display timezone. The dropped day is interpreted in it and the
        original wall-clock time of day is kept.
    """

    def __init__(self, store: EntityStore, *, timezone: tzinfo = UTC) -> None:
        self._store = store
        self._timezone = timezone

    def target_start(self, event: UnifiedEvent, new_date: date) -> datetime:
        """Return *new_date* at the original start's local hour and minute."""
        local_start = event.start_date.astimezone(self._timezone)
        moved = datetime.combine(
            new_date,
            local_start.time().replace(second=0, microsecond=0),
            tzinfo=self._timezone,
        )
        return moved.astimezone(UTC)

    async def _rejection(self, event: UnifiedEvent) -> str | None:
        """Return why *event* cannot be dragged, or None when it can.

        ``can_drag`` is derived from fields the caller supplies, so native
        events are also checked against the stored series record.
        """
        if not event.can_drag:
            return rejection_message(event)
        if event.source_type != "calendar_event":
            return None
        if event.id != event.original_id:
            return rejection_message(event, recurring=True)
        collection = SOURCE_COLLECTIONS[event.source_type]
        try:
            record = await self._store.get(collection, event.original_id)
        except Exception as exc:
            logger.warning("Reschedule lookup failed for %s in %s", event.id, collection)
            raise RescheduleWriteError(event.id, collection, exc) from exc
        if _has_stored_rule(record):
            return rejection_message(event, recurring=True)
        return None

    async def _write(self, event: UnifiedEvent, start: datetime) -> RescheduleResult:
        end = start + event.duration
        patch = build_patch(event.source_type, start, end)
        collection = SOURCE_COLLECTIONS[event.source_type]
        try:
            await self._store.update(collection, event.original_id, patch)
        except Exception as exc:
            logger.warning(
                "Reschedule write failed for %s in %s", event.id, collection, exc_info=True
            )
            raise RescheduleWriteError(event.id, collection, exc) from exc
        logger.info("Rescheduled %s %s to %s", event.source_type, event.original_id, start)
        return RescheduleResult(
            event_id=event.id,
            original_id=event.original_id,
            source_type=event.source_type,
            state=DragState.COMMITTED,
            start_date=start,
            end_date=end,
            patch=patch,
        )

    async def reschedule(self, event: UnifiedEvent, new_date: date) -> RescheduleResult:
        """Move *event* to *new_date*, keeping its time of day and duration.

        Raises:
            IllegalRescheduleError: If the event is not draggable (no write is issued)
            RescheduleWriteError: If the store rejects the lookup or the update
        """
        message = await self._rejection(event)
        if message is not None:
            logger.info("Rejected reschedule of %s: %s", event.id, message)
            raise IllegalRescheduleError(event.id, event.source_type, message)
        return await self._write(event, self.target_start(event, new_date))

    async def apply_schedule_changes(
        self,
        events: Iterable[UnifiedEvent],
        changes: Iterable[ScheduleChange | Mapping[str, Any]],
    ) -> BatchRescheduleResult:
        """Apply a batch of exact-start moves, skipping events that cannot be dragged.

        Changes naming an unknown event or an undraggable one are reported in
        ``skipped``. The first store failure stops the batch and propagates as
        a RescheduleWriteError; changes applied before it stay applied.
        """
        by_id = {event.id: event for event in events}
        result = BatchRescheduleResult()
        for raw_change in changes:
            change = ScheduleChange.model_validate(raw_change)
            event = by_id.get(change.event_id)
            if event is None or await self._rejection(event) is not None:
                result.skipped.append(change.event_id)
                continue
            start = change.new_start
            if start.tzinfo is None:
                start = start.replace(tzinfo=self._timezone)
            result.applied.append(await self._write(event, start.astimezone(UTC)))
        if result.skipped:
            logger.info("Skipped %d schedule change(s): %s", len(result.skipped), result.skipped)
        return result
