"""Calendar operations exposed to the API and CLI.

CalendarService ties the pieces together: window resolution, aggregation,
filtering, rescheduling, and native CalendarEvent CRUD.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any

from proposal_calendar.aggregator import aggregate
from proposal_calendar.config import CalendarConfig
from proposal_calendar.errors import RecordNotFoundError
from proposal_calendar.filters import filter_events
from proposal_calendar.models import (
    SOURCE_COLLECTIONS,
    CalendarEventPatch,
    CalendarEventPayload,
    EventQuery,
    EventWindowResult,
    NativeCalendarEvent,
    UnifiedEvent,
    ViewMode,
    parse_source_record,
)
from proposal_calendar.reschedule import (
    BatchRescheduleResult,
    RescheduleController,
    RescheduleResult,
    ScheduleChange,
)
from proposal_calendar.store import EntityStore, InMemoryEntityStore, PostgresEntityStore, Record
from proposal_calendar.windows import resolve_view_window, sort_chronologically

logger = logging.getLogger(__name__)

_CALENDAR_EVENTS = SOURCE_COLLECTIONS["calendar_event"]
_ORGANIZATIONS = "Organization"
# Recurring instance ids are "{series id}-{YYYY-MM-DD}".
_INSTANCE_ID_PATTERN = re.compile(r"^(.*)-(\d{4}-\d{2}-\d{2})$")


def build_store(config: CalendarConfig) -> EntityStore:
    """Create the entity store backend named in ``[calendar.store]``.

    A Postgres store still needs ``await store.connect()`` before use.
    """
    store_config = config.store
    if store_config.backend == "postgres":
        if not store_config.dsn:
            raise ValueError("A DSN is required for the postgres store backend")
        return PostgresEntityStore(
            store_config.dsn,
            min_pool_size=store_config.min_pool_size,
            max_pool_size=store_config.max_pool_size,
        )
    if store_config.seed_path:
        return InMemoryEntityStore.from_json_file(Path(store_config.seed_path))
    return InMemoryEntityStore()


def _event_document(payload: CalendarEventPayload | CalendarEventPatch) -> dict[str, Any]:
    """Serialize a write payload for storage; the rule is stored as a JSON string."""
    partial = isinstance(payload, CalendarEventPatch)
    document = payload.model_dump(mode="json", exclude_unset=partial, exclude={"recurrence_rule"})
    if not partial or "recurrence_rule" in payload.model_fields_set:
        rule = payload.recurrence_rule
        document["recurrence_rule"] = rule.model_dump_json() if rule is not None else None
    return document


class CalendarService:
    """Entry point for calendar reads and writes.

    Parameters
    ----------
    store:
        Entity store holding every source collection.
    config:
        Calendar configuration (timezone, window padding, recurrence bounds).
    """

    def __init__(self, store: EntityStore, config: CalendarConfig | None = None) -> None:
        self.store = store
        self.config = config or CalendarConfig()
        self._reschedule = RescheduleController(store, timezone=self.config.zoneinfo)

    async def get_events_for_window(
        self,
        organization_id: str,
        view_mode: ViewMode,
        anchor: date | datetime,
        filters: EventQuery | None = None,
        *,
        now: datetime | None = None,
    ) -> EventWindowResult:
        """Resolve the view window, aggregate, filter and sort chronologically."""
        window = resolve_view_window(
            view_mode,
            anchor,
            config=self.config.windows,
            tz=self.config.zoneinfo,
            now=now,
        )
        aggregated = await aggregate(
            self.store, organization_id, window, config=self.config, now=now
        )
        events = sort_chronologically(filter_events(aggregated.events, filters))
        return EventWindowResult(
            view_mode=view_mode,
            window=window,
            events=events,
            failures=aggregated.failures,
        )

    async def reschedule_event(self, event: UnifiedEvent, new_date: date) -> RescheduleResult:
        return await self._reschedule.reschedule(event, new_date)

    async def apply_schedule_changes(
        self,
        events: Iterable[UnifiedEvent],
        changes: Iterable[ScheduleChange | Mapping[str, Any]],
    ) -> BatchRescheduleResult:
        return await self._reschedule.apply_schedule_changes(events, changes)

    async def _get_native_record(self, event_id: str) -> Record:
        """Fetch a CalendarEvent by its id or by one of its instance ids."""
        try:
            return await self.store.get(_CALENDAR_EVENTS, event_id)
        except RecordNotFoundError:
            match = _INSTANCE_ID_PATTERN.match(event_id)
            if match is None:
                raise
        return await self.store.get(_CALENDAR_EVENTS, match.group(1))

    async def delete_event(self, event_id: str, *, delete_all_occurrences: bool = True) -> str:
        """Delete a native event; recurring series are always deleted whole.

        Returns the deleted record id.

        Raises
        ------
        RecordNotFoundError
            If neither *event_id* nor its series id exists.
        ValueError
            If *delete_all_occurrences* is False for a recurring event.
        """
        raw = await self._get_native_record(event_id)
        record = parse_source_record(raw, "calendar_event")
        if record.recurrence_rule is not None and not delete_all_occurrences:
            raise ValueError(
                "Single occurrences of a recurring event cannot be deleted; "
                "delete the whole series instead"
            )
        await self.store.delete(_CALENDAR_EVENTS, record.id)
        logger.info(
            "Deleted calendar event %s%s",
            record.id,
            " (whole series)" if record.recurrence_rule is not None else "",
        )
        return record.id

    async def create_event(
        self,
        organization_id: str,
        payload: CalendarEventPayload | Mapping[str, Any],
        created_by: str | None = None,
    ) -> NativeCalendarEvent:
        """Create a native CalendarEvent owned by *organization_id*."""
        if not isinstance(payload, CalendarEventPayload):
            payload = CalendarEventPayload.model_validate(payload)
        document = _event_document(payload)
        if document.get("end_date") is None:
            document["end_date"] = document["start_date"]
        document["organization_id"] = organization_id
        if created_by:
            document["created_by"] = created_by
        stored = await self.store.create(_CALENDAR_EVENTS, document)
        logger.info("Created calendar event %s for organization %s", stored["id"], organization_id)
        return NativeCalendarEvent.model_validate(stored)

    async def update_event(
        self, event_id: str, payload: CalendarEventPatch | Mapping[str, Any]
    ) -> NativeCalendarEvent:
        """Patch a native CalendarEvent; an instance id updates its whole series."""
        if not isinstance(payload, CalendarEventPatch):
            payload = CalendarEventPatch.model_validate(payload)
        existing = NativeCalendarEvent.model_validate(await self._get_native_record(event_id))
        start = payload.start_date or existing.start_date
        end = payload.end_date or existing.end_date
        if start is not None and end is not None and end < start:
            raise ValueError("end_date must not be before start_date")
        stored = await self.store.update(_CALENDAR_EVENTS, existing.id, _event_document(payload))
        logger.info("Updated calendar event %s", existing.id)
        return NativeCalendarEvent.model_validate(stored)

    async def resolve_active_organization(self, user: Mapping[str, Any]) -> Record | None:
        """Return the organization record the user is currently working in.

        The user's ``active_client_id`` wins, then their first client access,
        then the newest organization they created.
        """
        organization_id: object = user.get("active_client_id")
        if not organization_id:
            accesses = user.get("client_accesses") or []
            if accesses and isinstance(accesses[0], Mapping):
                organization_id = accesses[0].get("organization_id")
        if not organization_id:
            email = user.get("email")
            if not email:
                return None
            owned = await self.store.list(
                _ORGANIZATIONS, {"created_by": email}, sort="-created_date", limit=1
            )
            return owned[0] if owned else None
        try:
            return await self.store.get(_ORGANIZATIONS, str(organization_id))
        except RecordNotFoundError:
            logger.warning("Active organization %s does not exist", organization_id)
            return None
