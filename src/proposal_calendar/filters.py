"""Pure filtering and text search over unified events."""

from __future__ import annotations

from collections.abc import Iterable

from proposal_calendar.models import EventQuery, UnifiedEvent

_ANY = "all"


def _is_open(value: str | None) -> bool:
    return value is None or value.strip() == "" or value == _ANY


def _text_matches(event: UnifiedEvent, needle: str) -> bool:
    needle = needle.casefold()
    return any(
        needle in field.casefold()
        for field in (event.title, event.description, event.location)
        if field
    )


def matches(event: UnifiedEvent, query: EventQuery) -> bool:
    """True when *event* satisfies every constrained field of *query*."""
    if query.text and query.text.strip() and not _text_matches(event, query.text.strip()):
        return False
    if not _is_open(query.source_type) and event.source_type != query.source_type:
        return False
    if not _is_open(query.assigned_to) and event.assigned_to != query.assigned_to:
        return False
    if not _is_open(query.priority) and event.priority != query.priority:
        return False
    if not _is_open(query.proposal_id) and event.proposal_id != query.proposal_id:
        return False
    return True


def filter_events(
    events: Iterable[UnifiedEvent], query: EventQuery | None = None
) -> list[UnifiedEvent]:
    """Return the events matching *query*, preserving input order."""
    if query is None:
        return list(events)
    return [event for event in events if matches(event, query)]
