"""Fetch every calendar source for an organization and merge them into one list.

The organization's proposals are loaded first because three sources are only
reachable through proposal ids. The six sources are then fetched concurrently;
each fetch is isolated, so one failing collection shrinks the result instead
of aborting it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime, timedelta, tzinfo
from typing import Any

from opentelemetry import trace
from pydantic import ValidationError

from proposal_calendar.config import CalendarConfig
from proposal_calendar.core.logging import set_organization_context
from proposal_calendar.errors import EntityStoreError
from proposal_calendar.models import (
    SOURCE_COLLECTIONS,
    AggregateResult,
    NativeCalendarEvent,
    SourceFetchFailure,
    SourceType,
    UnifiedEvent,
    ViewWindow,
    parse_source_record,
)
from proposal_calendar.normalize import normalize
from proposal_calendar.recurrence import expand
from proposal_calendar.store import EntityStore, Record

logger = logging.getLogger(__name__)

_tracer = trace.get_tracer("proposal_calendar")

# Sources whose records are scoped by proposal rather than by organization.
_PROPOSAL_SCOPED: tuple[SourceType, ...] = ("proposal_task", "review_deadline", "compliance_due")

_FetchResult = tuple[SourceType, list[Record], SourceFetchFailure | None]


def _failure_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def _fetch_source(
    source_type: SourceType,
    fetch: Callable[[], Awaitable[list[Record]]],
) -> _FetchResult:
    with _tracer.start_as_current_span("calendar.fetch_source") as span:
        span.set_attribute("calendar.source_type", source_type)
        try:
            records = await fetch()
        except Exception as exc:
            logger.warning("Calendar source %s failed to load", source_type, exc_info=True)
            span.set_attribute("calendar.source_failed", True)
            failure = SourceFetchFailure(source_type=source_type, message=_failure_message(exc))
            return source_type, [], failure
        span.set_attribute("calendar.record_count", len(records))
        return source_type, records, None


def _proposal_names(proposals: Iterable[Record]) -> dict[str, str]:
    names: dict[str, str] = {}
    for proposal in proposals:
        proposal_id = proposal.get("id")
        name = proposal.get("proposal_name")
        if proposal_id is not None and name:
            names[str(proposal_id)] = str(name)
    return names


def _events_from_records(
    source_type: SourceType,
    records: Iterable[Mapping[str, Any]],
    window: ViewWindow,
    *,
    proposal_names: Mapping[str, str],
    horizon: timedelta,
    max_iterations: int,
    now: datetime | None,
    tz: tzinfo,
) -> list[UnifiedEvent]:
    events: list[UnifiedEvent] = []
    for raw in records:
        try:
            record = parse_source_record(raw, source_type)
        except ValidationError as exc:
            logger.debug(
                "Dropping invalid %s record %r (%d error(s))",
                source_type,
                raw.get("id"),
                exc.error_count(),
            )
            continue

        if isinstance(record, NativeCalendarEvent) and record.recurrence_rule is not None:
            events.extend(
                expand(
                    record,
                    window.start,
                    window.end,
                    horizon=horizon,
                    max_iterations=max_iterations,
                    now=now,
                    tz=tz,
                )
            )
            continue

        event = normalize(record, proposal_names=proposal_names)
        if event is None:
            logger.debug("Dropping %s record %s without a usable date", source_type, record.id)
            continue
        if window.overlaps(event.start_date, event.end_date):
            events.append(event)
    return events


async def aggregate(
    store: EntityStore,
    organization_id: str,
    window: ViewWindow,
    *,
    config: CalendarConfig | None = None,
    now: datetime | None = None,
) -> AggregateResult:
    """Build the unified, window-bounded event list for one organization.

    Parameters
    ----------
    store:
        Entity store holding the source collections.
    organization_id:
        Organization whose calendar is being assembled.
    window:
        Inclusive view window. Recurring series are expanded into it and
        other records are kept when they overlap it.
    config:
        Supplies the recurrence horizon, iteration cap and display timezone.
    now:
        Reference time for never-ending series; defaults to the current time.

    Returns
    -------
    AggregateResult
        Events in no particular order plus one failure entry per source that
        could not be read.
    """
    config = config or CalendarConfig()
    set_organization_context(organization_id)
    horizon = timedelta(days=config.recurrence.horizon_days)

    proposals: list[Record] = []
    proposal_error: Exception | None = None
    with _tracer.start_as_current_span("calendar.fetch_proposals") as span:
        try:
            proposals = await store.list(
                SOURCE_COLLECTIONS["proposal_deadline"], {"organization_id": organization_id}
            )
        except Exception as exc:
            logger.warning(
                "Proposal lookup failed for organization %s", organization_id, exc_info=True
            )
            span.set_attribute("calendar.source_failed", True)
            proposal_error = exc
    proposal_ids = [str(p["id"]) for p in proposals if p.get("id") is not None]

    async def _by_organization(source_type: SourceType) -> list[Record]:
        return await store.list(
            SOURCE_COLLECTIONS[source_type], {"organization_id": organization_id}
        )

    async def _proposal_records() -> list[Record]:
        if proposal_error is not None:
            raise EntityStoreError(
                "Proposal", f"proposal lookup failed: {_failure_message(proposal_error)}"
            )
        return proposals

    async def _by_proposal(source_type: SourceType) -> list[Record]:
        # The proposal id set is only known once the lookup succeeds.
        await _proposal_records()
        if not proposal_ids:
            return []
        return await store.list(
            SOURCE_COLLECTIONS[source_type], {"proposal_id": {"$in": proposal_ids}}
        )

    fetches: list[Awaitable[_FetchResult]] = [
        _fetch_source("calendar_event", lambda: _by_organization("calendar_event")),
        _fetch_source("client_meeting", lambda: _by_organization("client_meeting")),
        _fetch_source("proposal_deadline", _proposal_records),
    ]
    for source_type in _PROPOSAL_SCOPED:
        fetches.append(_fetch_source(source_type, lambda st=source_type: _by_proposal(st)))
    results = await asyncio.gather(*fetches)

    names = _proposal_names(proposals)
    result = AggregateResult()
    for source_type, records, failure in results:
        if failure is not None:
            result.failures.append(failure)
            continue
        result.events.extend(
            _events_from_records(
                source_type,
                records,
                window,
                proposal_names=names,
                horizon=horizon,
                max_iterations=config.recurrence.max_iterations,
                now=now,
                tz=config.zoneinfo,
            )
        )

    logger.info(
        "Aggregated %d event(s) for organization %s (%d source failure(s))",
        len(result.events),
        organization_id,
        len(result.failures),
    )
    return result
