"""Recurrence expansion for native calendar events.

A recurring event is stored once, with a RecurrenceRule. Expansion turns it
into the concrete, non-persisted instances whose start falls inside a view
window. Occurrence *k* is always computed from the series origin
(``origin + k * interval``) so monthly series never drift after a clamped
month end. Stepping happens on the wall clock of the display timezone, so a
09:00 weekly meeting stays at 09:00 across DST changes.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, time, timedelta, tzinfo

from dateutil.relativedelta import relativedelta

from proposal_calendar.models import (
    Frequency,
    NativeCalendarEvent,
    RecurrenceRule,
    UnifiedEvent,
    parse_recurrence_rule,
)
from proposal_calendar.normalize import normalize

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_HORIZON",
    "DEFAULT_MAX_ITERATIONS",
    "advance",
    "describe_recurrence",
    "expand",
    "instance_id",
    "parse_recurrence_rule",
]

DEFAULT_HORIZON = timedelta(days=730)
DEFAULT_MAX_ITERATIONS = 1000

_UNIT_NAMES: dict[str, tuple[str, str]] = {
    "daily": ("day", "daily"),
    "weekly": ("week", "weekly"),
    "monthly": ("month", "monthly"),
    "yearly": ("year", "yearly"),
}


def advance(moment: datetime, frequency: Frequency, steps: int) -> datetime:
    """Move *moment* forward by *steps* calendar units of *frequency*.

    Months and years use calendar arithmetic: Jan 31 plus one month is the
    last day of February.
    """
    if frequency == "daily":
        return moment + timedelta(days=steps)
    if frequency == "weekly":
        return moment + timedelta(weeks=steps)
    if frequency == "monthly":
        return moment + relativedelta(months=steps)
    if frequency == "yearly":
        return moment + relativedelta(years=steps)
    raise ValueError(f"Unsupported frequency: {frequency!r}")


def instance_id(series_id: str, occurrence: datetime) -> str:
    """Occurrence id, dated by the local date of *occurrence*."""
    return f"{series_id}-{occurrence:%Y-%m-%d}"


def _series_end(
    rule: RecurrenceRule,
    origin: datetime,
    *,
    horizon: timedelta,
    now: datetime | None,
) -> datetime:
    if rule.end_type == "date" and rule.end_date is not None:
        return datetime.combine(rule.end_date, time.max, tzinfo=origin.tzinfo)
    if rule.end_type == "count" and rule.occurrence_count is not None:
        # The origin is the first occurrence.
        return advance(origin, rule.frequency, (rule.occurrence_count - 1) * rule.interval)
    return (now or datetime.now(UTC)) + horizon


def _first_candidate_index(rule: RecurrenceRule, origin: datetime, window_start: datetime) -> int:
    """Return an occurrence index at or before the first one inside the window."""
    if window_start <= origin:
        return 0
    window_start = window_start.astimezone(origin.tzinfo)
    if rule.frequency in ("daily", "weekly"):
        unit_days = 1 if rule.frequency == "daily" else 7
        elapsed_units = (window_start - origin).days // unit_days
    elif rule.frequency == "monthly":
        elapsed_units = (window_start.year - origin.year) * 12 + window_start.month - origin.month
    else:
        elapsed_units = window_start.year - origin.year
    return max(elapsed_units // rule.interval - 1, 0)


def expand(
    event: NativeCalendarEvent,
    window_start: datetime,
    window_end: datetime,
    *,
    horizon: timedelta = DEFAULT_HORIZON,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    now: datetime | None = None,
    tz: tzinfo = UTC,
) -> list[UnifiedEvent]:
    """Expand *event* into the occurrences starting within ``[window_start, window_end]``.

    A non-recurring event comes back as its single normalized event,
    unmodified and unfiltered. Every instance keeps the origin's duration.

    Parameters
    ----------
    horizon:
        Forward cap (from *now*) for series that never end.
    max_iterations:
        Safety cap on the number of occurrence steps examined.
    now:
        Reference time for the horizon; defaults to the current UTC time.
    tz:
        Display timezone. Occurrences keep the origin's local time of day in
        this zone and instance ids carry the local date.
    """
    base = normalize(event)
    if base is None:
        return []
    rule = event.recurrence_rule
    if rule is None:
        return [base]

    origin = base.start_date.astimezone(tz)
    duration = base.end_date - base.start_date
    series_end = _series_end(rule, origin, horizon=horizon, now=now)

    instances: list[UnifiedEvent] = []
    index = _first_candidate_index(rule, origin, window_start)
    for _ in range(max_iterations):
        current = advance(origin, rule.frequency, index * rule.interval)
        if current > series_end or current > window_end:
            break
        if current >= window_start:
            instances.append(
                base.model_copy(
                    update={
                        "id": instance_id(event.id, current),
                        "original_id": event.id,
                        "start_date": current.astimezone(UTC),
                        "end_date": current.astimezone(UTC) + duration,
                        "is_recurring_instance": True,
                    }
                )
            )
        index += 1
    else:
        logger.warning(
            "Recurrence expansion for event %s stopped at the %d-iteration cap",
            event.id,
            max_iterations,
        )
    return instances


def describe_recurrence(rule: RecurrenceRule | None) -> str | None:
    """Human-readable summary, e.g. ``"Repeats every 2 weeks, 4 times"``."""
    if rule is None:
        return None
    unit, adverb = _UNIT_NAMES[rule.frequency]
    if rule.interval > 1:
        text = f"Repeats every {rule.interval} {unit}s"
    else:
        text = f"Repeats {adverb}"

    if rule.end_type == "date" and rule.end_date is not None:
        text += f", until {rule.end_date:%b} {rule.end_date.day}, {rule.end_date.year}"
    elif rule.end_type == "count" and rule.occurrence_count is not None:
        plural = "s" if rule.occurrence_count > 1 else ""
        text += f", {rule.occurrence_count} time{plural}"
    else:
        text += ", forever"
    return text
