"""View-window resolution and calendar date helpers.

Weeks start on Sunday, matching the month grid the calendar renders.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from dateutil.relativedelta import relativedelta

from proposal_calendar.config import WindowConfig
from proposal_calendar.models import UnifiedEvent, ViewMode, ViewWindow


def _as_date(anchor: date | datetime, tz: tzinfo) -> date:
    if isinstance(anchor, datetime):
        if anchor.tzinfo is not None:
            anchor = anchor.astimezone(tz)
        return anchor.date()
    return anchor


def start_of_day(day: date, tz: tzinfo = UTC) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: tzinfo = UTC) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz)


def start_of_week(day: date) -> date:
    """Return the Sunday on or before *day*."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    last = first + relativedelta(months=1) - timedelta(days=1)
    return first, last


def resolve_view_window(
    view_mode: ViewMode,
    anchor: date | datetime,
    *,
    config: WindowConfig | None = None,
    tz: tzinfo = UTC,
    now: datetime | None = None,
) -> ViewWindow:
    """Resolve the ``[start, end]`` window a view mode needs events for.

    Month views pad around the calendar month so the partial leading and
    trailing weeks of the grid are covered; week views pad by a day; day
    views cover exactly one day; agenda views run from *now* forward.
    """
    config = config or WindowConfig()
    day = _as_date(anchor, tz)

    if view_mode == "month":
        first, last = month_bounds(day)
        padding = timedelta(days=config.month_padding_days)
        return ViewWindow(
            start=start_of_day(first, tz) - padding,
            end=end_of_day(last, tz) + padding,
        )
    if view_mode == "week":
        sunday = start_of_week(day)
        padding = timedelta(days=config.week_padding_days)
        return ViewWindow(
            start=start_of_day(sunday, tz) - padding,
            end=end_of_day(sunday + timedelta(days=6), tz) + padding,
        )
    if view_mode == "day":
        return ViewWindow(start=start_of_day(day, tz), end=end_of_day(day, tz))
    if view_mode == "agenda":
        current = (now or datetime.now(UTC)).astimezone(tz)
        return ViewWindow(start=current, end=current + timedelta(days=config.agenda_days))
    raise ValueError(f"Unknown view mode: {view_mode!r}")


def shift_anchor(
    view_mode: ViewMode, anchor: date, direction: int, *, agenda_days: int = 30
) -> date:
    """Move *anchor* to the previous (``-1``) or next (``+1``) period."""
    if direction not in (-1, 1):
        raise ValueError("direction must be -1 or 1")
    if view_mode == "month":
        return anchor + relativedelta(months=direction)
    if view_mode == "week":
        return anchor + timedelta(weeks=direction)
    if view_mode == "day":
        return anchor + timedelta(days=direction)
    if view_mode == "agenda":
        return anchor + timedelta(days=agenda_days * direction)
    raise ValueError(f"Unknown view mode: {view_mode!r}")


def window_title(view_mode: ViewMode, anchor: date) -> str:
    """Header text for a view, e.g. ``"January 2024"`` or ``"Jan 7 - Jan 13, 2024"``."""
    if view_mode == "month":
        return f"{anchor:%B %Y}"
    if view_mode == "week":
        start = start_of_week(anchor)
        end = start + timedelta(days=6)
        if start.year == end.year:
            return f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}"
        return f"{start:%b} {start.day}, {start.year} - {end:%b} {end.day}, {end.year}"
    if view_mode == "day":
        return f"{anchor:%A, %B} {anchor.day}, {anchor.year}"
    if view_mode == "agenda":
        return f"Agenda from {anchor:%b} {anchor.day}, {anchor.year}"
    raise ValueError(f"Unknown view mode: {view_mode!r}")


def sort_chronologically(events: Iterable[UnifiedEvent]) -> list[UnifiedEvent]:
    """Stable sort by start date."""
    return sorted(events, key=lambda event: event.start_date)


def events_for_day(
    events: Iterable[UnifiedEvent], day: date, tz: tzinfo = UTC
) -> list[UnifiedEvent]:
    """Events that start on, end on, or span across *day* (a month-grid cell)."""
    matched = [
        event
        for event in events
        if event.start_date.astimezone(tz).date() <= day <= event.end_date.astimezone(tz).date()
    ]
    return sort_chronologically(matched)
