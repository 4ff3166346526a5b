"""Tests for view-window resolution and calendar date helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from proposal_calendar.config import WindowConfig
from proposal_calendar.windows import (
    events_for_day,
    resolve_view_window,
    shift_anchor,
    sort_chronologically,
    start_of_week,
    window_title,
)

pytestmark = pytest.mark.unit


class TestResolveViewWindow:
    def test_month_is_padded_by_a_week_on_each_side(self):
        window = resolve_view_window("month", date(2024, 1, 15))

        assert window.start == datetime(2023, 12, 25, tzinfo=UTC)
        assert window.end == datetime.combine(date(2024, 2, 7), time.max, tzinfo=UTC)

    def test_week_starts_on_sunday_and_is_padded_by_a_day(self):
        # 2024-01-17 is a Wednesday; its week runs Sun 14th - Sat 20th.
        window = resolve_view_window("week", date(2024, 1, 17))

        assert window.start == datetime(2024, 1, 13, tzinfo=UTC)
        assert window.end == datetime.combine(date(2024, 1, 21), time.max, tzinfo=UTC)

    def test_day_covers_exactly_one_day(self):
        window = resolve_view_window("day", datetime(2024, 1, 17, 15, 30, tzinfo=UTC))

        assert window.start == datetime(2024, 1, 17, tzinfo=UTC)
        assert window.end.date() == date(2024, 1, 17)
        assert window.contains(datetime(2024, 1, 17, 23, 59, 59, tzinfo=UTC))
        assert not window.contains(datetime(2024, 1, 18, tzinfo=UTC))

    def test_agenda_runs_from_now_for_thirty_days(self):
        now = datetime(2024, 1, 17, 8, 0, tzinfo=UTC)
        window = resolve_view_window("agenda", date(2020, 1, 1), now=now)

        assert window.start == now
        assert window.end == now + timedelta(days=30)

    def test_padding_is_configurable(self):
        config = WindowConfig(month_padding_days=0, week_padding_days=0, agenda_days=7)

        month = resolve_view_window("month", date(2024, 2, 10), config=config)
        assert month.start == datetime(2024, 2, 1, tzinfo=UTC)
        assert month.end.date() == date(2024, 2, 29)

    def test_windows_follow_the_display_timezone(self):
        tz = ZoneInfo("America/New_York")
        window = resolve_view_window("day", date(2024, 7, 4), tz=tz)

        assert window.start.astimezone(UTC) == datetime(2024, 7, 4, 4, 0, tzinfo=UTC)

    def test_unknown_view_mode_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown view mode"):
            resolve_view_window("year", date(2024, 1, 1))  # type: ignore[arg-type]


class TestNavigation:
    @pytest.mark.parametrize(
        ("view_mode", "direction", "expected"),
        [
            ("month", 1, date(2024, 2, 29)),
            ("month", -1, date(2023, 12, 31)),
            ("week", 1, date(2024, 2, 7)),
            ("day", -1, date(2024, 1, 30)),
            ("agenda", 1, date(2024, 3, 1)),
        ],
    )
    def test_shift_anchor(self, view_mode, direction, expected):
        assert shift_anchor(view_mode, date(2024, 1, 31), direction) == expected

    def test_shift_anchor_rejects_other_directions(self):
        with pytest.raises(ValueError):
            shift_anchor("day", date(2024, 1, 1), 2)

    @pytest.mark.parametrize(
        ("view_mode", "anchor", "expected"),
        [
            ("month", date(2024, 1, 15), "January 2024"),
            ("week", date(2024, 1, 10), "Jan 7 - Jan 13, 2024"),
            ("week", date(2024, 12, 31), "Dec 29, 2024 - Jan 4, 2025"),
            ("day", date(2024, 1, 10), "Wednesday, January 10, 2024"),
            ("agenda", date(2024, 1, 10), "Agenda from Jan 10, 2024"),
        ],
    )
    def test_window_title(self, view_mode, anchor, expected):
        assert window_title(view_mode, anchor) == expected

    def test_start_of_week_on_a_sunday_is_the_same_day(self):
        assert start_of_week(date(2024, 1, 14)) == date(2024, 1, 14)


class TestDayGrouping:
    def test_events_for_day_includes_spanning_events_in_start_order(self, make_event):
        late = make_event(id="late", start_date=datetime(2024, 1, 10, 16, tzinfo=UTC))
        early = make_event(id="early", start_date=datetime(2024, 1, 10, 8, tzinfo=UTC))
        spanning = make_event(
            id="span",
            start_date=datetime(2024, 1, 9, 9, tzinfo=UTC),
            end_date=datetime(2024, 1, 11, 17, tzinfo=UTC),
        )
        other_day = make_event(id="other", start_date=datetime(2024, 1, 12, 9, tzinfo=UTC))

        matched = events_for_day([late, other_day, spanning, early], date(2024, 1, 10))

        assert [e.id for e in matched] == ["span", "early", "late"]

    def test_sort_is_stable_for_equal_starts(self, make_event):
        first = make_event(id="a")
        second = make_event(id="b")
        assert [e.id for e in sort_chronologically([first, second])] == ["a", "b"]
