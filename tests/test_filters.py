"""Tests for event filtering and text search."""

from __future__ import annotations

import pytest

from proposal_calendar.filters import filter_events, matches
from proposal_calendar.models import EventQuery

pytestmark = pytest.mark.unit


@pytest.fixture
def events(make_event):
    return [
        make_event(id="e-1", title="Red Team review", location="Room 4"),
        make_event(
            id="task-1",
            original_id="t-1",
            source_type="proposal_task",
            title="Alpha Bid: Draft volume I",
            priority="high",
            assigned_to="ana@example.com",
            proposal_id="p-1",
        ),
        make_event(
            id="m-1",
            original_id="m-1",
            source_type="client_meeting",
            title="Kickoff",
            description="Walk through the RFP red lines",
            proposal_id="p-2",
        ),
    ]


class TestFilterEvents:
    def test_no_query_returns_everything_in_order(self, events):
        assert filter_events(events) == events
        assert filter_events(events, EventQuery()) == events

    def test_all_is_the_same_as_no_constraint(self, events):
        query = EventQuery(source_type="all", assigned_to="all", priority="all")
        assert filter_events(events, query) == events

    def test_text_search_is_case_insensitive_over_title_description_location(self, events):
        assert [e.id for e in filter_events(events, EventQuery(text="RED"))] == ["e-1", "m-1"]
        assert [e.id for e in filter_events(events, EventQuery(text="room 4"))] == ["e-1"]

    def test_blank_text_is_ignored(self, events):
        assert filter_events(events, EventQuery(text="   ")) == events

    def test_criteria_are_conjunctive(self, events):
        query = EventQuery(text="red", proposal_id="p-2")
        assert [e.id for e in filter_events(events, query)] == ["m-1"]

        query = EventQuery(source_type="proposal_task", priority="low")
        assert filter_events(events, query) == []

    def test_assignee_filter(self, events):
        query = EventQuery(assigned_to="ana@example.com")
        assert [e.id for e in filter_events(events, query)] == ["task-1"]

    def test_filtering_is_idempotent(self, events):
        query = EventQuery(text="a", source_type="proposal_task")
        once = filter_events(events, query)
        assert filter_events(once, query) == once

    def test_input_is_not_mutated(self, events):
        snapshot = list(events)
        filter_events(events, EventQuery(text="kickoff"))
        assert events == snapshot


def test_matches_single_event(make_event):
    event = make_event(title="Submission rehearsal")
    assert matches(event, EventQuery(text="rehearsal"))
    assert not matches(event, EventQuery(source_type="client_meeting"))
