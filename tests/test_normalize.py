"""Tests for source-record normalization and the capability table."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from proposal_calendar.models import (
    SOURCE_TYPES,
    UnifiedEvent,
    capabilities_for,
    parse_source_record,
)
from proposal_calendar.normalize import CAPABILITY_TABLE, _NORMALIZERS, event_id_for, normalize

pytestmark = pytest.mark.unit

NAMES = {"p-1": "Alpha Bid"}


class TestCapabilityTable:
    @pytest.mark.parametrize(
        ("source_type", "can_drag", "can_edit"),
        [
            ("calendar_event", True, True),
            ("proposal_task", True, False),
            ("proposal_deadline", False, False),
            ("review_deadline", False, False),
            ("compliance_due", False, False),
            ("client_meeting", True, False),
        ],
    )
    def test_capabilities_per_source_type(self, source_type, can_drag, can_edit):
        assert capabilities_for(source_type) == (can_drag, can_edit)

    def test_recurring_instances_are_never_draggable_but_stay_editable(self):
        assert capabilities_for("calendar_event", is_recurring_instance=True) == (False, True)

    def test_every_source_type_has_a_capability_and_a_normalizer(self):
        assert set(CAPABILITY_TABLE) == set(SOURCE_TYPES)
        assert set(_NORMALIZERS) == set(SOURCE_TYPES)

    def test_capabilities_cannot_be_overridden_by_callers(self, make_event):
        event = make_event(
            source_type="proposal_deadline",
            can_drag=True,
            can_edit=True,
        )
        assert event.can_drag is False
        assert event.can_edit is False
        dumped = event.model_dump()
        assert dumped["can_drag"] is False


class TestNormalizeVariants:
    def test_proposal_deadline(self):
        record = parse_source_record(
            {"id": "p-1", "proposal_name": "Alpha Bid", "due_date": "2024-01-20T17:00:00Z"},
            "proposal_deadline",
        )
        event = normalize(record)

        assert event.id == "proposal_deadline-p-1"
        assert event.original_id == "p-1"
        assert event.title == "Proposal Due: Alpha Bid"
        assert event.priority == "high"
        assert event.proposal_id == "p-1"
        assert event.start_date == event.end_date == datetime(2024, 1, 20, 17, tzinfo=UTC)
        assert event.can_drag is False

    def test_review_deadline_is_prefixed_with_the_proposal_name(self):
        record = parse_source_record(
            {"id": "r-1", "proposal_id": "p-1", "round_name": "Red Team", "due_date": "2024-01-15"},
            "review_deadline",
        )
        event = normalize(record, proposal_names=NAMES)

        assert event.title == "Alpha Bid: Review - Red Team"
        assert event.start_date == datetime(2024, 1, 15, tzinfo=UTC)

    def test_compliance_deadline_uses_risk_level_as_priority(self):
        record = parse_source_record(
            {
                "id": "c-1",
                "proposal_id": "p-1",
                "requirement_title": "FAR 52.204-21",
                "due_date": "2024-01-18T12:00:00Z",
                "risk_level": "medium",
            },
            "compliance_due",
        )
        event = normalize(record, proposal_names=NAMES)

        assert event.title == "Alpha Bid: Compliance - FAR 52.204-21"
        assert event.priority == "medium"

    def test_task_keeps_title_priority_and_assignee(self):
        record = parse_source_record(
            {
                "id": "t-1",
                "proposal_id": "p-1",
                "title": "Draft volume I",
                "due_date": "2024-01-12T17:00:00Z",
                "priority": "high",
                "assigned_to_email": "ana@example.com",
            },
            "proposal_task",
        )
        event = normalize(record, proposal_names=NAMES)

        assert event.title == "Alpha Bid: Draft volume I"
        assert event.assigned_to == "ana@example.com"
        assert event.priority == "high"
        assert event.duration == timedelta(0)
        assert (event.can_drag, event.can_edit) == (True, False)

    def test_task_without_known_proposal_keeps_its_bare_title(self):
        record = parse_source_record(
            {"id": "t-1", "proposal_id": "p-404", "title": "Draft", "due_date": "2024-01-12"},
            "proposal_task",
        )
        assert normalize(record, proposal_names=NAMES).title == "Draft"

    def test_client_meeting_lasts_its_duration(self):
        record = parse_source_record(
            {
                "id": "m-1",
                "meeting_title": "Kickoff",
                "agenda": "Introductions",
                "scheduled_date": "2024-01-10T15:00:00Z",
                "duration_minutes": 30,
            },
            "client_meeting",
        )
        event = normalize(record)

        assert event.id == "client_meeting-m-1"
        assert event.description == "Introductions"
        assert event.end_date - event.start_date == timedelta(minutes=30)

    def test_client_meeting_defaults_to_an_hour(self):
        record = parse_source_record(
            {"id": "m-2", "scheduled_date": "2024-01-10T15:00:00Z", "duration_minutes": None},
            "client_meeting",
        )
        assert normalize(record).duration == timedelta(hours=1)

    def test_native_event_keeps_its_id_and_clamps_inverted_ranges(self):
        record = parse_source_record(
            {
                "id": "e-1",
                "title": "Offsite",
                "start_date": "2024-01-10T15:00:00Z",
                "end_date": "2024-01-10T14:00:00Z",
                "all_day": None,
            },
            "calendar_event",
        )
        event = normalize(record)

        assert event.id == "e-1"
        assert event.end_date == event.start_date
        assert event.all_day is False
        assert (event.can_drag, event.can_edit) == (True, True)

    def test_numeric_ids_are_stringified(self):
        record = parse_source_record({"id": 17, "due_date": "2024-01-01"}, "review_deadline")
        assert normalize(record).original_id == "17"


class TestExclusions:
    @pytest.mark.parametrize(
        ("source_type", "raw"),
        [
            ("proposal_task", {"id": "t-2", "title": "No date"}),
            ("proposal_deadline", {"id": "p-2", "due_date": None}),
            ("review_deadline", {"id": "r-2", "due_date": "not a date"}),
            ("client_meeting", {"id": "m-3", "scheduled_date": ""}),
            ("calendar_event", {"id": "e-9", "title": "Undated"}),
        ],
    )
    def test_records_without_a_usable_date_are_excluded(self, source_type, raw):
        assert normalize(parse_source_record(raw, source_type)) is None

    def test_records_without_an_id_fail_validation(self):
        with pytest.raises(ValidationError):
            parse_source_record({"due_date": "2024-01-01"}, "proposal_task")

    def test_unified_event_rejects_end_before_start(self):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        with pytest.raises(ValidationError):
            UnifiedEvent(
                id="x",
                original_id="x",
                source_type="calendar_event",
                title="Broken",
                start_date=start,
                end_date=start - timedelta(minutes=1),
            )


def test_event_id_for_prefixes_non_native_sources():
    assert event_id_for("calendar_event", "e-1") == "e-1"
    assert event_id_for("compliance_due", "c-1") == "compliance_due-c-1"
