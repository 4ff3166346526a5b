"""Shared fixtures for the proposal calendar test suite.

Provides:
- ``make_event``: factory for UnifiedEvent rows with sensible defaults
- ``seed_records``: one organization's worth of source records across every
  collection, plus a record belonging to another organization
- ``store``: an InMemoryEntityStore seeded with ``seed_records``
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from proposal_calendar.models import UnifiedEvent
from proposal_calendar.store import InMemoryEntityStore

ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"


@pytest.fixture
def make_event() -> Callable[..., UnifiedEvent]:
    """Build UnifiedEvent rows; keyword arguments override the defaults."""

    def _make(**overrides: Any) -> UnifiedEvent:
        start = overrides.pop("start_date", datetime(2024, 1, 15, 9, 0, tzinfo=UTC))
        fields: dict[str, Any] = {
            "id": "evt-1",
            "original_id": "evt-1",
            "source_type": "calendar_event",
            "title": "Team sync",
            "start_date": start,
            "end_date": start + timedelta(hours=1),
        }
        fields.update(overrides)
        return UnifiedEvent(**fields)

    return _make


@pytest.fixture
def seed_records() -> dict[str, list[dict[str, Any]]]:
    return {
        "Organization": [
            {
                "id": ORG_ID,
                "organization_name": "Acme Federal",
                "created_by": "owner@example.com",
                "created_date": "2023-06-01T00:00:00+00:00",
            },
            {
                "id": "org-3",
                "organization_name": "Acme Labs",
                "created_by": "owner@example.com",
                "created_date": "2023-09-01T00:00:00+00:00",
            },
        ],
        "Proposal": [
            {
                "id": "p-1",
                "organization_id": ORG_ID,
                "proposal_name": "Alpha Bid",
                "due_date": "2024-01-20T17:00:00Z",
                "status": "in_progress",
            },
            {
                "id": "p-2",
                "organization_id": ORG_ID,
                "proposal_name": "Beta Bid",
                "due_date": None,
            },
            {
                "id": "p-9",
                "organization_id": OTHER_ORG_ID,
                "proposal_name": "Other Org Bid",
                "due_date": "2024-01-22T17:00:00Z",
            },
        ],
        "ProposalTask": [
            {
                "id": "t-1",
                "proposal_id": "p-1",
                "title": "Draft volume I",
                "due_date": "2024-01-12T17:00:00Z",
                "priority": "high",
                "assigned_to_email": "ana@example.com",
            },
            {"id": "t-2", "proposal_id": "p-2", "title": "No due date yet"},
            {
                "id": "t-9",
                "proposal_id": "p-9",
                "title": "Other org task",
                "due_date": "2024-01-12T17:00:00Z",
            },
        ],
        "ReviewRound": [
            {
                "id": "r-1",
                "proposal_id": "p-1",
                "round_name": "Red Team",
                "due_date": "2024-01-15",
            },
        ],
        "ComplianceRequirement": [
            {
                "id": "c-1",
                "proposal_id": "p-1",
                "requirement_title": "FAR 52.204-21",
                "requirement_description": "Basic safeguarding",
                "due_date": "2024-01-18T12:00:00Z",
                "risk_level": "medium",
            },
        ],
        "ClientMeeting": [
            {
                "id": "m-1",
                "organization_id": ORG_ID,
                "proposal_id": "p-1",
                "meeting_title": "Kickoff with client",
                "scheduled_date": "2024-01-10T15:00:00Z",
                "duration_minutes": 30,
                "location": "Conference room B",
            },
        ],
        "CalendarEvent": [
            {
                "id": "e-1",
                "organization_id": ORG_ID,
                "title": "Weekly standup",
                "start_date": "2024-01-01T09:00:00Z",
                "end_date": "2024-01-01T10:00:00Z",
                "recurrence_rule": json.dumps(
                    {
                        "frequency": "weekly",
                        "interval": 1,
                        "end_type": "count",
                        "occurrence_count": 4,
                    }
                ),
            },
            {
                "id": "e-2",
                "organization_id": ORG_ID,
                "title": "Bidder conference",
                "description": "Industry day at the agency",
                "start_date": "2024-01-25T13:00:00Z",
                "end_date": "2024-01-25T15:00:00Z",
                "location": "Washington, DC",
            },
            {
                "id": "e-3",
                "organization_id": ORG_ID,
                "title": "Way out of range",
                "start_date": "2024-06-01T09:00:00Z",
                "end_date": "2024-06-01T10:00:00Z",
            },
        ],
    }


@pytest.fixture
def store(seed_records: dict[str, list[dict[str, Any]]]) -> InMemoryEntityStore:
    return InMemoryEntityStore(seed_records)
