"""Map each source-record variant onto the UnifiedEvent shape."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import timedelta

from proposal_calendar.models import (
    CAPABILITY_TABLE,
    ClientMeeting,
    ComplianceDeadline,
    NativeCalendarEvent,
    ProposalDeadline,
    ProposalTask,
    ReviewDeadline,
    SourceRecord,
    SourceType,
    UnifiedEvent,
    capabilities_for,
)

logger = logging.getLogger(__name__)

__all__ = [
    "CAPABILITY_TABLE",
    "capabilities_for",
    "event_id_for",
    "normalize",
]


def event_id_for(source_type: SourceType, record_id: str) -> str:
    """Return the UnifiedEvent id for a non-instance record.

    Native events keep their own id; other sources are prefixed with their
    source type since ids are only unique within one collection.
    """
    if source_type == "calendar_event":
        return record_id
    return f"{source_type}-{record_id}"


def _with_proposal(names: Mapping[str, str], proposal_id: str | None, text: str) -> str:
    name = names.get(proposal_id) if proposal_id else None
    return f"{name}: {text}" if name else text


def _calendar_event(
    record: NativeCalendarEvent, names: Mapping[str, str]
) -> UnifiedEvent | None:
    start = record.start_date
    if start is None:
        return None
    end = record.end_date or start
    if end < start:
        logger.debug("CalendarEvent %s ends before it starts; clamping end", record.id)
        end = start
    return UnifiedEvent(
        id=record.id,
        original_id=record.id,
        source_type="calendar_event",
        title=record.title or "Untitled event",
        description=record.description,
        start_date=start,
        end_date=end,
        location=record.location,
        meeting_link=record.meeting_link,
        all_day=record.all_day,
        recurrence_rule=record.recurrence_rule,
    )


def _proposal_task(record: ProposalTask, names: Mapping[str, str]) -> UnifiedEvent | None:
    if record.due_date is None:
        return None
    return UnifiedEvent(
        id=event_id_for("proposal_task", record.id),
        original_id=record.id,
        source_type="proposal_task",
        title=_with_proposal(names, record.proposal_id, record.title or "Untitled task"),
        description=record.description,
        start_date=record.due_date,
        end_date=record.due_date,
        priority=record.priority,
        assigned_to=record.assigned_to_email,
        proposal_id=record.proposal_id,
    )


def _proposal_deadline(
    record: ProposalDeadline, names: Mapping[str, str]
) -> UnifiedEvent | None:
    if record.due_date is None:
        return None
    proposal_name = record.proposal_name or names.get(record.id) or "Untitled proposal"
    return UnifiedEvent(
        id=event_id_for("proposal_deadline", record.id),
        original_id=record.id,
        source_type="proposal_deadline",
        title=f"Proposal Due: {proposal_name}",
        description=f"Submission deadline for {proposal_name}",
        start_date=record.due_date,
        end_date=record.due_date,
        priority="high",
        proposal_id=record.id,
    )


def _review_deadline(record: ReviewDeadline, names: Mapping[str, str]) -> UnifiedEvent | None:
    if record.due_date is None:
        return None
    round_name = record.round_name or "Review"
    return UnifiedEvent(
        id=event_id_for("review_deadline", record.id),
        original_id=record.id,
        source_type="review_deadline",
        title=_with_proposal(names, record.proposal_id, f"Review - {round_name}"),
        description=record.description,
        start_date=record.due_date,
        end_date=record.due_date,
        proposal_id=record.proposal_id,
    )


def _compliance_due(
    record: ComplianceDeadline, names: Mapping[str, str]
) -> UnifiedEvent | None:
    if record.due_date is None:
        return None
    requirement = record.requirement_title or "Compliance requirement"
    return UnifiedEvent(
        id=event_id_for("compliance_due", record.id),
        original_id=record.id,
        source_type="compliance_due",
        title=_with_proposal(names, record.proposal_id, f"Compliance - {requirement}"),
        description=record.requirement_description,
        start_date=record.due_date,
        end_date=record.due_date,
        priority=record.risk_level,
        proposal_id=record.proposal_id,
    )


def _client_meeting(record: ClientMeeting, names: Mapping[str, str]) -> UnifiedEvent | None:
    start = record.scheduled_date
    if start is None:
        return None
    return UnifiedEvent(
        id=event_id_for("client_meeting", record.id),
        original_id=record.id,
        source_type="client_meeting",
        title=record.meeting_title or "Client meeting",
        description=record.agenda,
        start_date=start,
        end_date=start + timedelta(minutes=record.duration_minutes),
        location=record.location,
        meeting_link=record.meeting_link,
        proposal_id=record.proposal_id,
    )


_NORMALIZERS: dict[SourceType, Callable[..., UnifiedEvent | None]] = {
    "calendar_event": _calendar_event,
    "proposal_task": _proposal_task,
    "proposal_deadline": _proposal_deadline,
    "review_deadline": _review_deadline,
    "compliance_due": _compliance_due,
    "client_meeting": _client_meeting,
}


def normalize(
    record: SourceRecord,
    *,
    proposal_names: Mapping[str, str] | None = None,
) -> UnifiedEvent | None:
    """Convert one typed source record into a UnifiedEvent.

    Returns None when the record has no usable date and therefore cannot be
    placed on a calendar.
    """
    return _NORMALIZERS[record.source_type](record, proposal_names or {})
