"""Request and response models for the calendar endpoints."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from proposal_calendar.models import (
    CalendarEventPayload,
    SourceType,
    UnifiedEvent,
    ViewMode,
    ViewWindow,
)
from proposal_calendar.reschedule import ScheduleChange


class CalendarEventsResponse(BaseModel):
    """Events for one resolved view window."""

    view_mode: ViewMode
    window: ViewWindow
    title: str
    events: list[UnifiedEvent] = Field(default_factory=list)


class CreateCalendarEventRequest(CalendarEventPayload):
    organization_id: str = Field(min_length=1)
    created_by: str | None = None


class RescheduleRequest(BaseModel):
    """A drop of *event* onto *new_date*."""

    event: UnifiedEvent
    new_date: date


class ScheduleChangesRequest(BaseModel):
    events: list[UnifiedEvent]
    changes: list[ScheduleChange]


class DeleteEventResponse(BaseModel):
    deleted_id: str


class SourceCapability(BaseModel):
    source_type: SourceType
    can_drag: bool
    can_edit: bool


class OrganizationLookupRequest(BaseModel):
    """The signed-in user's profile fields used to pick an organization."""

    email: str | None = None
    active_client_id: str | None = None
    client_accesses: list[dict] = Field(default_factory=list)
