"""Calendar read, write and reschedule endpoints."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query

from proposal_calendar.api.deps import get_service
from proposal_calendar.api.models import ApiMeta, ApiResponse
from proposal_calendar.api.models.calendar import (
    CalendarEventsResponse,
    CreateCalendarEventRequest,
    DeleteEventResponse,
    OrganizationLookupRequest,
    RescheduleRequest,
    ScheduleChangesRequest,
    SourceCapability,
)
from proposal_calendar.models import (
    CAPABILITY_TABLE,
    CalendarEventPatch,
    EventQuery,
    NativeCalendarEvent,
    ViewMode,
)
from proposal_calendar.reschedule import BatchRescheduleResult, RescheduleResult
from proposal_calendar.service import CalendarService
from proposal_calendar.windows import window_title

router = APIRouter(prefix="/api/calendar", tags=["calendar"])
logger = logging.getLogger(__name__)


@router.get("/events", response_model=ApiResponse[CalendarEventsResponse])
async def get_events(
    organization_id: str = Query(..., min_length=1),
    view: ViewMode = Query("month", description="month, week, day or agenda"),
    anchor: date | None = Query(None, description="Any day inside the period to show"),
    text: str | None = Query(None, description="Case-insensitive search text"),
    source_type: str | None = Query(None),
    assigned_to: str | None = Query(None),
    priority: str | None = Query(None),
    proposal_id: str | None = Query(None),
    service: CalendarService = Depends(get_service),
) -> ApiResponse[CalendarEventsResponse]:
    """Return the unified, filtered events for one view window.

    Sources that could not be read are listed in ``meta.source_failures``;
    the remaining sources are still returned.
    """
    if anchor is None:
        anchor = datetime.now(service.config.zoneinfo).date()
    query = EventQuery(
        text=text,
        source_type=source_type,
        assigned_to=assigned_to,
        priority=priority,
        proposal_id=proposal_id,
    )
    result = await service.get_events_for_window(organization_id, view, anchor, query)
    data = CalendarEventsResponse(
        view_mode=result.view_mode,
        window=result.window,
        title=window_title(view, anchor),
        events=result.events,
    )
    meta = ApiMeta(
        total=len(result.events),
        source_failures=[failure.model_dump() for failure in result.failures],
    )
    return ApiResponse[CalendarEventsResponse](data=data, meta=meta)


@router.post("/events", response_model=ApiResponse[NativeCalendarEvent], status_code=201)
async def create_event(
    request: CreateCalendarEventRequest,
    service: CalendarService = Depends(get_service),
) -> ApiResponse[NativeCalendarEvent]:
    """Create a native calendar event."""
    payload = request.model_dump(exclude={"organization_id", "created_by"}, exclude_unset=True)
    event = await service.create_event(request.organization_id, payload, request.created_by)
    return ApiResponse[NativeCalendarEvent](data=event)


@router.patch("/events/{event_id}", response_model=ApiResponse[NativeCalendarEvent])
async def update_event(
    event_id: str,
    request: CalendarEventPatch,
    service: CalendarService = Depends(get_service),
) -> ApiResponse[NativeCalendarEvent]:
    """Update a native event; an instance id updates the whole series."""
    event = await service.update_event(event_id, request)
    return ApiResponse[NativeCalendarEvent](data=event)


@router.delete("/events/{event_id}", response_model=ApiResponse[DeleteEventResponse])
async def delete_event(
    event_id: str,
    delete_all_occurrences: bool = Query(True),
    service: CalendarService = Depends(get_service),
) -> ApiResponse[DeleteEventResponse]:
    """Delete a native event. Recurring events are deleted as a whole series."""
    deleted_id = await service.delete_event(
        event_id, delete_all_occurrences=delete_all_occurrences
    )
    return ApiResponse[DeleteEventResponse](data=DeleteEventResponse(deleted_id=deleted_id))


@router.post("/reschedule", response_model=ApiResponse[RescheduleResult])
async def reschedule(
    request: RescheduleRequest,
    service: CalendarService = Depends(get_service),
) -> ApiResponse[RescheduleResult]:
    """Move a dropped event to a new day, keeping its time and duration."""
    result = await service.reschedule_event(request.event, request.new_date)
    return ApiResponse[RescheduleResult](data=result)


@router.post("/schedule-changes", response_model=ApiResponse[BatchRescheduleResult])
async def apply_schedule_changes(
    request: ScheduleChangesRequest,
    service: CalendarService = Depends(get_service),
) -> ApiResponse[BatchRescheduleResult]:
    """Apply a batch of recommended moves to the draggable events among *events*."""
    result = await service.apply_schedule_changes(request.events, request.changes)
    return ApiResponse[BatchRescheduleResult](data=result)


@router.get("/capabilities", response_model=ApiResponse[list[SourceCapability]])
async def get_capabilities() -> ApiResponse[list[SourceCapability]]:
    """Return the drag/edit capability of every source type."""
    data = [
        SourceCapability(source_type=source_type, can_drag=can_drag, can_edit=can_edit)
        for source_type, (can_drag, can_edit) in CAPABILITY_TABLE.items()
    ]
    return ApiResponse[list[SourceCapability]](data=data)


@router.post("/active-organization", response_model=ApiResponse[dict[str, Any] | None])
async def resolve_active_organization(
    request: OrganizationLookupRequest,
    service: CalendarService = Depends(get_service),
) -> ApiResponse[dict[str, Any] | None]:
    """Pick the organization whose calendar the user should see."""
    organization = await service.resolve_active_organization(request.model_dump())
    if organization is None:
        logger.info("No active organization for %s", request.email)
    return ApiResponse[dict[str, Any] | None](data=organization)
