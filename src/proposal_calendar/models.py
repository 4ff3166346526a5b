"""Pydantic models for calendar source records and unified events.

Source records are a tagged union discriminated on ``source_type``. Raw store
records are validated into the union once, at the aggregation boundary, and
everything downstream works with typed models only.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, date, datetime, time, timedelta
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BeforeValidator,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    computed_field,
    field_validator,
    model_validator,
)

from proposal_calendar.errors import MalformedRecurrenceRuleError

logger = logging.getLogger(__name__)

SourceType = Literal[
    "calendar_event",
    "proposal_task",
    "proposal_deadline",
    "review_deadline",
    "compliance_due",
    "client_meeting",
]
SOURCE_TYPES: tuple[SourceType, ...] = (
    "calendar_event",
    "proposal_task",
    "proposal_deadline",
    "review_deadline",
    "compliance_due",
    "client_meeting",
)

# Entity store collection that owns each source type.
SOURCE_COLLECTIONS: dict[SourceType, str] = {
    "calendar_event": "CalendarEvent",
    "proposal_task": "ProposalTask",
    "proposal_deadline": "Proposal",
    "review_deadline": "ReviewRound",
    "compliance_due": "ComplianceRequirement",
    "client_meeting": "ClientMeeting",
}

Frequency = Literal["daily", "weekly", "monthly", "yearly"]
EndType = Literal["never", "date", "count"]
ViewMode = Literal["month", "week", "day", "agenda"]


# ---------------------------------------------------------------------------
# Date coercion
# ---------------------------------------------------------------------------


def coerce_datetime(value: object) -> datetime | None:
    """Coerce store values into aware datetimes; naive values are taken as UTC.

    Accepts datetimes, dates (midnight), and ISO-8601 strings including a
    trailing ``Z`` and date-only forms. Returns None for anything unusable.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)
    if isinstance(value, str):
        normalized = value.strip()
        if not normalized:
            return None
        if normalized.endswith("Z"):
            normalized = f"{normalized[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return None


def _coerce_date(value: object) -> object:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        normalized = value.strip()
        if not normalized:
            return None
        try:
            return date.fromisoformat(normalized[:10])
        except ValueError:
            return value
    return value


# ---------------------------------------------------------------------------
# Recurrence rule
# ---------------------------------------------------------------------------


class RecurrenceRule(BaseModel):
    """Structured recurrence rule embedded in a native calendar event."""

    model_config = ConfigDict(extra="ignore")

    frequency: Frequency
    interval: int = Field(default=1, ge=1)
    end_type: EndType = "never"
    end_date: date | None = None
    occurrence_count: int | None = Field(default=None, ge=1)

    @field_validator("interval", mode="before")
    @classmethod
    def _default_interval(cls, value: object) -> object:
        if value is None or value == "":
            return 1
        return value

    @field_validator("end_date", mode="before")
    @classmethod
    def _normalize_end_date(cls, value: object) -> object:
        return _coerce_date(value)

    @field_validator("occurrence_count", mode="before")
    @classmethod
    def _normalize_occurrence_count(cls, value: object) -> object:
        if value == "":
            return None
        return value

    @model_validator(mode="after")
    def _validate_end_condition(self) -> RecurrenceRule:
        if self.end_type == "date":
            if self.end_date is None:
                raise ValueError("end_date is required when end_type is 'date'")
            self.occurrence_count = None
        elif self.end_type == "count":
            if self.occurrence_count is None:
                raise ValueError("occurrence_count is required when end_type is 'count'")
            self.end_date = None
        else:
            self.end_date = None
            self.occurrence_count = None
        return self


def parse_recurrence_rule(raw: object) -> RecurrenceRule | None:
    """Parse a stored recurrence rule (mapping or JSON string) into a RecurrenceRule.

    ``None``, empty strings and JSON ``null`` mean "not recurring".

    Raises
    ------
    MalformedRecurrenceRuleError
        If the value cannot be decoded or fails validation.
    """
    if raw is None or isinstance(raw, RecurrenceRule):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedRecurrenceRuleError(raw, f"invalid JSON: {exc.msg}") from exc
        if decoded is None:
            return None
        raw_mapping: object = decoded
    else:
        raw_mapping = raw
    if not isinstance(raw_mapping, Mapping):
        raise MalformedRecurrenceRuleError(raw, "expected an object")
    try:
        return RecurrenceRule.model_validate(dict(raw_mapping))
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ())) or "rule"
        raise MalformedRecurrenceRuleError(raw, f"{loc}: {first.get('msg')}") from exc


# ---------------------------------------------------------------------------
# Source records
# ---------------------------------------------------------------------------


class _SourceRecordBase(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        if value is None:
            return value
        return str(value)


# Unparseable dates become None so normalization can exclude the record.
LenientDatetime = Annotated[datetime | None, BeforeValidator(coerce_datetime)]


class NativeCalendarEvent(_SourceRecordBase):
    """A CalendarEvent owned by the calendar itself (the only editable source)."""

    source_type: Literal["calendar_event"] = "calendar_event"
    organization_id: str | None = None
    title: str | None = None
    description: str | None = None
    event_type: str | None = None
    start_date: LenientDatetime = None
    end_date: LenientDatetime = None
    location: str | None = None
    meeting_link: str | None = None
    all_day: bool = False
    recurrence_rule: RecurrenceRule | None = None
    created_by: str | None = Field(
        default=None, validation_alias=AliasChoices("created_by", "created_by_email")
    )

    @field_validator("all_day", mode="before")
    @classmethod
    def _coerce_all_day(cls, value: object) -> object:
        return bool(value) if value is not None else False

    @field_validator("recurrence_rule", mode="before")
    @classmethod
    def _parse_rule(cls, value: object) -> RecurrenceRule | None:
        try:
            return parse_recurrence_rule(value)
        except MalformedRecurrenceRuleError as exc:
            logger.warning("Ignoring malformed recurrence rule: %s", exc.reason)
            return None


class ProposalTask(_SourceRecordBase):
    source_type: Literal["proposal_task"] = "proposal_task"
    proposal_id: str | None = None
    title: str | None = None
    description: str | None = None
    due_date: LenientDatetime = None
    priority: str | None = None
    assigned_to_email: str | None = None
    status: str | None = None


class ProposalDeadline(_SourceRecordBase):
    """Submission deadline derived from a Proposal entity."""

    source_type: Literal["proposal_deadline"] = "proposal_deadline"
    organization_id: str | None = None
    proposal_name: str | None = None
    due_date: LenientDatetime = None
    status: str | None = None


class ReviewDeadline(_SourceRecordBase):
    """Due date of a ReviewRound."""

    source_type: Literal["review_deadline"] = "review_deadline"
    proposal_id: str | None = None
    round_name: str | None = None
    description: str | None = None
    due_date: LenientDatetime = None


class ComplianceDeadline(_SourceRecordBase):
    """Due date of a ComplianceRequirement."""

    source_type: Literal["compliance_due"] = "compliance_due"
    proposal_id: str | None = None
    requirement_title: str | None = None
    requirement_description: str | None = None
    due_date: LenientDatetime = None
    risk_level: str | None = None


class ClientMeeting(_SourceRecordBase):
    source_type: Literal["client_meeting"] = "client_meeting"
    organization_id: str | None = None
    proposal_id: str | None = None
    meeting_title: str | None = None
    agenda: str | None = None
    scheduled_date: LenientDatetime = None
    duration_minutes: int = Field(default=60, ge=0)
    location: str | None = None
    meeting_link: str | None = None

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _default_duration(cls, value: object) -> object:
        if value is None or value == "":
            return 60
        return value


SourceRecord = Annotated[
    NativeCalendarEvent
    | ProposalTask
    | ProposalDeadline
    | ReviewDeadline
    | ComplianceDeadline
    | ClientMeeting,
    Field(discriminator="source_type"),
]

_SOURCE_RECORD_ADAPTER: TypeAdapter[SourceRecord] = TypeAdapter(SourceRecord)


def parse_source_record(raw: Mapping[str, Any], source_type: SourceType) -> SourceRecord:
    """Validate a raw store record into its tagged source-record variant.

    Raises
    ------
    pydantic.ValidationError
        If required structural fields (the id) are missing or invalid.
    """
    payload = dict(raw)
    payload["source_type"] = source_type
    return _SOURCE_RECORD_ADAPTER.validate_python(payload)


# ---------------------------------------------------------------------------
# Capability table
# ---------------------------------------------------------------------------

# (can_drag, can_edit) per source type for non-instance events.
CAPABILITY_TABLE: dict[SourceType, tuple[bool, bool]] = {
    "calendar_event": (True, True),
    "proposal_task": (True, False),
    "proposal_deadline": (False, False),
    "review_deadline": (False, False),
    "compliance_due": (False, False),
    "client_meeting": (True, False),
}


def capabilities_for(
    source_type: SourceType, is_recurring_instance: bool = False
) -> tuple[bool, bool]:
    """Return ``(can_drag, can_edit)`` for a source type.

    Recurring instances are never draggable; editing one edits its series.
    """
    can_drag, can_edit = CAPABILITY_TABLE[source_type]
    if is_recurring_instance:
        return False, can_edit
    return can_drag, can_edit


# ---------------------------------------------------------------------------
# Unified event
# ---------------------------------------------------------------------------


class UnifiedEvent(BaseModel):
    """Normalized, ephemeral calendar row derived from one source record.

    ``can_drag`` and ``can_edit`` are computed from the capability table and
    cannot be supplied by callers.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    original_id: str
    source_type: SourceType
    title: str
    description: str | None = None
    start_date: datetime
    end_date: datetime
    location: str | None = None
    meeting_link: str | None = None
    priority: str | None = None
    assigned_to: str | None = None
    proposal_id: str | None = None
    all_day: bool = False
    is_recurring_instance: bool = False
    recurrence_rule: RecurrenceRule | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _coerce_dates(cls, value: object) -> object:
        return coerce_datetime(value) or value

    @model_validator(mode="after")
    def _validate_range(self) -> UnifiedEvent:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def can_drag(self) -> bool:
        return capabilities_for(self.source_type, self.is_recurring_instance)[0]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def can_edit(self) -> bool:
        return capabilities_for(self.source_type, self.is_recurring_instance)[1]

    @property
    def duration(self) -> timedelta:
        return self.end_date - self.start_date


# ---------------------------------------------------------------------------
# Windows, queries, results
# ---------------------------------------------------------------------------


class ViewWindow(BaseModel):
    """Inclusive ``[start, end]`` range a view mode needs events for."""

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _validate_bounds(self) -> ViewWindow:
        if self.end < self.start:
            raise ValueError("window end must not be before window start")
        return self

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start <= self.end and end >= self.start


class EventQuery(BaseModel):
    """Conjunctive filter criteria; ``None`` and ``"all"`` mean no constraint."""

    text: str | None = None
    source_type: str | None = None
    assigned_to: str | None = None
    priority: str | None = None
    proposal_id: str | None = None


class SourceFetchFailure(BaseModel):
    """A source collection that could not be read for one aggregation cycle."""

    source_type: SourceType
    message: str


class AggregateResult(BaseModel):
    events: list[UnifiedEvent] = Field(default_factory=list)
    failures: list[SourceFetchFailure] = Field(default_factory=list)


class EventWindowResult(BaseModel):
    """Events for one view window, sorted chronologically."""

    view_mode: ViewMode
    window: ViewWindow
    events: list[UnifiedEvent] = Field(default_factory=list)
    failures: list[SourceFetchFailure] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Native event write payloads
# ---------------------------------------------------------------------------


class CalendarEventPayload(BaseModel):
    """Fields accepted when creating a native calendar event."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    description: str | None = None
    event_type: str | None = None
    start_date: datetime
    end_date: datetime | None = None
    location: str | None = None
    meeting_link: str | None = None
    all_day: bool = False
    recurrence_rule: RecurrenceRule | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _coerce_dates(cls, value: object) -> object:
        return coerce_datetime(value) or value

    @field_validator("recurrence_rule", mode="before")
    @classmethod
    def _parse_rule(cls, value: object) -> RecurrenceRule | None:
        return parse_recurrence_rule(value)

    @model_validator(mode="after")
    def _validate_range(self) -> CalendarEventPayload:
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CalendarEventPatch(BaseModel):
    """Partial update of a native calendar event; only set fields are written."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    event_type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    location: str | None = None
    meeting_link: str | None = None
    all_day: bool | None = None
    recurrence_rule: RecurrenceRule | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _coerce_dates(cls, value: object) -> object:
        return coerce_datetime(value) or value

    @field_validator("recurrence_rule", mode="before")
    @classmethod
    def _parse_rule(cls, value: object) -> RecurrenceRule | None:
        return parse_recurrence_rule(value)
