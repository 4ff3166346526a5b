"""Exception hierarchy for the calendar core.

Only illegal reschedules are hard, user-visible refusals. Every other failure
mode degrades the completeness of the calendar rather than aborting a query.
"""

from __future__ import annotations


class CalendarError(Exception):
    """Base class for calendar core errors."""


class MalformedRecurrenceRuleError(CalendarError, ValueError):
    """Raised when a stored recurrence rule cannot be parsed into a RecurrenceRule."""

    def __init__(self, raw: object, reason: str) -> None:
        self.raw = raw
        self.reason = reason
        super().__init__(f"Malformed recurrence rule {raw!r}: {reason}")


class IllegalRescheduleError(CalendarError):
    """Raised when a drag targets an event that cannot be rescheduled."""

    def __init__(self, event_id: str, source_type: str, message: str) -> None:
        self.event_id = event_id
        self.source_type = source_type
        super().__init__(message)


class EntityStoreError(CalendarError):
    """Raised when the backing entity store fails a read or write."""

    def __init__(self, collection: str, message: str) -> None:
        self.collection = collection
        super().__init__(f"{collection}: {message}")


class RecordNotFoundError(EntityStoreError):
    """Raised when a record id does not exist in its collection."""

    def __init__(self, collection: str, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(collection, f"record not found: {record_id}")


class RescheduleWriteError(CalendarError):
    """Raised when the store rejects the date update for a reschedule.

    Recoverable: nothing was committed locally, so the caller may retry or
    re-fetch the aggregate.
    """

    def __init__(self, event_id: str, collection: str, cause: Exception | None = None) -> None:
        self.event_id = event_id
        self.collection = collection
        self.cause = cause
        msg = f"Failed to reschedule {event_id} in {collection}"
        if cause:
            msg += f": {cause}"
        super().__init__(msg)
