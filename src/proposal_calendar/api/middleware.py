"""API error handling: calendar exceptions become consistent error responses.

Registers FastAPI exception handlers that convert domain exceptions into
standardised ``{"error": {"code": "...", "message": "..."}}`` JSON responses.

Status code mapping:
- ``IllegalRescheduleError`` → 409 Conflict
- ``RecordNotFoundError`` → 404 Not Found
- ``RescheduleWriteError`` / ``EntityStoreError`` → 502 Bad Gateway
- ``ValueError`` → 400 Bad Request
- Any other ``Exception`` → 500 Internal Server Error
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from proposal_calendar.api.models import ErrorDetail, ErrorResponse
from proposal_calendar.errors import (
    EntityStoreError,
    IllegalRescheduleError,
    RecordNotFoundError,
    RescheduleWriteError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_illegal_reschedule(
    request: Request,
    exc: IllegalRescheduleError,
) -> JSONResponse:
    """Return 409 when a drag targets an event that cannot move."""
    logger.info("Illegal reschedule of %s (%s)", exc.event_id, exc.source_type)
    return _error(
        409,
        "ILLEGAL_RESCHEDULE",
        str(exc),
        {"event_id": exc.event_id, "source_type": exc.source_type},
    )


async def _handle_record_not_found(
    request: Request,
    exc: RecordNotFoundError,
) -> JSONResponse:
    """Return 404 when a record id is not in its collection."""
    logger.info("Record not found: %s/%s", exc.collection, exc.record_id)
    return _error(
        404,
        "RECORD_NOT_FOUND",
        str(exc),
        {"collection": exc.collection, "record_id": exc.record_id},
    )


async def _handle_reschedule_write(
    request: Request,
    exc: RescheduleWriteError,
) -> JSONResponse:
    """Return 502 when the store rejected a reschedule; the client may retry."""
    logger.warning("Reschedule write failed: %s", exc)
    return _error(
        502,
        "RESCHEDULE_WRITE_FAILED",
        str(exc),
        {"event_id": exc.event_id, "collection": exc.collection},
    )


async def _handle_store_error(
    request: Request,
    exc: EntityStoreError,
) -> JSONResponse:
    """Return 502 when the entity store fails."""
    logger.warning("Entity store error: %s", exc, exc_info=exc)
    return _error(502, "STORE_UNAVAILABLE", str(exc), {"collection": exc.collection})


async def _handle_value_error(
    request: Request,
    exc: ValueError,
) -> JSONResponse:
    """Return 400 for validation / value errors."""
    logger.info("Validation error: %s", exc)
    return _error(400, "VALIDATION_ERROR", str(exc))


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that catches any unhandled exception and returns a 500.

    Sits above the Starlette exception handler layer so that exceptions not
    caught by ``add_exception_handler`` still use the error envelope.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return _error(500, "INTERNAL_ERROR", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application.

    Call this from ``create_app()`` after constructing the ``FastAPI`` instance.
    Starlette resolves handlers by walking the exception's MRO, so the
    RecordNotFoundError handler wins over the EntityStoreError one.
    """
    app.add_exception_handler(IllegalRescheduleError, _handle_illegal_reschedule)  # type: ignore[arg-type]
    app.add_exception_handler(RecordNotFoundError, _handle_record_not_found)  # type: ignore[arg-type]
    app.add_exception_handler(RescheduleWriteError, _handle_reschedule_write)  # type: ignore[arg-type]
    app.add_exception_handler(EntityStoreError, _handle_store_error)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, _handle_value_error)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
