"""Structured logging for the calendar service.

Every module logs through ``logging.getLogger(__name__)``; structlog's
ProcessorFormatter renders those records.

Two output formats:
- ``text``: Colored, human-readable console output (dev default)
- ``json``: Machine-parseable JSON lines (production / log aggregation)

The active organization id and OTel trace context are injected automatically
via processors that read from a ContextVar and the current OTel span.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path

import structlog
from opentelemetry import trace

# ---------------------------------------------------------------------------
# Organization context (asyncio-safe via ContextVar)
# ---------------------------------------------------------------------------

_organization_context: ContextVar[str | None] = ContextVar("organization_id", default=None)


def set_organization_context(organization_id: str | None) -> None:
    """Set the organization id for the current async context."""
    _organization_context.set(organization_id)


def get_organization_context() -> str | None:
    """Get the organization id for the current async context."""
    return _organization_context.get()


# ---------------------------------------------------------------------------
# Structlog processors
# ---------------------------------------------------------------------------


def add_organization_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``organization_id`` from the ContextVar into the event dict."""
    event_dict["organization_id"] = _organization_context.get()
    return event_dict


def add_otel_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``trace_id`` and ``span_id`` from the current OTel span."""
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if ctx and ctx.trace_id:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    else:
        event_dict["trace_id"] = "0" * 32
        event_dict["span_id"] = "0" * 16
    return event_dict


_NOISE_LOGGERS = (
    "uvicorn.access",
    "uvicorn.error",
    "asyncpg",
)

_LOG_FILENAME = "calendar.log"


def _pre_chain(time_fmt: str) -> list[structlog.types.Processor]:
    """Processors applied to every stdlib record before rendering."""
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=time_fmt),
        add_organization_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def _formatter(
    renderer: structlog.types.Processor, time_fmt: str
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=_pre_chain(time_fmt),
    )


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_root: Path | None = None,
) -> None:
    """Route every stdlib logger through structlog formatting.

    Parameters
    ----------
    level:
        Root log level (e.g. "DEBUG", "INFO", "WARNING").
    fmt:
        Console format: ``"text"`` for colored output, ``"json"`` for JSON lines.
    log_root:
        Directory for a JSON log file (``{log_root}/calendar.log``), which
        always records DEBUG and above.
    """
    if fmt == "json":
        console_formatter = _formatter(structlog.processors.JSONRenderer(), "iso")
    else:
        console_formatter = _formatter(structlog.dev.ConsoleRenderer(), "%H:%M:%S")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(console_formatter)

    root = logging.getLogger()
    # Reconfiguring replaces handlers instead of duplicating output.
    root.handlers.clear()
    root.addHandler(console_handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISE_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_root is not None:
        log_root = Path(log_root)
        log_root.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_root / _LOG_FILENAME)
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer(), "iso"))
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)
