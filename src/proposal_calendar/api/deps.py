"""Service wiring for the calendar API.

Provides:
- ``init_service()`` / ``shutdown_service()``: build the entity store and
  CalendarService from configuration at startup and release them on shutdown.
- ``get_service()``: FastAPI dependency for route handlers.
- ``get_calendar_config()``: loads the configuration named by
  ``CALENDAR_CONFIG`` (a file or a directory holding ``calendar.toml``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from proposal_calendar.config import CalendarConfig, load_config
from proposal_calendar.service import CalendarService, build_store
from proposal_calendar.store import PostgresEntityStore

logger = logging.getLogger(__name__)

_CONFIG_ENV_VAR = "CALENDAR_CONFIG"

_service: CalendarService | None = None


def get_calendar_config() -> CalendarConfig:
    """Load configuration from ``$CALENDAR_CONFIG``, or defaults when unset."""
    raw_path = os.environ.get(_CONFIG_ENV_VAR)
    return load_config(Path(raw_path) if raw_path else None)


async def init_service(config: CalendarConfig | None = None) -> CalendarService:
    """Create the process-wide CalendarService (connecting Postgres if configured)."""
    global _service
    config = config or get_calendar_config()
    store = build_store(config)
    if isinstance(store, PostgresEntityStore):
        await store.connect()
    _service = CalendarService(store, config)
    logger.info("Calendar service initialized (store backend: %s)", config.store.backend)
    return _service


async def shutdown_service() -> None:
    """Close the store owned by the process-wide service, if any."""
    global _service
    if _service is None:
        return
    if isinstance(_service.store, PostgresEntityStore):
        await _service.store.close()
    _service = None


def get_service() -> CalendarService:
    """Return the initialized CalendarService.

    Raises
    ------
    RuntimeError
        If called before ``init_service()``; tests override this dependency.
    """
    if _service is None:
        raise RuntimeError("CalendarService not initialized")
    return _service
