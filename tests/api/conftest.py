"""Shared fixtures for calendar API tests.

The app is created once per module; each test points ``get_service`` at a
CalendarService over a freshly seeded in-memory store.
"""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI

from proposal_calendar.api.app import create_app
from proposal_calendar.api.deps import get_service
from proposal_calendar.service import CalendarService


@pytest.fixture(scope="module")
def app() -> FastAPI:
    return create_app()


@pytest.fixture(autouse=True)
def clear_dependency_overrides(app: FastAPI):
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def service(app: FastAPI, store) -> CalendarService:
    service = CalendarService(store)
    app.dependency_overrides[get_service] = lambda: service
    return service


@pytest.fixture
async def client(app: FastAPI, service: CalendarService):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
