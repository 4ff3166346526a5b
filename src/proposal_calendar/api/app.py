"""Calendar API: FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Lifespan handler that builds the entity store and CalendarService
- Health endpoint at GET /api/health
- The calendar router under /api/calendar
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from proposal_calendar import __version__
from proposal_calendar.api.deps import init_service, shutdown_service
from proposal_calendar.api.middleware import register_error_handlers
from proposal_calendar.api.routers.calendar import router as calendar_router
from proposal_calendar.config import CalendarConfig


def create_app(
    cors_origins: list[str] | None = None,
    config: CalendarConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    cors_origins:
        Allowed CORS origins. Defaults to ["http://localhost:5173"] for
        local Vite dev server.
    config:
        Calendar configuration. When omitted, the lifespan handler loads it
        from ``$CALENDAR_CONFIG``.
    """
    if cors_origins is None:
        cors_origins = ["http://localhost:5173"]

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_service(config)
        yield
        await shutdown_service()

    app = FastAPI(
        title="Proposal Calendar API",
        version=__version__,
        lifespan=lifespan,
    )
    app.router.redirect_slashes = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(calendar_router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app
