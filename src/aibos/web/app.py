"""FastAPI application exposing the AI-BOS notification engine.

The application factory is the composition root: it builds the engine, keeps
it on ``app.state`` and runs the engine's background loops for the lifetime
of the app.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from aibos.core.config import Settings
from aibos.notifications.engine import NotificationEngine, create_notification_engine
from aibos.web.notification_router import router as notification_router


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
    version: str = "0.1.0"
    engine_running: bool
    pending: int


def create_app(
    settings: Settings | None = None,
    notification_engine: NotificationEngine | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings. Defaults to Settings().
        notification_engine: Optional pre-built engine (tests inject fakes here).

    Returns:
        A configured FastAPI instance.
    """
    if settings is None:
        settings = Settings()

    logging.getLogger("aibos").setLevel(settings.log_level.upper())

    if notification_engine is None:
        notification_engine = create_notification_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await notification_engine.start()
        try:
            yield
        finally:
            await notification_engine.close()

    app = FastAPI(
        title="AI-BOS Notifications",
        description="Notification dispatch engine for the AI-BOS desktop shell",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.notification_engine = notification_engine

    app.include_router(notification_router)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Liveness check."""
        engine: NotificationEngine = app.state.notification_engine
        return HealthResponse(
            status="ok",
            service="aibos-notifications",
            engine_running=engine.running,
            pending=engine.pending_count,
        )

    return app
