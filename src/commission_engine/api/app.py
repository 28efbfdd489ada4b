"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from commission_engine.api.routes import commissions_router, health_router
from commission_engine.config import get_settings
from commission_engine.database import init_db
from commission_engine.events import CommissionNotifier, EventEmitter, LoggingNotificationSink
from commission_engine.services import DatabaseSettingsProvider, RateSettingsProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    if app.state.session_factory is None:
        _, session_factory = init_db()
        _bind_session_factory(app, session_factory)
    yield
    # Shutdown
    pass


def _bind_session_factory(app: FastAPI, session_factory: sessionmaker[Session]) -> None:
    app.state.session_factory = session_factory
    if app.state.settings_provider is None:
        app.state.settings_provider = DatabaseSettingsProvider(
            session_factory,
            ttl_seconds=get_settings().settings_cache_ttl_seconds,
        )


def create_app(
    session_factory: sessionmaker[Session] | None = None,
    emitter: EventEmitter | None = None,
    settings_provider: RateSettingsProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Commission Engine API",
        description="Sales commission waterfall and ledger",
        version="0.1.0",
        lifespan=lifespan,
    )

    if emitter is None:
        emitter = EventEmitter()
        CommissionNotifier(LoggingNotificationSink()).register(emitter)

    app.state.emitter = emitter
    app.state.engine_version = settings.engine_version
    app.state.read_retry = settings.read_retry
    app.state.settings_provider = settings_provider
    app.state.session_factory = None
    if session_factory is not None:
        _bind_session_factory(app, session_factory)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(commissions_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
