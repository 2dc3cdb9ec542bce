"""HostDesk - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hostdesk.core.config import Settings, get_settings
from hostdesk.core.database import build_engine, build_session_factory
from hostdesk.core.env_validation import validate_environment
from hostdesk.routers import bookings_router, cleanings_router, emails_router
from hostdesk.services.engine import BookingEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the database engine and the booking engine for this process."""
    # CRITICAL: hard-fail (exit 1) if required configuration is missing
    validate_environment()

    settings: Settings = app.state.settings
    db_engine = build_engine(settings)
    app.state.session_factory = build_session_factory(db_engine)
    app.state.engine = BookingEngine(settings)
    yield
    await db_engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Booking lifecycle and scheduling engine for short-term rentals: "
        "overlap-free calendars, derived cleaning tasks and scheduled guest emails.",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings

    # CORS - wildcard (*) is blocked outside debug by env_validation.py
    allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",")]
    logger.info(f"CORS configured with origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API v1 routers
    app.include_router(bookings_router, prefix=settings.api_v1_prefix)
    app.include_router(cleanings_router, prefix=settings.api_v1_prefix)
    app.include_router(emails_router, prefix=settings.api_v1_prefix)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": settings.app_name}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": settings.app_name,
            "version": "1.0.0",
            "docs": "/docs" if settings.debug else "Disabled in production",
        }

    return app


app = create_app()
