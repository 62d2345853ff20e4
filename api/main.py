"""
Billboard Rental API - Main Application
=======================================

Thin HTTP adapter over the booking core (services.py).
Routing and status-code translation only; every rule lives in the coordinator.

Run with: python -m uvicorn api.main:app --reload --port 8000
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.v1.endpoints import reservations, resources
from exceptions import BookingError
from logging_config import get_logger, setup_logging
from services import BookingCoordinator, build_coordinator
from settings import Settings

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = "1"


def create_app(settings: Optional[Settings] = None, coordinator: Optional[BookingCoordinator] = None) -> FastAPI:
    """
    Builds the FastAPI app.

    Args:
        settings: Runtime configuration (read from the environment if omitted)
        coordinator: Pre-built coordinator; when omitted one is built at startup
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.app_env, settings.log_dir)
        if getattr(app.state, "coordinator", None) is None:
            app.state.coordinator = build_coordinator(settings)
            logger.info(f"Booking coordinator ready (backend={settings.booking_backend})")
        yield

    app = FastAPI(
        title="Billboard Rental API",
        version="1.0.0",
        description="""
## Reservation & Availability Engine

- **Reservations**: create, read and cancel date-range bookings of a billboard
- **Resources**: availability state, maintenance toggle, free-resource search

All routes are tenant-scoped through the `X-Tenant-Id` header.
""",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.coordinator = coordinator

    # ==========================================
    # MIDDLEWARE
    # ==========================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==========================================
    # ERROR TRANSLATION
    # ==========================================

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        headers = {"Retry-After": RETRY_AFTER_SECONDS} if exc.retryable else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    # ==========================================
    # ROUTERS
    # ==========================================

    app.include_router(reservations.router, prefix="/api/v1/reservations", tags=["Reservations"])
    app.include_router(resources.router, prefix="/api/v1/resources", tags=["Resources"])

    @app.get("/health", tags=["Health"])
    def health_check():
        """Liveness plus the configured backend."""
        return {
            "status": "healthy",
            "backend": settings.booking_backend,
            "environment": settings.app_env,
        }

    return app


app = create_app()
