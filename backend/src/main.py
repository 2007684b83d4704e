# pyright: reportMissingTypeStubs=false
"""
Clinic Scheduling Backend API

A FastAPI application coordinating appointment lifecycles, per-appointment
billing and real-time notifications for a clinic.

Features:
- Appointment booking and status lifecycle per role
- Incremental billing ledger with final bill summary
- Persisted notifications with live WebSocket delivery
- PostgreSQL database with SQLAlchemy ORM
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments, billing, notifications, websocket
from core.config import DAILY_SUMMARY_ENABLED
from core.constants import CORS_ORIGINS
from core.exceptions import DomainError
from services import get_notification_dispatcher
from services.admin_daily_summary_service import (
    start_admin_daily_summary_scheduler,
    stop_admin_daily_summary_scheduler,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🏥 Clinic Scheduling API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Clinic Scheduling Backend API")

    # Live delivery from worker threads is handed to this loop
    dispatcher = get_notification_dispatcher()
    dispatcher.bind_loop(asyncio.get_running_loop())

    if DAILY_SUMMARY_ENABLED:
        try:
            await start_admin_daily_summary_scheduler()
            logger.info("✅ Admin daily summary scheduler started")
        except Exception as e:
            logger.exception(f"❌ Failed to start admin daily summary scheduler: {e}")
    else:
        logger.info("⏸️  Admin daily summary scheduler disabled")

    yield

    if DAILY_SUMMARY_ENABLED:
        try:
            await stop_admin_daily_summary_scheduler()
            logger.info("🛑 Admin daily summary scheduler stopped")
        except Exception as e:
            logger.exception(f"❌ Error stopping admin daily summary scheduler: {e}")

    await dispatcher.wait_for_pending()
    dispatcher.bind_loop(None)

    logger.info("🛑 Shutting down Clinic Scheduling Backend API")


# Create FastAPI application
app = FastAPI(
    title="Clinic Scheduling Backend",
    description="Appointments, billing and real-time notifications for clinics",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    appointments.router,
    prefix="/api",
    tags=["appointments"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    billing.router,
    prefix="/api",
    tags=["billing"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    notifications.router,
    prefix="/api/notifications",
    tags=["notifications"],
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    websocket.router,
    tags=["websocket"],
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Clinic Scheduling Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Translate domain errors raised by services into JSON responses."""
    logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": exc.error_type},
    )
