# backend/evcharge/main.py
"""
EV charging marketplace API application.

Run locally with:
    uvicorn evcharge.main:app --reload --app-dir backend
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from . import __version__
from .core.config import settings
from .database import init_db
from .errors import register_error_handlers
from .middleware.prometheus_middleware import PrometheusMiddleware
from .routes import health
from .routes.v1 import bookings as bookings_v1, payments as payments_v1, stations as stations_v1

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

API_TITLE = "EV Charging Marketplace API"
API_DESCRIPTION = "Charging stations, slot bookings and payment reconciliation."


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info("EV charging API starting up...")
    logger.info(f"Environment: {settings.environment}")

    # Development and test databases are created from the models; production uses Alembic.
    if settings.is_sqlite or settings.environment == "development":
        init_db()

    yield

    logger.info("EV charging API shutting down...")


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    # Register unified error envelope handlers
    register_error_handlers(app)

    if settings.metrics_enabled:
        app.add_middleware(PrometheusMiddleware)

    # Create API v1 router
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(stations_v1.router, prefix="/stations")
    api_v1.include_router(bookings_v1.router, prefix="/bookings")
    api_v1.include_router(payments_v1.router, prefix="/payments")

    app.include_router(api_v1)
    app.include_router(health.router)
    return app


app = create_app()
