# backend/evcharge/routes/health.py
"""
Health check and Prometheus exposition endpoints.

Both are public and mounted at the application root.
"""

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Response
from pydantic import BaseModel

from .. import __version__
from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    environment: str
    timestamp: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness probe."""
    return HealthResponse(
        status="healthy",
        service="evcharge-api",
        version=__version__,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus text exposition of the application registry."""
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
