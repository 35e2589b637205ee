# backend/evcharge/middleware/prometheus_middleware.py
"""
Prometheus middleware for HTTP request metrics.
"""

import time
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..monitoring.prometheus_metrics import prometheus_metrics

METRICS_PATH = "/metrics"


def _endpoint_label(request: Request) -> str:
    """Route template when matched (``/api/v1/bookings/{booking_id}``), else the raw path."""
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template if isinstance(template, str) else request.url.path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for HTTP requests."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # Skip metrics collection for the metrics endpoint itself
        if request.url.path == METRICS_PATH:
            return await call_next(request)

        start_time = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            prometheus_metrics.record_http_request(
                method=request.method,
                endpoint=_endpoint_label(request),
                duration=time.time() - start_time,
                status_code=status_code,
            )
