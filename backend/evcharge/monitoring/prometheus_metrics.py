"""
Prometheus metrics for the EV charging marketplace.

Service timings come from the @measure_operation decorator; domain counters
track booking outcomes, payment reconciliation and the slot display cache.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

http_request_duration_seconds = Histogram(
    "evcharge_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

service_operation_duration_seconds = Histogram(
    "evcharge_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "evcharge_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "evcharge_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_attempts_total = Counter(
    "evcharge_booking_attempts_total",
    "Booking creation attempts by outcome",
    ["outcome"],  # created | conflict | rejected
    registry=REGISTRY,
)

payment_events_total = Counter(
    "evcharge_payment_events_total",
    "Payment reconciliation events",
    ["method", "event"],  # method: online | cod; event: intent | completed | failed | refunded
    registry=REGISTRY,
)

slot_counter_adjustments_total = Counter(
    "evcharge_slot_counter_adjustments_total",
    "Changes applied to the station available-slot display cache",
    ["direction", "clamped"],  # direction: decrement | increment
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Records metrics and renders the exposition payload."""

    @staticmethod
    def record_http_request(method: str, endpoint: str, duration: float, status_code: int) -> None:
        http_request_duration_seconds.labels(
            method=method, endpoint=endpoint, status_code=str(status_code)
        ).observe(duration)

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'create_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_booking_attempt(outcome: str) -> None:
        booking_attempts_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_payment_event(method: str, event: str) -> None:
        payment_events_total.labels(method=method, event=event).inc()

    @staticmethod
    def record_slot_adjustment(direction: str, clamped: bool) -> None:
        slot_counter_adjustments_total.labels(
            direction=direction, clamped="true" if clamped else "false"
        ).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
