# backend/evcharge/services/base.py
"""
Base Service

Shared plumbing for the service layer:
- commit/rollback around a unit of work
- structured operation logs
- per-operation timing exported to Prometheus
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ServiceException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class BaseService:
    """
    Parent of every service that owns a database session.

    Subclasses wrap writes in ``transaction()`` and decorate public entry
    points with ``measure_operation``.
    """

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit on clean exit, roll back on any error.

        SQLAlchemy errors surface as ServiceException; domain exceptions raised
        inside the block pass through unchanged after the rollback.
        """
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {str(e)}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Time the decorated method and export the result.

        Usage:
            @BaseService.measure_operation("create_booking")
            def create_booking(self, user, data):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                error_type: Optional[str] = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - started
                    _report(self, operation_name, elapsed, error_type)

            wrapper._operation_name = operation_name  # type: ignore[attr-defined]
            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """Info log carrying ``context`` as structured extras."""
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})


def _report(owner: Any, operation: str, elapsed: float, error_type: Optional[str]) -> None:
    service_name = owner.__class__.__name__
    if elapsed > settings.slow_operation_threshold_seconds:
        getattr(owner, "logger", logger).warning(
            f"Slow operation detected: {service_name}.{operation} took {elapsed:.2f}s"
        )
    if settings.metrics_enabled:
        prometheus_metrics.record_service_operation(
            service=service_name,
            operation=operation,
            duration=elapsed,
            status="error" if error_type else "success",
            error_type=error_type,
        )
