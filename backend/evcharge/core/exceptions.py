# backend/evcharge/core/exceptions.py
"""
Domain-specific exceptions for the EV charging marketplace.

Each carries a stable ``code`` and an HTTP status; routes turn them into
problem responses via ``to_http_exception``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying message, code and details."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str = "Access denied",
        code: Optional[str] = "FORBIDDEN",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when a booking conflicts with existing bookings or blocked windows."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "Slot is not available for the selected time",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class SlotBlockConflictException(ConflictException):
    """Raised when a blocked window would overlap an active booking."""

    def __init__(self, slot_number: int, conflicting_booking_ids: list[str]):
        super().__init__(
            message="Cannot block slot - there are existing bookings in this time range",
            code="SLOT_BLOCK_CONFLICT",
            details={
                "slot_number": slot_number,
                "conflicting_booking_ids": conflicting_booking_ids,
            },
        )


class StationInUseException(ConflictException):
    """Raised when deleting a station that still has active bookings."""

    def __init__(self, station_id: str, active_bookings: int):
        super().__init__(
            message="Cannot delete station with active bookings",
            code="STATION_HAS_ACTIVE_BOOKINGS",
            details={"station_id": station_id, "active_bookings": active_bookings},
        )


class PolicyViolationException(BusinessRuleException):
    """Raised when a time- or state-based booking policy rejects an action."""


class CancellationWindowClosedException(PolicyViolationException):
    """Raised when an EV owner tries to cancel inside the cutoff window."""

    def __init__(self, cutoff_hours: float, hours_until_start: float):
        super().__init__(
            message=f"Booking cannot be cancelled less than {cutoff_hours:g} hour(s) before start time",
            code="CANCELLATION_WINDOW_CLOSED",
            details={
                "cutoff_hours": cutoff_hours,
                "hours_until_start": round(hours_until_start, 2),
            },
        )


class InvalidStatusTransitionException(BusinessRuleException):
    """Raised when a booking status change is not permitted by the state machine."""

    def __init__(self, current_status: str, requested_status: str):
        super().__init__(
            message=f"Cannot change booking status from {current_status} to {requested_status}",
            code="INVALID_STATUS_TRANSITION",
            details={"current_status": current_status, "requested_status": requested_status},
        )


class PaymentProviderException(DomainException):
    """Raised when the payment processor call itself fails."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code="PAYMENT_PROVIDER_ERROR", details=details)


class PaymentFailedException(DomainException):
    """Raised when the processor reports a non-successful payment."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, provider_status: str, booking_id: str):
        super().__init__(
            "Payment failed",
            code="PAYMENT_FAILED",
            details={"status": provider_status, "booking_id": booking_id},
        )


class RepositoryException(Exception):
    """Data access failure below the service layer."""
