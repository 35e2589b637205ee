"""
Service layer for the EV charging marketplace.

Services own business rules and transaction boundaries; repositories own
queries; routes only translate between HTTP and services.
"""

from .base import BaseService
from .booking_service import BookingService
from .payment_service import PaymentService
from .slot_availability import SlotAvailabilityService
from .station_service import StationService
from .stripe_service import StripeService

__all__ = [
    "BaseService",
    "BookingService",
    "PaymentService",
    "SlotAvailabilityService",
    "StationService",
    "StripeService",
]
