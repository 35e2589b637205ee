# backend/evcharge/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets fresh service instances bound to its database session.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.booking_service import BookingService
from ...services.payment_service import PaymentService
from ...services.slot_availability import SlotAvailabilityService
from ...services.station_service import StationService
from ...services.stripe_service import StripeService
from .database import get_db


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Process-wide Stripe gateway; the SDK is configured once."""
    return StripeService()


def get_station_service(db: Session = Depends(get_db)) -> StationService:
    return StationService(db)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """
    Get booking service instance.

    Args:
        db: Database session

    Returns:
        BookingService instance
    """
    return BookingService(db)


def get_availability_service(db: Session = Depends(get_db)) -> SlotAvailabilityService:
    return SlotAvailabilityService(db)


def get_payment_service(
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> PaymentService:
    return PaymentService(db, stripe_service=stripe_service)
