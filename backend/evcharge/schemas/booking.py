# backend/evcharge/schemas/booking.py
"""Booking request and response schemas."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from ..core.enums import BookingStatus, PaymentStatus
from ..core.timezone_utils import to_utc
from ._strict_base import StrictRequestModel


class VehicleInfo(StrictRequestModel):
    make: Optional[str] = Field(None, max_length=100)
    model: Optional[str] = Field(None, max_length=100)
    license_plate: Optional[str] = Field(None, max_length=32)


class BookingCreate(StrictRequestModel):
    """
    Reserve a slot.

    end_time is derived as start_time + duration hours and the amount as
    duration x the station's charging rate; neither is accepted from clients.
    """

    station_id: str = Field(..., min_length=1, description="Station to book")
    slot_number: int = Field(..., ge=1, description="Slot (connector) number")
    start_time: datetime = Field(..., description="Start of the charging window")
    duration: float = Field(..., ge=0.5, description="Duration in hours")
    vehicle_info: Optional[VehicleInfo] = None
    special_requests: Optional[str] = Field(None, max_length=1000)


class BookingStatusUpdate(StrictRequestModel):
    status: BookingStatus


class BookingReviewCreate(StrictRequestModel):
    rating: int = Field(..., ge=1, le=5, description="Star rating")
    review: Optional[str] = Field(None, max_length=2000)


class CodPaymentStatusUpdate(StrictRequestModel):
    """Cash-on-delivery payment status reported by the EV owner."""

    payment_status: PaymentStatus
    payment_method: str = Field(..., description="Must be 'cod'")


class StationSummary(BaseModel):
    id: str
    name: str
    address: str
    charging_rate: float
    owner_id: str


class UserSummary(BaseModel):
    id: str
    full_name: str
    email: str


class BookingResponse(BaseModel):
    """Booking as returned to either party."""

    id: str
    user_id: str
    station_id: str
    station: Optional[StationSummary] = None
    user: Optional[UserSummary] = None
    slot_number: int
    start_time: datetime
    end_time: datetime
    duration: float
    total_amount: float
    status: BookingStatus
    payment_status: PaymentStatus
    payment_intent_id: str = ""
    vehicle_info: Optional[VehicleInfo] = None
    special_requests: Optional[str] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_booking(cls, booking: Any, *, include_user: bool = False) -> "BookingResponse":
        """Create BookingResponse from Booking ORM model."""
        station = getattr(booking, "station", None)
        station_summary = None
        if station is not None:
            station_summary = StationSummary(
                id=station.id,
                name=station.name,
                address=station.address,
                charging_rate=float(station.charging_rate),
                owner_id=station.owner_id,
            )
        user_summary = None
        user = getattr(booking, "user", None) if include_user else None
        if user is not None:
            user_summary = UserSummary(id=user.id, full_name=user.full_name, email=user.email)

        vehicle = booking.vehicle_info
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            station_id=booking.station_id,
            station=station_summary,
            user=user_summary,
            slot_number=booking.slot_number,
            start_time=to_utc(booking.start_time),
            end_time=to_utc(booking.end_time),
            duration=float(booking.duration),
            total_amount=float(booking.total_amount),
            status=booking.status,
            payment_status=booking.payment_status,
            payment_intent_id=booking.payment_intent_id or "",
            vehicle_info=VehicleInfo(**vehicle) if vehicle else None,
            special_requests=booking.special_requests,
            rating=booking.rating,
            review=booking.review,
            created_at=to_utc(booking.created_at),
        )


class BookingMutationResponse(BaseModel):
    message: str
    booking: BookingResponse


class AvailabilityStation(BaseModel):
    id: str
    name: str
    total_slots: int
    charging_rate: float


class TimeRange(BaseModel):
    start: datetime
    end: datetime


class AvailabilityResponse(BaseModel):
    station: AvailabilityStation
    available_slots: List[int]
    time_range: TimeRange
