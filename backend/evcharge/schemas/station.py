# backend/evcharge/schemas/station.py
"""Station registry request and response schemas."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.timezone_utils import to_utc
from ..models.station import DEFAULT_CLOSE_TIME, DEFAULT_OPEN_TIME
from ._strict_base import StrictRequestModel

TIME_OF_DAY_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class Location(StrictRequestModel):
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")


class OperatingHours(StrictRequestModel):
    open: str = Field(DEFAULT_OPEN_TIME, pattern=TIME_OF_DAY_PATTERN, description="Opening time")
    close: str = Field(DEFAULT_CLOSE_TIME, pattern=TIME_OF_DAY_PATTERN, description="Closing time")


class StationCreate(StrictRequestModel):
    """Create a charging station. available_slots starts equal to total_slots."""

    name: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    address: str = Field(..., min_length=5, max_length=500)
    location: Location
    total_slots: int = Field(..., ge=1, description="Number of physical connectors")
    charging_rate: float = Field(..., ge=0, description="Price per hour")
    operating_hours: OperatingHours = Field(default_factory=OperatingHours)
    amenities: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)


class StationUpdate(StrictRequestModel):
    """Partial station update; omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    address: Optional[str] = Field(None, min_length=5, max_length=500)
    location: Optional[Location] = None
    total_slots: Optional[int] = Field(None, ge=1)
    charging_rate: Optional[float] = Field(None, ge=0)
    operating_hours: Optional[OperatingHours] = None
    amenities: Optional[List[str]] = None
    images: Optional[List[str]] = None
    is_active: Optional[bool] = None


class BlockSlotRequest(StrictRequestModel):
    slot_number: int = Field(..., ge=1)
    start_time: datetime
    end_time: datetime
    reason: Optional[str] = Field(None, max_length=255)


class BlockedSlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    slot_number: int
    start_time: datetime
    end_time: datetime
    reason: str


class OwnerSummary(BaseModel):
    id: str
    full_name: str
    email: str


class StationResponse(BaseModel):
    """Station as returned to clients."""

    id: str
    owner_id: str
    owner: Optional[OwnerSummary] = None
    name: str
    description: Optional[str] = None
    address: str
    location: Location
    total_slots: int
    available_slots: int
    charging_rate: float
    operating_hours: OperatingHours
    is_active: bool
    amenities: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    blocked_slots: Optional[List[BlockedSlotResponse]] = None
    distance_km: Optional[float] = None

    @classmethod
    def from_station(
        cls,
        station: Any,
        *,
        include_blocked_slots: bool = True,
        include_owner: bool = False,
        distance_km: Optional[float] = None,
    ) -> "StationResponse":
        owner = None
        if include_owner and getattr(station, "owner", None) is not None:
            owner = OwnerSummary(
                id=station.owner.id, full_name=station.owner.full_name, email=station.owner.email
            )
        blocked = None
        if include_blocked_slots:
            blocked = [
                BlockedSlotResponse(
                    id=b.id,
                    slot_number=b.slot_number,
                    start_time=to_utc(b.start_time),
                    end_time=to_utc(b.end_time),
                    reason=b.reason,
                )
                for b in station.blocked_slots
            ]
        return cls(
            id=station.id,
            owner_id=station.owner_id,
            owner=owner,
            name=station.name,
            description=station.description,
            address=station.address,
            location=Location(latitude=station.latitude, longitude=station.longitude),
            total_slots=station.total_slots,
            available_slots=station.available_slots,
            charging_rate=float(station.charging_rate),
            operating_hours=OperatingHours(**station.operating_hours),
            is_active=bool(station.is_active),
            amenities=list(station.amenities or []),
            images=list(station.images or []),
            blocked_slots=blocked,
            distance_km=round(distance_km, 3) if distance_km is not None else None,
        )


class BookingCounts(BaseModel):
    total: int
    completed: int
    active: int


class RevenueSummary(BaseModel):
    total: float
    monthly: float


class StationStatsResponse(BaseModel):
    bookings: BookingCounts
    revenue: RevenueSummary
