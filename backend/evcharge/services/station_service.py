# backend/evcharge/services/station_service.py
"""
Station Registry service.

Station CRUD for owners, public listing with an optional radius filter,
blocked-slot management and per-station statistics.
"""

from datetime import datetime
from decimal import Decimal
import logging
import math
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import Capability
from ..core.exceptions import (
    NotFoundException,
    SlotBlockConflictException,
    StationInUseException,
)
from ..core.timezone_utils import start_of_month, utc_now
from ..models.station import DEFAULT_BLOCK_REASON, ChargingStation
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from ..schemas.station import BlockSlotRequest, StationCreate, StationUpdate
from .access_policy import authorize
from .base import BaseService
from .slot_availability import SlotAvailabilityService

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


class StationService(BaseService):
    """Owner-facing station management and public station lookup."""

    def __init__(
        self,
        db: Session,
        station_repository: Optional[Any] = None,
        booking_repository: Optional[Any] = None,
        availability_service: Optional[SlotAvailabilityService] = None,
    ):
        super().__init__(db)
        self.station_repository = station_repository or RepositoryFactory.create_station_repository(
            db
        )
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(
            db
        )
        self.availability_service = availability_service or SlotAvailabilityService(
            db,
            booking_repository=self.booking_repository,
            station_repository=self.station_repository,
        )

    def _get_station_or_404(self, station_id: str, *, for_update: bool = False) -> ChargingStation:
        if for_update:
            station = self.station_repository.get_for_update(station_id)
        else:
            station = self.station_repository.get_by_id(station_id)
        if not station:
            raise NotFoundException("Charging station not found", code="STATION_NOT_FOUND")
        return station

    # Public reads

    @BaseService.measure_operation("list_stations")
    def list_stations(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius_km: Optional[float] = None,
    ) -> List[ChargingStation]:
        """
        List active stations, nearest-first when a location is given.

        The radius filter only applies when both latitude and longitude are provided.
        """
        stations = self.station_repository.list_active()
        if latitude is None or longitude is None:
            return stations

        radius = radius_km if radius_km is not None else settings.default_search_radius_km
        with_distance = [
            (haversine_km(latitude, longitude, s.latitude, s.longitude), s) for s in stations
        ]
        nearby = [(d, s) for d, s in with_distance if d <= radius]
        nearby.sort(key=lambda pair: pair[0])
        return [s for _, s in nearby]

    def get_station(self, station_id: str) -> ChargingStation:
        return self._get_station_or_404(station_id)

    # Owner operations

    @BaseService.measure_operation("create_station")
    def create_station(self, owner: User, data: StationCreate) -> ChargingStation:
        authorize(owner, Capability.CREATE_STATION)
        self.log_operation("create_station", owner_id=owner.id, station_name=data.name)

        with self.transaction():
            station = self.station_repository.create(
                owner_id=owner.id,
                name=data.name,
                description=data.description,
                address=data.address,
                latitude=data.location.latitude,
                longitude=data.location.longitude,
                total_slots=data.total_slots,
                available_slots=data.total_slots,
                charging_rate=data.charging_rate,
                open_time=data.operating_hours.open,
                close_time=data.operating_hours.close,
                amenities=list(data.amenities),
                images=list(data.images),
            )
        return station

    def list_owner_stations(self, owner: User) -> List[ChargingStation]:
        authorize(owner, Capability.LIST_OWNED_STATIONS)
        return self.station_repository.list_by_owner(owner.id)

    @BaseService.measure_operation("update_station")
    def update_station(
        self, station_id: str, owner: User, data: StationUpdate
    ) -> ChargingStation:
        """
        Apply a partial update.

        When ``total_slots`` changes the available-slot cache moves by the same
        difference, floored at 0 and capped at the new total.
        """
        with self.transaction():
            station = self._get_station_or_404(station_id, for_update=True)
            authorize(owner, Capability.MANAGE_STATION, station)

            changes = data.model_dump(exclude_unset=True)
            location = changes.pop("location", None)
            hours = changes.pop("operating_hours", None)
            new_total = changes.pop("total_slots", None)

            for field, value in changes.items():
                if value is not None:
                    setattr(station, field, value)
            if location:
                station.latitude = location["latitude"]
                station.longitude = location["longitude"]
            if hours:
                station.open_time = hours["open"]
                station.close_time = hours["close"]
            if new_total is not None and new_total != station.total_slots:
                previous = (station.total_slots, station.available_slots)
                station.resize(new_total)
                self.log_operation(
                    "resize_station",
                    station_id=station.id,
                    previous_total=previous[0],
                    previous_available=previous[1],
                    total_slots=station.total_slots,
                    available_slots=station.available_slots,
                )
            self.station_repository.flush()
        return station

    @BaseService.measure_operation("delete_station")
    def delete_station(self, station_id: str, owner: User) -> None:
        with self.transaction():
            station = self._get_station_or_404(station_id, for_update=True)
            authorize(owner, Capability.MANAGE_STATION, station)

            active = self.booking_repository.count_active_for_station(station.id)
            if active:
                raise StationInUseException(station.id, active)
            self.station_repository.delete(station.id)
        self.log_operation("delete_station", station_id=station_id, owner_id=owner.id)

    @BaseService.measure_operation("block_slot")
    def block_slot(self, station_id: str, owner: User, data: BlockSlotRequest) -> ChargingStation:
        """
        Add an owner maintenance window for one slot.

        Rejected when an active booking overlaps. Cancelled and completed
        bookings do not block.
        """
        with self.transaction():
            station = self._get_station_or_404(station_id, for_update=True)
            authorize(owner, Capability.MANAGE_STATION, station)

            self.availability_service.validate_slot_number(station, data.slot_number)
            start, end = self.availability_service.validate_window(data.start_time, data.end_time)

            conflicts = self.availability_service.find_booking_conflicts(
                station.id, data.slot_number, start, end
            )
            if conflicts:
                raise SlotBlockConflictException(data.slot_number, [b.id for b in conflicts])

            self.station_repository.add_blocked_slot(
                station,
                slot_number=data.slot_number,
                start_time=start,
                end_time=end,
                reason=data.reason or DEFAULT_BLOCK_REASON,
            )
        self.log_operation(
            "block_slot",
            station_id=station.id,
            slot_number=data.slot_number,
            start_time=start.isoformat(),
            end_time=end.isoformat(),
        )
        return station

    @BaseService.measure_operation("station_stats")
    def get_station_stats(
        self, station_id: str, owner: User, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Booking counts and revenue from completed, paid bookings."""
        station = self._get_station_or_404(station_id)
        authorize(owner, Capability.MANAGE_STATION, station)

        counts = self.booking_repository.get_station_counts(station.id)
        total_revenue, _ = self.booking_repository.sum_revenue(
            station.id, booking_status="completed"
        )
        monthly_revenue, _ = self.booking_repository.sum_revenue(
            station.id,
            booking_status="completed",
            since=start_of_month(now or utc_now()),
        )
        return {
            "bookings": counts,
            "revenue": {
                "total": _as_float(total_revenue),
                "monthly": _as_float(monthly_revenue),
            },
        }


def _as_float(value: Decimal) -> float:
    return float(round(value, 2))
