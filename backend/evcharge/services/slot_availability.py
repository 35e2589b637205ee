# backend/evcharge/services/slot_availability.py
"""
Slot Availability Checker

A slot is unavailable for ``[start, end)`` when either:
  (a) an active booking (booked, in_progress) on the same station and slot
      intersects the window, or
  (b) an owner-declared blocked window on the same slot intersects it.

Both use ``existing.start < end AND existing.end > start``, so windows that
merely touch (one ends exactly when the other starts) do not conflict.

This service only reads. Callers that act on the answer (booking creation,
slot blocking) must hold the station row lock for the check to stay valid.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import to_utc
from ..models.booking import Booking
from ..models.station import ChargingStation, StationBlockedSlot
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class SlotAvailabilityService(BaseService):
    """Answers whether station slots are free for a time window."""

    def __init__(
        self,
        db: Session,
        booking_repository: Optional[Any] = None,
        station_repository: Optional[Any] = None,
    ):
        super().__init__(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(
            db
        )
        self.station_repository = station_repository or RepositoryFactory.create_station_repository(
            db
        )

    # Validation helpers

    @staticmethod
    def validate_window(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
        """Normalize a window to UTC and require ``start < end``."""
        if start is None or end is None:
            raise ValidationException("Start time and end time are required")
        start_utc, end_utc = to_utc(start), to_utc(end)
        assert start_utc is not None and end_utc is not None
        if start_utc >= end_utc:
            raise ValidationException(
                "End time must be after start time",
                details={"start_time": start_utc.isoformat(), "end_time": end_utc.isoformat()},
            )
        return start_utc, end_utc

    @staticmethod
    def validate_slot_number(station: ChargingStation, slot_number: int) -> None:
        """Reject slot numbers outside ``1..total_slots``."""
        if slot_number < 1 or slot_number > int(station.total_slots):
            raise ValidationException(
                f"Invalid slot number. Station has {station.total_slots} slots",
                code="INVALID_SLOT_NUMBER",
                details={"slot_number": slot_number, "total_slots": station.total_slots},
            )

    # Conflict lookups

    def find_booking_conflicts(
        self,
        station_id: str,
        slot_number: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        return self.booking_repository.find_overlapping_active(
            station_id,
            start,
            end,
            slot_number=slot_number,
            exclude_booking_id=exclude_booking_id,
        )

    def find_block_conflicts(
        self, station_id: str, slot_number: int, start: datetime, end: datetime
    ) -> List[StationBlockedSlot]:
        return self.station_repository.find_overlapping_blocks(
            station_id, start, end, slot_number=slot_number
        )

    # Public contract

    def is_slot_available(
        self,
        station: ChargingStation,
        slot_number: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """
        Check whether one slot is free for the window.

        Raises:
            ValidationException: slot number out of range or empty window
        """
        self.validate_slot_number(station, slot_number)
        start_utc, end_utc = self.validate_window(start, end)

        if self.find_booking_conflicts(
            station.id, slot_number, start_utc, end_utc, exclude_booking_id
        ):
            return False
        if self.find_block_conflicts(station.id, slot_number, start_utc, end_utc):
            return False
        return True

    def occupied_slots(self, station: ChargingStation, start: datetime, end: datetime) -> Set[int]:
        """Slot numbers taken by an active booking or a blocked window."""
        start_utc, end_utc = self.validate_window(start, end)
        booked = {
            b.slot_number
            for b in self.booking_repository.find_overlapping_active(station.id, start_utc, end_utc)
        }
        blocked = {
            b.slot_number
            for b in self.station_repository.find_overlapping_blocks(station.id, start_utc, end_utc)
        }
        return booked | blocked

    @BaseService.measure_operation("list_available_slots")
    def list_available_slots(
        self, station: ChargingStation, start: datetime, end: datetime
    ) -> List[int]:
        """Complement of ``occupied_slots`` within ``1..total_slots``, ascending."""
        occupied = self.occupied_slots(station, start, end)
        return [n for n in range(1, int(station.total_slots) + 1) if n not in occupied]

    @BaseService.measure_operation("check_station_availability")
    def get_station_availability(
        self, station_id: str, start: datetime, end: datetime
    ) -> Dict[str, Any]:
        """Availability summary served by the public availability endpoint."""
        start_utc, end_utc = self.validate_window(start, end)
        station = self.station_repository.get_by_id(station_id, load_relationships=False)
        if not station:
            raise NotFoundException("Charging station not found", code="STATION_NOT_FOUND")

        available = self.list_available_slots(station, start_utc, end_utc)
        return {
            "station": {
                "id": station.id,
                "name": station.name,
                "total_slots": station.total_slots,
                "charging_rate": float(station.charging_rate),
            },
            "available_slots": available,
            "time_range": {"start": start_utc, "end": end_utc},
        }
