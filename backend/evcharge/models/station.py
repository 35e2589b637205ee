# backend/evcharge/models/station.py
"""
Charging station models.

A station owns a fixed number of numbered slots (connectors). Owners may
declare maintenance windows per slot through ``StationBlockedSlot`` rows,
which the availability checker treats exactly like active bookings.

``available_slots`` is a display cache maintained by payment reconciliation.
It is never consulted for overlap correctness.
"""

from datetime import datetime
import logging

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import to_utc, utc_now
from ..database import Base

logger = logging.getLogger(__name__)

DEFAULT_OPEN_TIME = "06:00"
DEFAULT_CLOSE_TIME = "22:00"
DEFAULT_BLOCK_REASON = "Maintenance"


class ChargingStation(Base):
    """Station registry entry."""

    __tablename__ = "charging_stations"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    owner_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String(500), nullable=False)
    longitude = Column(Float, nullable=False)
    latitude = Column(Float, nullable=False)

    total_slots = Column(Integer, nullable=False)
    available_slots = Column(Integer, nullable=False)
    charging_rate = Column(Numeric(10, 2), nullable=False)

    open_time = Column(String(5), nullable=False, default=DEFAULT_OPEN_TIME)
    close_time = Column(String(5), nullable=False, default=DEFAULT_CLOSE_TIME)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    amenities = Column(JSON, nullable=False, default=list)
    images = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    owner = relationship("User", back_populates="stations")
    blocked_slots = relationship(
        "StationBlockedSlot",
        back_populates="station",
        cascade="all, delete-orphan",
        order_by="StationBlockedSlot.created_at",
    )
    bookings = relationship(
        "Booking", back_populates="station", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("total_slots >= 1", name="ck_stations_total_slots_positive"),
        CheckConstraint(
            "available_slots >= 0 AND available_slots <= total_slots",
            name="ck_stations_available_slots_bounds",
        ),
        CheckConstraint("charging_rate >= 0", name="ck_stations_rate_non_negative"),
        CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_stations_latitude"),
        CheckConstraint("longitude >= -180 AND longitude <= 180", name="ck_stations_longitude"),
    )

    @property
    def operating_hours(self) -> dict[str, str]:
        return {"open": self.open_time, "close": self.close_time}

    def decrement_available_slots(self) -> int:
        """Take one slot out of the display counter, never below zero."""
        self.available_slots = max(0, int(self.available_slots or 0) - 1)
        return self.available_slots

    def increment_available_slots(self) -> int:
        """Return one slot to the display counter, never above capacity."""
        self.available_slots = min(int(self.total_slots), int(self.available_slots or 0) + 1)
        return self.available_slots

    def resize(self, new_total: int) -> None:
        """Change capacity, shifting the display counter by the same difference."""
        diff = int(new_total) - int(self.total_slots)
        self.total_slots = int(new_total)
        self.available_slots = min(self.total_slots, max(0, int(self.available_slots or 0) + diff))

    def __repr__(self) -> str:
        return (
            f"<ChargingStation {self.id}: {self.name!r} slots={self.available_slots}/"
            f"{self.total_slots} active={self.is_active}>"
        )


class StationBlockedSlot(Base):
    """Owner-declared unavailability window for one slot."""

    __tablename__ = "station_blocked_slots"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    station_id = Column(
        String(26), ForeignKey("charging_stations.id", ondelete="CASCADE"), nullable=False
    )
    slot_number = Column(Integer, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    reason = Column(String(255), nullable=False, default=DEFAULT_BLOCK_REASON)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    station = relationship("ChargingStation", back_populates="blocked_slots")

    __table_args__ = (
        CheckConstraint("slot_number >= 1", name="ck_blocked_slots_slot_positive"),
        CheckConstraint("start_time < end_time", name="ck_blocked_slots_time_order"),
        Index("ix_blocked_slots_station_slot", "station_id", "slot_number"),
    )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval intersection with ``[start, end)``."""
        return to_utc(self.start_time) < to_utc(end) and to_utc(self.end_time) > to_utc(start)

    def __repr__(self) -> str:
        return (
            f"<StationBlockedSlot station={self.station_id} slot={self.slot_number} "
            f"{self.start_time}-{self.end_time}>"
        )
