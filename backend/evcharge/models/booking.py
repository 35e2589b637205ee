# backend/evcharge/models/booking.py
"""
Booking model for the EV charging marketplace.

A booking reserves one numbered slot of a station for a half-open time
window ``[start_time, end_time)``. Price and end time are snapshotted at
creation and never recomputed.

Active bookings (booked, in_progress) on the same station and slot must not
overlap. The service layer enforces this under a station row lock; on
PostgreSQL the ``bookings_no_overlap_per_slot`` exclusion constraint is the
database backstop.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Optional

from sqlalchemy import (
    DDL,
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
    event,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import ACTIVE_BOOKING_STATUSES, BookingStatus, PaymentStatus
from ..core.timezone_utils import to_utc, utc_now
from ..database import Base

logger = logging.getLogger(__name__)

NO_OVERLAP_CONSTRAINT = "bookings_no_overlap_per_slot"


class Booking(Base):
    """Reservation of a station slot for a time window."""

    __tablename__ = "bookings"

    # Primary key
    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    station_id = Column(
        String(26), ForeignKey("charging_stations.id", ondelete="CASCADE"), nullable=False
    )
    slot_number = Column(Integer, nullable=False)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    duration = Column(Float, nullable=False)  # hours
    total_amount = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.BOOKED.value, index=True)
    payment_status = Column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    payment_intent_id = Column(
        String(255), nullable=False, default="", comment="Current Stripe payment intent"
    )

    # Vehicle snapshot
    vehicle_make = Column(String(100), nullable=True)
    vehicle_model = Column(String(100), nullable=True)
    vehicle_license_plate = Column(String(32), nullable=True)
    special_requests = Column(Text, nullable=True)

    # Review (settable once, after completion)
    rating = Column(Integer, nullable=True)
    review = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), onupdate=utc_now)

    user = relationship("User", back_populates="bookings")
    station = relationship("ChargingStation", back_populates="bookings")

    __table_args__ = (
        CheckConstraint(
            "status IN ('booked', 'in_progress', 'completed', 'cancelled')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'completed', 'failed', 'refunded')",
            name="ck_bookings_payment_status",
        ),
        CheckConstraint("slot_number >= 1", name="check_slot_number_positive"),
        CheckConstraint("duration >= 0.5", name="check_duration_minimum"),
        CheckConstraint("total_amount >= 0", name="check_amount_non_negative"),
        CheckConstraint("start_time < end_time", name="check_time_order"),
        CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)", name="check_rating_range"
        ),
        Index("ix_bookings_station_slot_window", "station_id", "slot_number", "start_time"),
        Index("ix_bookings_user_created", "user_id", "created_at"),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Initialize with booked/pending defaults."""
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.BOOKED.value
        if not self.payment_status:
            self.payment_status = PaymentStatus.PENDING.value
        if self.payment_intent_id is None:
            self.payment_intent_id = ""
        logger.info(
            f"Creating booking for user {self.user_id} at station {self.station_id} "
            f"slot {self.slot_number}"
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Booking {self.id}: user={self.user_id}, station={self.station_id}, "
            f"slot={self.slot_number}, window={self.start_time}-{self.end_time}, "
            f"status={self.status}, payment={self.payment_status}>"
        )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def vehicle_info(self) -> Optional[dict[str, Optional[str]]]:
        if not (self.vehicle_make or self.vehicle_model or self.vehicle_license_plate):
            return None
        return {
            "make": self.vehicle_make,
            "model": self.vehicle_model,
            "license_plate": self.vehicle_license_plate,
        }

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval intersection with ``[start, end)``."""
        return to_utc(self.start_time) < to_utc(end) and to_utc(self.end_time) > to_utc(start)

    def hours_until_start(self, now: Optional[datetime] = None) -> float:
        reference = to_utc(now) if now is not None else datetime.now(timezone.utc)
        start = to_utc(self.start_time)
        assert start is not None and reference is not None
        return (start - reference).total_seconds() / 3600

    def cancel(self) -> None:
        """Cancel this booking."""
        self.status = BookingStatus.CANCELLED.value

    def start_charging(self) -> None:
        self.status = BookingStatus.IN_PROGRESS.value

    def complete(self) -> None:
        """Mark booking as completed."""
        self.status = BookingStatus.COMPLETED.value


# PostgreSQL-only overlap backstop, attached when tables are created through metadata.
event.listen(
    Booking.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        f"""
        ALTER TABLE bookings
          ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT}
          EXCLUDE USING gist (
            station_id WITH =,
            slot_number WITH =,
            tstzrange(start_time, end_time, '[)') WITH &&
          )
          WHERE (status IN ('booked', 'in_progress'))
        """
    ).execute_if(dialect="postgresql"),
)
