# backend/evcharge/core/enums.py
"""
Core enums for the EV charging marketplace.

String-valued enums are used for roles, lifecycle statuses and access
capabilities so that values round-trip unchanged through the database and
JSON payloads.
"""

from enum import Enum


class UserRole(str, Enum):
    """Account roles. A user holds exactly one."""

    EV_OWNER = "ev_owner"
    STATION_OWNER = "station_owner"


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    BOOKED = "booked"  # Initial state
    IN_PROGRESS = "in_progress"  # Vehicle is charging
    COMPLETED = "completed"  # Terminal
    CANCELLED = "cancelled"  # Terminal


class PaymentStatus(str, Enum):
    """Payment state tracked on each booking."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    COD = "cod"
    ONLINE = "online"


class Capability(str, Enum):
    """
    Actions checked by the access policy.

    Each capability maps to a required role and an ownership relation in
    ``services.access_policy``.
    """

    # Station registry
    CREATE_STATION = "create_station"
    MANAGE_STATION = "manage_station"
    VIEW_STATION_BOOKINGS = "view_station_bookings"
    LIST_OWNED_STATIONS = "list_owned_stations"

    # Booking lifecycle
    CREATE_BOOKING = "create_booking"
    VIEW_BOOKING = "view_booking"
    LIST_OWN_BOOKINGS = "list_own_bookings"
    START_CHARGING = "start_charging"
    COMPLETE_CHARGING = "complete_charging"
    CANCEL_BOOKING = "cancel_booking"
    REVIEW_BOOKING = "review_booking"

    # Payments
    PAY_BOOKING = "pay_booking"
    REFUND_BOOKING = "refund_booking"


ACTIVE_BOOKING_STATUSES = (BookingStatus.BOOKED.value, BookingStatus.IN_PROGRESS.value)
