# backend/evcharge/services/booking_service.py
"""
Booking Lifecycle service.

Handles booking creation, the booked -> in_progress -> completed state
machine, owner cancellation inside the cutoff window, single-shot reviews
and the booking listings for both parties.

Creation holds the station row lock from the availability check until the
insert commits, so two creators can never both observe a free slot.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BookingStatus, Capability
from ..core.exceptions import (
    BookingConflictException,
    CancellationWindowClosedException,
    ForbiddenException,
    InvalidStatusTransitionException,
    NotFoundException,
    PolicyViolationException,
    RepositoryException,
    ValidationException,
)
from ..core.timezone_utils import hours_to_timedelta, to_utc, utc_now
from ..models.booking import NO_OVERLAP_CONSTRAINT, Booking
from ..models.station import ChargingStation
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BookingCreate
from .access_policy import authorize
from .base import BaseService
from .slot_availability import SlotAvailabilityService

logger = logging.getLogger(__name__)

GENERIC_CONFLICT_MESSAGE = "Slot is not available for the selected time"
OVERLAP_CONFLICT_MESSAGE = "Slot is already booked for the selected time"

# Permitted status changes and the capability that drives each one.
STATUS_TRANSITIONS: Dict[Tuple[str, str], Capability] = {
    (BookingStatus.BOOKED.value, BookingStatus.IN_PROGRESS.value): Capability.START_CHARGING,
    (BookingStatus.IN_PROGRESS.value, BookingStatus.COMPLETED.value): Capability.COMPLETE_CHARGING,
}

AMOUNT_QUANTUM = Decimal("0.01")


class BookingService(BaseService):
    """
    Service layer for booking operations.

    All role and ownership decisions go through ``access_policy.authorize``.
    """

    @staticmethod
    def _is_deadlock_error(exc: OperationalError) -> bool:
        orig = getattr(exc, "orig", None)
        pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if pgcode == "40P01":
            return True
        message = str(exc).lower()
        return "deadlock detected" in message

    def __init__(
        self,
        db: Session,
        repository: Optional[Any] = None,
        station_repository: Optional[Any] = None,
        availability_service: Optional[SlotAvailabilityService] = None,
    ):
        """
        Initialize booking service.

        Args:
            db: Database session
            repository: Optional BookingRepository (for testing)
            station_repository: Optional StationRepository (for testing)
            availability_service: Optional SlotAvailabilityService (for testing)
        """
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_booking_repository(db)
        self.station_repository = station_repository or RepositoryFactory.create_station_repository(
            db
        )
        self.availability_service = availability_service or SlotAvailabilityService(
            db,
            booking_repository=self.repository,
            station_repository=self.station_repository,
        )

    # Helpers

    def _get_booking_or_404(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        return booking

    def _resolve_integrity_conflict_message(self, integrity_error: IntegrityError) -> str:
        """Map a database IntegrityError raised on insert to a conflict message."""
        constraint_name: str = ""
        orig = getattr(integrity_error, "orig", None)
        diag = getattr(orig, "diag", None)

        if diag is not None:
            constraint_name = getattr(diag, "constraint_name", "") or ""

        if not constraint_name and orig is not None:
            if NO_OVERLAP_CONSTRAINT in str(orig):
                constraint_name = NO_OVERLAP_CONSTRAINT

        if constraint_name == NO_OVERLAP_CONSTRAINT:
            return OVERLAP_CONFLICT_MESSAGE
        return GENERIC_CONFLICT_MESSAGE

    @staticmethod
    def _build_conflict_details(
        station_id: str, slot_number: int, start: datetime, end: datetime
    ) -> Dict[str, Any]:
        return {
            "station_id": station_id,
            "slot_number": slot_number,
            "start_time": start.isoformat(),
            "end_time": end.isoformat(),
        }

    @staticmethod
    def calculate_amount(duration_hours: float, charging_rate: Any) -> Decimal:
        """duration x rate, rounded half-up to two decimals."""
        amount = Decimal(str(duration_hours)) * Decimal(str(charging_rate))
        return amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)

    def _check_slot_free(
        self, station: ChargingStation, slot_number: int, start: datetime, end: datetime
    ) -> None:
        booking_conflicts = self.availability_service.find_booking_conflicts(
            station.id, slot_number, start, end
        )
        block_conflicts = self.availability_service.find_block_conflicts(
            station.id, slot_number, start, end
        )
        if not booking_conflicts and not block_conflicts:
            return
        details = self._build_conflict_details(station.id, slot_number, start, end)
        details["conflicting_booking_ids"] = [b.id for b in booking_conflicts]
        details["conflicting_block_ids"] = [b.id for b in block_conflicts]
        raise BookingConflictException(GENERIC_CONFLICT_MESSAGE, details=details)

    # Creation

    @BaseService.measure_operation("create_booking")
    def create_booking(self, user: User, data: BookingCreate) -> Booking:
        """
        Create a booking for an EV owner.

        Args:
            user: The EV owner creating the booking
            data: Station, slot, start time, duration and vehicle details

        Returns:
            Created booking (status booked, payment pending)

        Raises:
            ForbiddenException: caller is not an EV owner
            NotFoundException: station does not exist
            ValidationException: inactive station, bad slot number or duration
            BookingConflictException: slot is taken or blocked for the window
        """
        authorize(user, Capability.CREATE_BOOKING)
        self.log_operation(
            "create_booking",
            user_id=user.id,
            station_id=data.station_id,
            slot_number=data.slot_number,
            duration=data.duration,
        )

        if data.duration < settings.min_booking_duration_hours:
            raise ValidationException(
                f"Minimum booking duration is {settings.min_booking_duration_hours:g} hours",
                code="INVALID_DURATION",
            )
        start = to_utc(data.start_time)
        assert start is not None
        end = start + hours_to_timedelta(data.duration)
        vehicle = data.vehicle_info

        try:
            with self.repository.transaction():
                station = self.station_repository.get_for_update(data.station_id)
                if not station:
                    raise NotFoundException(
                        "Charging station not found", code="STATION_NOT_FOUND"
                    )
                if not station.is_active:
                    raise ValidationException(
                        "Charging station is not active", code="STATION_INACTIVE"
                    )
                self.availability_service.validate_slot_number(station, data.slot_number)
                self._check_slot_free(station, data.slot_number, start, end)

                booking = self.repository.create(
                    user_id=user.id,
                    station_id=station.id,
                    slot_number=data.slot_number,
                    start_time=start,
                    end_time=end,
                    duration=data.duration,
                    total_amount=self.calculate_amount(data.duration, station.charging_rate),
                    status=BookingStatus.BOOKED.value,
                    vehicle_make=vehicle.make if vehicle else None,
                    vehicle_model=vehicle.model if vehicle else None,
                    vehicle_license_plate=vehicle.license_plate if vehicle else None,
                    special_requests=data.special_requests,
                )
        except BookingConflictException:
            prometheus_metrics.record_booking_attempt("conflict")
            raise
        except IntegrityError as exc:
            prometheus_metrics.record_booking_attempt("conflict")
            raise BookingConflictException(
                self._resolve_integrity_conflict_message(exc),
                details=self._build_conflict_details(
                    data.station_id, data.slot_number, start, end
                ),
            ) from exc
        except OperationalError as exc:
            if self._is_deadlock_error(exc):
                prometheus_metrics.record_booking_attempt("conflict")
                raise BookingConflictException(
                    GENERIC_CONFLICT_MESSAGE,
                    details=self._build_conflict_details(
                        data.station_id, data.slot_number, start, end
                    ),
                ) from exc
            raise
        except RepositoryException as exc:
            if "deadlock detected" in str(exc).lower():
                prometheus_metrics.record_booking_attempt("conflict")
                raise BookingConflictException(GENERIC_CONFLICT_MESSAGE) from exc
            raise

        prometheus_metrics.record_booking_attempt("created")
        logger.info(
            "Booking %s created: station=%s slot=%s amount=%s",
            booking.id,
            booking.station_id,
            booking.slot_number,
            booking.total_amount,
        )
        return booking

    # State machine

    @BaseService.measure_operation("update_booking_status")
    def update_status(self, booking_id: str, new_status: str, caller: User) -> Booking:
        """
        Move a booking along booked -> in_progress -> completed.

        Parties who are not the station owner are refused with Forbidden,
        transitions outside the state machine with InvalidStatusTransition.
        """
        requested = BookingStatus(new_status).value
        with self.transaction():
            booking = self._get_booking_or_404(booking_id)
            authorize(caller, Capability.VIEW_BOOKING, booking)

            capability = STATUS_TRANSITIONS.get((booking.status, requested))
            if capability is None:
                raise InvalidStatusTransitionException(booking.status, requested)
            authorize(caller, capability, booking)

            if requested == BookingStatus.IN_PROGRESS.value:
                booking.start_charging()
            else:
                booking.complete()
            self.repository.flush()

        self.log_operation(
            "update_booking_status", booking_id=booking.id, status=booking.status
        )
        return booking

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self, booking_id: str, caller: User, now: Optional[datetime] = None
    ) -> Booking:
        """
        Cancel a booked reservation.

        Allowed while ``now <= start_time - cancellation_cutoff_hours``. No
        refund is issued here.
        """
        cutoff_hours = settings.cancellation_cutoff_hours
        with self.transaction():
            booking = self._get_booking_or_404(booking_id)
            authorize(caller, Capability.CANCEL_BOOKING, booking)

            if booking.status != BookingStatus.BOOKED.value:
                raise InvalidStatusTransitionException(
                    booking.status, BookingStatus.CANCELLED.value
                )

            reference = to_utc(now) if now is not None else utc_now()
            assert reference is not None
            start = to_utc(booking.start_time)
            assert start is not None
            if reference > start - timedelta(hours=cutoff_hours):
                raise CancellationWindowClosedException(
                    cutoff_hours, booking.hours_until_start(reference)
                )

            booking.cancel()
            self.repository.flush()

        self.log_operation("cancel_booking", booking_id=booking.id, user_id=caller.id)
        return booking

    @BaseService.measure_operation("add_review")
    def add_review(
        self, booking_id: str, caller: User, rating: int, review: Optional[str] = None
    ) -> Booking:
        if not isinstance(rating, int) or rating < 1 or rating > 5:
            raise ValidationException("Rating must be between 1 and 5", code="INVALID_RATING")

        with self.transaction():
            booking = self._get_booking_or_404(booking_id)
            authorize(caller, Capability.REVIEW_BOOKING, booking)

            if booking.status != BookingStatus.COMPLETED.value:
                raise PolicyViolationException(
                    "Can only review completed bookings", code="BOOKING_NOT_COMPLETED"
                )
            if booking.rating is not None:
                raise PolicyViolationException(
                    "Booking already reviewed", code="ALREADY_RATED"
                )

            booking.rating = rating
            booking.review = review
            self.repository.flush()

        self.log_operation("add_review", booking_id=booking.id, rating=rating)
        return booking

    # Reads

    def get_booking(self, booking_id: str, caller: User) -> Booking:
        booking = self._get_booking_or_404(booking_id)
        authorize(caller, Capability.VIEW_BOOKING, booking)
        return booking

    def list_user_bookings(
        self,
        caller: User,
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Tuple[List[Booking], int]:
        authorize(caller, Capability.LIST_OWN_BOOKINGS)
        return self.repository.list_for_user(
            caller.id, status=status, offset=(page - 1) * per_page, limit=per_page
        )

    def list_station_owner_bookings(
        self,
        caller: User,
        station_id: Optional[str] = None,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Tuple[List[Booking], int]:
        """Bookings across the caller's stations, optionally narrowed to one."""
        authorize(caller, Capability.LIST_OWNED_STATIONS)
        owned = self.station_repository.get_owned_station_ids(caller.id)
        if station_id:
            if station_id not in owned:
                raise ForbiddenException(
                    "Access denied",
                    details={
                        "capability": Capability.VIEW_STATION_BOOKINGS.value,
                        "reason": "ownership",
                    },
                )
            owned = [station_id]
        return self.repository.list_for_stations(
            owned,
            status=status,
            payment_status=payment_status,
            offset=(page - 1) * per_page,
            limit=per_page,
        )

    def list_station_bookings(
        self,
        station_id: str,
        caller: User,
        page: int = 1,
        per_page: int = 10,
    ) -> Tuple[List[Booking], int]:
        station = self.station_repository.get_by_id(station_id, load_relationships=False)
        if not station:
            raise NotFoundException("Charging station not found", code="STATION_NOT_FOUND")
        authorize(caller, Capability.VIEW_STATION_BOOKINGS, station)
        return self.repository.list_for_stations(
            [station.id], offset=(page - 1) * per_page, limit=per_page
        )
