# backend/evcharge/repositories/booking_repository.py
"""
Booking Repository

All booking queries, including the interval-overlap lookups used by the
slot availability checker. Overlap is the strict half-open test
``existing.start < requested.end AND existing.end > requested.start``.
"""

from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.enums import ACTIVE_BOOKING_STATUSES, BookingStatus, PaymentStatus
from ..core.exceptions import RepositoryException
from ..models.booking import Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def create(self, **kwargs: Any) -> Booking:
        """Create a booking, exposing integrity errors for conflict handling."""
        try:
            return super().create(**kwargs)
        except RepositoryException as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise exc.__cause__
            raise

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Booking.station))

    # Overlap queries

    def find_overlapping_active(
        self,
        station_id: str,
        start: datetime,
        end: datetime,
        *,
        slot_number: Optional[int] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Active bookings on a station whose window intersects ``[start, end)``.

        Args:
            station_id: Station to check
            start: Requested window start (UTC)
            end: Requested window end (UTC)
            slot_number: Restrict to one slot when given
            exclude_booking_id: Ignore this booking (re-checks of an existing row)

        Returns:
            Overlapping bookings ordered by start time
        """
        query = self.db.query(Booking).filter(
            Booking.station_id == station_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_time < end,
            Booking.end_time > start,
        )
        if slot_number is not None:
            query = query.filter(Booking.slot_number == slot_number)
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return self._execute_query(query.order_by(Booking.start_time))

    def count_active_for_station(self, station_id: str) -> int:
        try:
            return (
                self.db.query(func.count(Booking.id))
                .filter(
                    Booking.station_id == station_id,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                )
                .scalar()
                or 0
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting active bookings for {station_id}: {str(e)}")
            raise RepositoryException(f"Failed to count active bookings: {str(e)}")

    # Lookups

    def get_for_user_by_intent(
        self, booking_id: str, user_id: str, payment_intent_id: str
    ) -> Optional[Booking]:
        query = self._apply_eager_loading(self.db.query(Booking)).filter(
            Booking.id == booking_id,
            Booking.user_id == user_id,
            Booking.payment_intent_id == payment_intent_id,
        )
        try:
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting booking {booking_id} by intent: {str(e)}")
            raise RepositoryException(f"Failed to retrieve booking: {str(e)}")

    # Listing

    def list_for_user(
        self,
        user_id: str,
        *,
        status: Optional[str] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Booking], int]:
        """Page of a user's bookings, newest first, with the unpaged total."""
        query = self.db.query(Booking).filter(Booking.user_id == user_id)
        if status:
            query = query.filter(Booking.status == status)
        return self._paginate(query, offset=offset, limit=limit)

    def list_for_stations(
        self,
        station_ids: Iterable[str],
        *,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Booking], int]:
        """Page of bookings across a set of stations, newest first."""
        ids = list(station_ids)
        if not ids:
            return [], 0
        query = self.db.query(Booking).filter(Booking.station_id.in_(ids))
        if status:
            query = query.filter(Booking.status == status)
        if payment_status:
            query = query.filter(Booking.payment_status == payment_status)
        return self._paginate(query, offset=offset, limit=limit)

    def _paginate(self, query: Query, *, offset: int, limit: int) -> Tuple[List[Booking], int]:
        try:
            total = query.count()
            items = (
                query.options(joinedload(Booking.station), joinedload(Booking.user))
                .order_by(Booking.created_at.desc(), Booking.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return items, total
        except SQLAlchemyError as e:
            self.logger.error(f"Error paginating bookings: {str(e)}")
            raise RepositoryException(f"Failed to list bookings: {str(e)}")

    # Statistics

    def get_station_counts(self, station_id: str) -> dict[str, int]:
        """Booking counts for a station: total, completed, active."""
        try:
            rows = (
                self.db.query(Booking.status, func.count(Booking.id))
                .filter(Booking.station_id == station_id)
                .group_by(Booking.status)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting bookings for {station_id}: {str(e)}")
            raise RepositoryException(f"Failed to count bookings: {str(e)}")
        by_status = {status: int(count) for status, count in rows}
        return {
            "total": sum(by_status.values()),
            "completed": by_status.get(BookingStatus.COMPLETED.value, 0),
            "active": sum(by_status.get(s, 0) for s in ACTIVE_BOOKING_STATUSES),
        }

    def sum_revenue(
        self,
        station_id: str,
        *,
        booking_status: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> Tuple[Decimal, int]:
        """Sum of ``total_amount`` over completed payments, and the row count."""
        query = self.db.query(
            func.coalesce(func.sum(Booking.total_amount), 0), func.count(Booking.id)
        ).filter(
            Booking.station_id == station_id,
            Booking.payment_status == PaymentStatus.COMPLETED.value,
        )
        if booking_status:
            query = query.filter(Booking.status == booking_status)
        if since is not None:
            query = query.filter(Booking.created_at >= since)
        try:
            total, count = query.one()
        except SQLAlchemyError as e:
            self.logger.error(f"Error summing revenue for {station_id}: {str(e)}")
            raise RepositoryException(f"Failed to compute revenue: {str(e)}")
        return Decimal(str(total or 0)), int(count or 0)

    def list_for_station_history(
        self, station_id: str, *, payment_status: Optional[str] = None
    ) -> List[Booking]:
        query = (
            self.db.query(Booking)
            .options(joinedload(Booking.user))
            .filter(Booking.station_id == station_id)
        )
        if payment_status:
            query = query.filter(Booking.payment_status == payment_status)
        return self._execute_query(query.order_by(Booking.created_at.desc(), Booking.id.desc()))
