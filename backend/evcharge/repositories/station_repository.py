# backend/evcharge/repositories/station_repository.py
"""
Station Repository

Queries for the station registry and its blocked-slot calendar, including
the row lock that serializes booking creation per station.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, selectinload

from ..core.exceptions import RepositoryException
from ..models.station import ChargingStation, StationBlockedSlot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class StationRepository(BaseRepository[ChargingStation]):
    """Repository for charging stations and blocked slots."""

    def __init__(self, db: Session):
        super().__init__(db, ChargingStation)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(selectinload(ChargingStation.blocked_slots))

    def get_for_update(self, station_id: str) -> Optional[ChargingStation]:
        """
        Load a station with a row-level write lock.

        Held until the surrounding transaction ends. SQLite does not render
        FOR UPDATE and relies on its database write lock instead.
        """
        try:
            return (
                self.db.query(ChargingStation)
                .filter(ChargingStation.id == station_id)
                .with_for_update()
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking station {station_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock station: {str(e)}")

    def list_active(self) -> List[ChargingStation]:
        query = (
            self.db.query(ChargingStation)
            .filter(ChargingStation.is_active.is_(True))
            .order_by(ChargingStation.created_at.desc(), ChargingStation.id)
        )
        return self._execute_query(query)

    def list_by_owner(self, owner_id: str) -> List[ChargingStation]:
        query = (
            self._apply_eager_loading(self.db.query(ChargingStation))
            .filter(ChargingStation.owner_id == owner_id)
            .order_by(ChargingStation.created_at.desc(), ChargingStation.id)
        )
        return self._execute_query(query)

    def get_owned_station_ids(self, owner_id: str) -> List[str]:
        try:
            rows = (
                self.db.query(ChargingStation.id)
                .filter(ChargingStation.owner_id == owner_id)
                .all()
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing station ids for owner {owner_id}: {str(e)}")
            raise RepositoryException(f"Failed to list owned stations: {str(e)}")

    # Blocked slots

    def find_overlapping_blocks(
        self,
        station_id: str,
        start: datetime,
        end: datetime,
        slot_number: Optional[int] = None,
    ) -> List[StationBlockedSlot]:
        """Blocked windows intersecting ``[start, end)``, optionally for one slot."""
        query = self.db.query(StationBlockedSlot).filter(
            StationBlockedSlot.station_id == station_id,
            StationBlockedSlot.start_time < end,
            StationBlockedSlot.end_time > start,
        )
        if slot_number is not None:
            query = query.filter(StationBlockedSlot.slot_number == slot_number)
        return self._execute_query(query)

    def add_blocked_slot(
        self,
        station: ChargingStation,
        *,
        slot_number: int,
        start_time: datetime,
        end_time: datetime,
        reason: str,
    ) -> StationBlockedSlot:
        try:
            blocked = StationBlockedSlot(
                slot_number=slot_number,
                start_time=start_time,
                end_time=end_time,
                reason=reason,
            )
            station.blocked_slots.append(blocked)
            self.db.flush()
            return blocked
        except SQLAlchemyError as e:
            self.logger.error(f"Error blocking slot on station {station.id}: {str(e)}")
            raise RepositoryException(f"Failed to add blocked slot: {str(e)}") from e
