# backend/evcharge/repositories/__init__.py
"""
Repository Pattern Implementation

Key Components:
- BaseRepository: generic flush-only CRUD
- RepositoryFactory: construction seam used by services
- StationRepository: stations, row locks and blocked slots
- BookingRepository: bookings, overlap queries, pagination and revenue
- UserRepository: token subject lookup
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .station_repository import StationRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "RepositoryFactory",
    "StationRepository",
    "UserRepository",
]
