# backend/evcharge/models/user.py
"""
User model for the EV charging marketplace.

Accounts are provisioned by the identity service; this service only stores
the fields it needs to authorize requests and attribute bookings.
"""

import logging

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import UserRole
from ..database import Base

logger = logging.getLogger(__name__)


class User(Base):
    """
    A marketplace participant.

    Attributes:
        id: ULID primary key
        email: Unique email address, used as the JWT subject
        full_name: Display name
        role: Either ``ev_owner`` or ``station_owner``
        is_active: Whether the account may act

    Relationships:
        stations: Stations owned (station owners only)
        bookings: Bookings made (EV owners only)
    """

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.EV_OWNER.value)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    stations = relationship("ChargingStation", back_populates="owner")
    bookings = relationship("Booking", back_populates="user")

    __table_args__ = (
        CheckConstraint("role IN ('ev_owner', 'station_owner')", name="ck_users_role"),
    )

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"
