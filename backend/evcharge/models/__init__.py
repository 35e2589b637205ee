"""
Database models for the EV charging marketplace.

- User: marketplace participants (EV owners and station owners)
- ChargingStation / StationBlockedSlot: station registry and maintenance windows
- Booking: slot reservations with payment state
"""

from .booking import Booking
from .station import ChargingStation, StationBlockedSlot
from .user import User

__all__ = ["Booking", "ChargingStation", "StationBlockedSlot", "User"]
