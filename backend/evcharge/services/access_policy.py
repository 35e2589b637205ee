# backend/evcharge/services/access_policy.py
"""
Access policy for stations and bookings.

Every role and ownership check in the service layer goes through
``authorize(caller, capability, resource)``. A capability names the role
allowed to attempt it and the relation the caller must have to the resource:

    CREATE_BOOKING   ev_owner       (no resource)
    CANCEL_BOOKING   ev_owner       owns the booking
    START_CHARGING   station_owner  owns the booking's station
    VIEW_BOOKING     either role    party to the booking
    MANAGE_STATION   station_owner  owns the station

Role failures and ownership failures both raise ForbiddenException, with
distinct messages and a ``reason`` detail.
"""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, FrozenSet, Optional

from ..core.enums import Capability, UserRole
from ..core.exceptions import ForbiddenException

logger = logging.getLogger(__name__)

EV_OWNER = UserRole.EV_OWNER.value
STATION_OWNER = UserRole.STATION_OWNER.value


class Relation(str, Enum):
    """How the caller must relate to the resource."""

    NONE = "none"
    STATION_OWNER = "station_owner"  # resource is a station the caller owns
    BOOKING_OWNER = "booking_owner"  # caller made the booking
    BOOKING_STATION_OWNER = "booking_station_owner"  # caller owns the booking's station
    BOOKING_PARTY = "booking_party"  # either of the two above, decided by role


@dataclass(frozen=True)
class Rule:
    roles: FrozenSet[str]
    relation: Relation


def _rule(relation: Relation, *roles: str) -> Rule:
    return Rule(roles=frozenset(roles), relation=relation)


RULES: dict[Capability, Rule] = {
    Capability.CREATE_STATION: _rule(Relation.NONE, STATION_OWNER),
    Capability.LIST_OWNED_STATIONS: _rule(Relation.NONE, STATION_OWNER),
    Capability.MANAGE_STATION: _rule(Relation.STATION_OWNER, STATION_OWNER),
    Capability.VIEW_STATION_BOOKINGS: _rule(Relation.STATION_OWNER, STATION_OWNER),
    Capability.CREATE_BOOKING: _rule(Relation.NONE, EV_OWNER),
    Capability.LIST_OWN_BOOKINGS: _rule(Relation.NONE, EV_OWNER),
    Capability.VIEW_BOOKING: _rule(Relation.BOOKING_PARTY, EV_OWNER, STATION_OWNER),
    Capability.START_CHARGING: _rule(Relation.BOOKING_STATION_OWNER, STATION_OWNER),
    Capability.COMPLETE_CHARGING: _rule(Relation.BOOKING_STATION_OWNER, STATION_OWNER),
    Capability.CANCEL_BOOKING: _rule(Relation.BOOKING_OWNER, EV_OWNER),
    Capability.REVIEW_BOOKING: _rule(Relation.BOOKING_OWNER, EV_OWNER),
    Capability.PAY_BOOKING: _rule(Relation.BOOKING_OWNER, EV_OWNER),
    Capability.REFUND_BOOKING: _rule(Relation.BOOKING_STATION_OWNER, STATION_OWNER),
}

_ROLE_LABELS = {EV_OWNER: "EV owners", STATION_OWNER: "Station owners"}


def _role_of(caller: Any) -> Optional[str]:
    role = getattr(caller, "role", None)
    return role.value if isinstance(role, UserRole) else role


def _station_owner_id(booking: Any) -> Optional[str]:
    station = getattr(booking, "station", None)
    return getattr(station, "owner_id", None)


def _owns(caller: Any, relation: Relation, resource: Any) -> bool:
    caller_id = getattr(caller, "id", None)
    if relation is Relation.NONE:
        return True
    if resource is None:
        raise ValueError(f"Relation {relation.value} requires a resource")
    if relation is Relation.STATION_OWNER:
        return resource.owner_id == caller_id
    if relation is Relation.BOOKING_OWNER:
        return resource.user_id == caller_id
    if relation is Relation.BOOKING_STATION_OWNER:
        return _station_owner_id(resource) == caller_id
    # BOOKING_PARTY
    if _role_of(caller) == EV_OWNER:
        return resource.user_id == caller_id
    return _station_owner_id(resource) == caller_id


def _denial_reason(caller: Any, capability: Capability, resource: Any) -> Optional[str]:
    rule = RULES[capability]
    if caller is None or _role_of(caller) not in rule.roles:
        return "role"
    if not _owns(caller, rule.relation, resource):
        return "ownership"
    return None


def is_allowed(caller: Any, capability: Capability, resource: Any = None) -> bool:
    """Return whether ``caller`` may perform ``capability`` on ``resource``."""
    return _denial_reason(caller, capability, resource) is None


def authorize(caller: Any, capability: Capability, resource: Any = None) -> None:
    """
    Raise ForbiddenException unless ``caller`` may perform ``capability``.

    Args:
        caller: Authenticated user (needs ``id`` and ``role``)
        capability: Action being attempted
        resource: Station or booking the action targets, when the rule has a relation
    """
    reason = _denial_reason(caller, capability, resource)
    if reason is None:
        return

    logger.info(
        "access_denied",
        extra={
            "capability": capability.value,
            "reason": reason,
            "caller_id": getattr(caller, "id", None),
            "resource_id": getattr(resource, "id", None),
        },
    )
    if reason == "role":
        roles = RULES[capability].roles
        label = " or ".join(sorted(_ROLE_LABELS[r] for r in roles))
        raise ForbiddenException(
            f"Access denied. {label} only.",
            details={"capability": capability.value, "reason": reason},
        )
    raise ForbiddenException(
        "Access denied",
        details={"capability": capability.value, "reason": reason},
    )
