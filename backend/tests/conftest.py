# backend/tests/conftest.py
"""
Pytest configuration for the EV charging API.

Every test runs against a fresh in-memory SQLite database. The Stripe
gateway is replaced by ``FakeStripeService`` so no network call is made.
"""

import os

# Set test configuration BEFORE any evcharge imports
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_CURRENCY"] = "inr"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
import itertools
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from evcharge.api.dependencies import get_db, get_stripe_service
from evcharge.auth import create_access_token
from evcharge.core.enums import UserRole
from evcharge.core.exceptions import PaymentProviderException
from evcharge.database import Base, SessionLocal, engine
from evcharge.main import app
from evcharge.models.booking import Booking
from evcharge.models.station import ChargingStation
from evcharge.models.user import User

# ============================================================================
# Payment provider double
# ============================================================================


class FakeStripeService:
    """In-memory stand-in for StripeService with the same call surface."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.intents: Dict[str, SimpleNamespace] = {}
        self.refunds: List[Dict[str, Any]] = []
        self.created: List[Dict[str, Any]] = []
        self.fail_with: Optional[str] = None

    def _maybe_fail(self) -> None:
        if self.fail_with:
            raise PaymentProviderException(self.fail_with)

    def create_payment_intent(
        self, *, amount: int, currency: str, metadata: Dict[str, str], description: str
    ) -> SimpleNamespace:
        self._maybe_fail()
        n = next(self._ids)
        intent = SimpleNamespace(
            id=f"pi_test_{n}",
            client_secret=f"pi_test_{n}_secret",
            status="requires_payment_method",
            amount=amount,
            currency=currency,
        )
        self.intents[intent.id] = intent
        self.created.append(
            {"amount": amount, "currency": currency, "metadata": metadata, "description": description}
        )
        return intent

    def retrieve_payment_intent(self, payment_intent_id: str) -> SimpleNamespace:
        self._maybe_fail()
        return self.intents[payment_intent_id]

    def create_refund(self, *, payment_intent_id: str, metadata: Dict[str, str]) -> SimpleNamespace:
        self._maybe_fail()
        intent = self.intents[payment_intent_id]
        self.refunds.append({"payment_intent_id": payment_intent_id, "metadata": metadata})
        return SimpleNamespace(
            id=f"re_test_{next(self._ids)}", amount=intent.amount, currency=intent.currency
        )

    def set_status(self, payment_intent_id: str, status: str) -> None:
        self.intents[payment_intent_id].status = status


# ============================================================================
# Database
# ============================================================================


@pytest.fixture(scope="function")
def db() -> Session:
    """Fresh schema and session per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


# ============================================================================
# Time helpers
# ============================================================================


@pytest.fixture
def base_time() -> datetime:
    """10:00 UTC two days from now, a window comfortably outside any cutoff."""
    start = datetime.now(timezone.utc) + timedelta(days=2)
    return start.replace(hour=10, minute=0, second=0, microsecond=0)


# ============================================================================
# Users and stations
# ============================================================================


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    counter = itertools.count(1)

    def _make(role: str = UserRole.EV_OWNER.value, **overrides: Any) -> User:
        n = next(counter)
        user = User(
            email=overrides.pop("email", f"{role}.{n}@example.com"),
            full_name=overrides.pop("full_name", f"{role.replace('_', ' ').title()} {n}"),
            role=role,
            is_active=overrides.pop("is_active", True),
            **overrides,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def ev_owner(make_user) -> User:
    return make_user(UserRole.EV_OWNER.value, full_name="Asha Driver")


@pytest.fixture
def ev_owner_2(make_user) -> User:
    return make_user(UserRole.EV_OWNER.value, full_name="Bala Driver")


@pytest.fixture
def station_owner(make_user) -> User:
    return make_user(UserRole.STATION_OWNER.value, full_name="Chitra Host")


@pytest.fixture
def station_owner_2(make_user) -> User:
    return make_user(UserRole.STATION_OWNER.value, full_name="Dev Host")


@pytest.fixture
def make_station(db: Session) -> Callable[..., ChargingStation]:
    def _make(owner: User, **overrides: Any) -> ChargingStation:
        total_slots = overrides.pop("total_slots", 2)
        station = ChargingStation(
            owner_id=owner.id,
            name=overrides.pop("name", "Central Charging Hub"),
            address=overrides.pop("address", "12 MG Road, Bengaluru"),
            latitude=overrides.pop("latitude", 12.9716),
            longitude=overrides.pop("longitude", 77.5946),
            total_slots=total_slots,
            available_slots=overrides.pop("available_slots", total_slots),
            charging_rate=overrides.pop("charging_rate", Decimal("10.00")),
            **overrides,
        )
        db.add(station)
        db.commit()
        return station

    return _make


@pytest.fixture
def station(make_station, station_owner) -> ChargingStation:
    """Two slots at 10 per hour."""
    return make_station(station_owner)


@pytest.fixture
def make_booking(db: Session) -> Callable[..., Booking]:
    """Insert a booking row directly, bypassing the service checks."""

    def _make(
        user: User,
        station: ChargingStation,
        start: datetime,
        hours: float = 1.0,
        slot_number: int = 1,
        **overrides: Any,
    ) -> Booking:
        booking = Booking(
            user_id=user.id,
            station_id=station.id,
            slot_number=slot_number,
            start_time=start,
            end_time=start + timedelta(hours=hours),
            duration=hours,
            total_amount=Decimal(str(hours)) * Decimal(str(station.charging_rate)),
            **overrides,
        )
        db.add(booking)
        db.commit()
        return booking

    return _make


# ============================================================================
# HTTP
# ============================================================================


@pytest.fixture
def fake_stripe() -> FakeStripeService:
    return FakeStripeService()


@pytest.fixture
def client(db: Session, fake_stripe: FakeStripeService) -> TestClient:
    """Test client bound to the per-test session and the fake Stripe gateway."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_service] = lambda: fake_stripe

    # Don't use context manager - lifespan would touch the default engine
    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


def auth_headers_for(user: User) -> Dict[str, str]:
    token = create_access_token(data={"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_auth_headers() -> Callable[[User], Dict[str, str]]:
    return auth_headers_for


@pytest.fixture
def auth_headers_ev_owner(ev_owner: User) -> Dict[str, str]:
    return auth_headers_for(ev_owner)


@pytest.fixture
def auth_headers_ev_owner_2(ev_owner_2: User) -> Dict[str, str]:
    return auth_headers_for(ev_owner_2)


@pytest.fixture
def auth_headers_station_owner(station_owner: User) -> Dict[str, str]:
    return auth_headers_for(station_owner)


@pytest.fixture
def auth_headers_station_owner_2(station_owner_2: User) -> Dict[str, str]:
    return auth_headers_for(station_owner_2)
