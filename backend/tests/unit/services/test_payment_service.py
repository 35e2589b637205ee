from datetime import timedelta
from decimal import Decimal

import pytest

from evcharge.core.enums import BookingStatus, PaymentStatus
from evcharge.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    PaymentFailedException,
    PaymentProviderException,
    ValidationException,
)
from evcharge.services.payment_service import PaymentService, to_minor_units


@pytest.fixture
def service(db, fake_stripe) -> PaymentService:
    return PaymentService(db, stripe_service=fake_stripe)


@pytest.fixture
def booking(ev_owner, station, make_booking, base_time):
    return make_booking(ev_owner, station, base_time)


def _paid(service, fake_stripe, booking, caller):
    """Run an intent through to a succeeded confirmation."""
    intent = service.create_intent(booking.id, caller)
    fake_stripe.set_status(intent["payment_intent_id"], "succeeded")
    return service.confirm_payment(booking.id, intent["payment_intent_id"], caller)


@pytest.mark.parametrize(
    "amount, expected",
    [
        (Decimal("10.00"), 1000),
        (Decimal("3.63"), 363),
        ("0.005", 1),
        (15, 1500),
    ],
)
def test_to_minor_units(amount, expected) -> None:
    assert to_minor_units(amount) == expected


class TestCreateIntent:
    def test_creates_intent_and_records_it(
        self, service, fake_stripe, booking, ev_owner, station
    ) -> None:
        result = service.create_intent(booking.id, ev_owner)

        assert result["amount"] == 1000
        assert result["currency"] == "inr"
        assert result["client_secret"].startswith(result["payment_intent_id"])
        assert booking.payment_intent_id == result["payment_intent_id"]
        assert fake_stripe.created[0]["metadata"] == {
            "booking_id": booking.id,
            "user_id": ev_owner.id,
            "station_id": station.id,
        }
        assert fake_stripe.created[0]["description"] == f"EV Charging at {station.name}"

    def test_new_intent_replaces_previous_one(self, service, booking, ev_owner) -> None:
        first = service.create_intent(booking.id, ev_owner)
        second = service.create_intent(booking.id, ev_owner)

        assert first["payment_intent_id"] != second["payment_intent_id"]
        assert booking.payment_intent_id == second["payment_intent_id"]

    def test_only_booking_owner_may_pay(self, service, booking, ev_owner_2, station_owner) -> None:
        with pytest.raises(ForbiddenException):
            service.create_intent(booking.id, ev_owner_2)
        with pytest.raises(ForbiddenException):
            service.create_intent(booking.id, station_owner)

    def test_already_paid_booking(self, db, service, booking, ev_owner) -> None:
        booking.payment_status = PaymentStatus.COMPLETED.value
        db.commit()

        with pytest.raises(ValidationException) as exc_info:
            service.create_intent(booking.id, ev_owner)
        assert exc_info.value.code == "PAYMENT_ALREADY_COMPLETED"

    def test_cancelled_booking_is_not_payable(self, db, service, booking, ev_owner) -> None:
        booking.status = BookingStatus.CANCELLED.value
        db.commit()

        with pytest.raises(ValidationException) as exc_info:
            service.create_intent(booking.id, ev_owner)
        assert exc_info.value.code == "BOOKING_NOT_PAYABLE"

    def test_provider_failure_leaves_booking_untouched(
        self, db, service, fake_stripe, booking, ev_owner
    ) -> None:
        fake_stripe.fail_with = "Stripe unavailable"

        with pytest.raises(PaymentProviderException):
            service.create_intent(booking.id, ev_owner)

        db.refresh(booking)
        assert booking.payment_intent_id == ""

    def test_unknown_booking(self, service, ev_owner) -> None:
        with pytest.raises(NotFoundException):
            service.create_intent("missing", ev_owner)


class TestConfirmPayment:
    def test_success_completes_payment_and_takes_a_slot(
        self, db, service, fake_stripe, booking, ev_owner, station
    ) -> None:
        confirmed = _paid(service, fake_stripe, booking, ev_owner)

        assert confirmed.payment_status == PaymentStatus.COMPLETED.value
        db.refresh(station)
        assert station.available_slots == 1

    def test_repeat_confirmation_does_not_decrement_twice(
        self, db, service, fake_stripe, booking, ev_owner, station
    ) -> None:
        _paid(service, fake_stripe, booking, ev_owner)
        service.confirm_payment(booking.id, booking.payment_intent_id, ev_owner)

        db.refresh(station)
        assert station.available_slots == 1

    def test_counter_floors_at_zero(
        self, db, service, fake_stripe, ev_owner, make_station, station_owner, make_booking, base_time
    ) -> None:
        station = make_station(station_owner, total_slots=1, available_slots=0)
        booking = make_booking(ev_owner, station, base_time)

        _paid(service, fake_stripe, booking, ev_owner)

        db.refresh(station)
        assert station.available_slots == 0

    @pytest.mark.parametrize("provider_status", ["requires_payment_method", "canceled"])
    def test_unsuccessful_intent_commits_failed_status(
        self, db, service, fake_stripe, booking, ev_owner, station, provider_status
    ) -> None:
        intent = service.create_intent(booking.id, ev_owner)
        fake_stripe.set_status(intent["payment_intent_id"], provider_status)

        with pytest.raises(PaymentFailedException) as exc_info:
            service.confirm_payment(booking.id, intent["payment_intent_id"], ev_owner)

        assert exc_info.value.details["status"] == provider_status
        db.expire_all()
        db.refresh(booking)
        db.refresh(station)
        assert booking.payment_status == PaymentStatus.FAILED.value
        assert station.available_slots == 2

    def test_mismatched_intent_is_not_found(self, service, booking, ev_owner) -> None:
        service.create_intent(booking.id, ev_owner)

        with pytest.raises(NotFoundException):
            service.confirm_payment(booking.id, "pi_someone_else", ev_owner)

    def test_other_user_cannot_confirm(self, service, booking, ev_owner, ev_owner_2) -> None:
        intent = service.create_intent(booking.id, ev_owner)

        with pytest.raises(NotFoundException):
            service.confirm_payment(booking.id, intent["payment_intent_id"], ev_owner_2)


class TestCashOnDelivery:
    def test_completed_cod_takes_a_slot_once(
        self, db, service, booking, ev_owner, station
    ) -> None:
        service.set_cod_status(booking.id, ev_owner, "completed", "cod")
        service.set_cod_status(booking.id, ev_owner, "completed", "cod")

        db.refresh(station)
        assert booking.payment_status == PaymentStatus.COMPLETED.value
        assert station.available_slots == 1

    def test_failed_cod_leaves_counter(self, db, service, booking, ev_owner, station) -> None:
        service.set_cod_status(booking.id, ev_owner, "failed", "cod")

        db.refresh(station)
        assert booking.payment_status == PaymentStatus.FAILED.value
        assert station.available_slots == 2

    def test_only_cod_method(self, service, booking, ev_owner) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.set_cod_status(booking.id, ev_owner, "completed", "online")
        assert exc_info.value.code == "INVALID_PAYMENT_METHOD"

    def test_refunded_is_not_a_cod_status(self, service, booking, ev_owner) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.set_cod_status(booking.id, ev_owner, "refunded", "cod")
        assert exc_info.value.code == "INVALID_PAYMENT_STATUS"

    def test_cancelled_booking_rejects_cod(self, db, service, booking, ev_owner, station) -> None:
        booking.status = BookingStatus.CANCELLED.value
        db.commit()

        with pytest.raises(ValidationException) as exc_info:
            service.set_cod_status(booking.id, ev_owner, "completed", "cod")

        assert exc_info.value.code == "BOOKING_NOT_PAYABLE"
        db.refresh(station)
        assert station.available_slots == 2

    def test_station_owner_cannot_set_cod(self, service, booking, station_owner) -> None:
        with pytest.raises(ForbiddenException):
            service.set_cod_status(booking.id, station_owner, "completed", "cod")


class TestRefund:
    def test_refund_cancels_booking_and_returns_slot(
        self, db, service, fake_stripe, booking, ev_owner, station_owner, station
    ) -> None:
        _paid(service, fake_stripe, booking, ev_owner)

        result = service.refund(booking.id, station_owner, reason="Charger fault")

        assert result["amount"] == 10.0
        assert result["currency"] == "inr"
        assert result["refund_id"].startswith("re_")
        assert result["booking"].payment_status == PaymentStatus.REFUNDED.value
        assert result["booking"].status == BookingStatus.CANCELLED.value
        assert fake_stripe.refunds[0]["metadata"]["reason"] == "Charger fault"
        db.refresh(station)
        assert station.available_slots == 2

    def test_counter_capped_at_total(
        self, db, service, fake_stripe, booking, ev_owner, station_owner, station
    ) -> None:
        _paid(service, fake_stripe, booking, ev_owner)
        station.available_slots = station.total_slots
        db.commit()

        service.refund(booking.id, station_owner)

        db.refresh(station)
        assert station.available_slots == station.total_slots

    def test_refund_requires_completed_payment(self, service, booking, station_owner) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.refund(booking.id, station_owner)
        assert exc_info.value.code == "PAYMENT_NOT_COMPLETED"

    def test_cod_payment_without_intent(self, service, booking, ev_owner, station_owner) -> None:
        service.set_cod_status(booking.id, ev_owner, "completed", "cod")

        with pytest.raises(ValidationException) as exc_info:
            service.refund(booking.id, station_owner)
        assert exc_info.value.code == "PAYMENT_INTENT_MISSING"

    def test_only_station_owner_refunds(
        self, service, fake_stripe, booking, ev_owner, station_owner_2
    ) -> None:
        _paid(service, fake_stripe, booking, ev_owner)

        with pytest.raises(ForbiddenException):
            service.refund(booking.id, ev_owner)
        with pytest.raises(ForbiddenException):
            service.refund(booking.id, station_owner_2)

    def test_refunded_booking_cannot_be_confirmed_again(
        self, db, service, fake_stripe, booking, ev_owner, station_owner, station
    ) -> None:
        _paid(service, fake_stripe, booking, ev_owner)
        service.refund(booking.id, station_owner)

        # Stripe keeps reporting a refunded intent as succeeded
        with pytest.raises(ValidationException) as exc_info:
            service.confirm_payment(booking.id, booking.payment_intent_id, ev_owner)

        assert exc_info.value.code == "BOOKING_NOT_PAYABLE"
        db.expire_all()
        db.refresh(booking)
        db.refresh(station)
        assert booking.status == BookingStatus.CANCELLED.value
        assert booking.payment_status == PaymentStatus.REFUNDED.value
        assert station.available_slots == 2

        with pytest.raises(ValidationException) as exc_info:
            service.refund(booking.id, station_owner)
        assert exc_info.value.code == "PAYMENT_NOT_COMPLETED"
        assert len(fake_stripe.refunds) == 1

    @pytest.mark.parametrize("cod_status", ["completed", "pending", "failed"])
    def test_refunded_booking_ignores_cod_updates(
        self, db, service, fake_stripe, booking, ev_owner, station_owner, station, cod_status
    ) -> None:
        _paid(service, fake_stripe, booking, ev_owner)
        service.refund(booking.id, station_owner)

        with pytest.raises(ValidationException) as exc_info:
            service.set_cod_status(booking.id, ev_owner, cod_status, "cod")

        assert exc_info.value.code == "BOOKING_NOT_PAYABLE"
        db.expire_all()
        db.refresh(booking)
        db.refresh(station)
        assert booking.payment_status == PaymentStatus.REFUNDED.value
        assert station.available_slots == 2

    def test_provider_failure_changes_nothing(
        self, db, service, fake_stripe, booking, ev_owner, station_owner, station
    ) -> None:
        _paid(service, fake_stripe, booking, ev_owner)
        fake_stripe.fail_with = "Refund declined"

        with pytest.raises(PaymentProviderException):
            service.refund(booking.id, station_owner)

        db.refresh(booking)
        db.refresh(station)
        assert booking.payment_status == PaymentStatus.COMPLETED.value
        assert booking.status == BookingStatus.BOOKED.value
        assert station.available_slots == 1


class TestReads:
    def test_status_without_intent(self, service, booking, ev_owner) -> None:
        result = service.get_status(booking.id, ev_owner)

        assert result["stripe_status"] == "none"
        assert result["payment_status"] == "pending"
        assert result["amount"] == 10.0

    def test_status_reports_provider_view(self, service, fake_stripe, booking, ev_owner) -> None:
        intent = service.create_intent(booking.id, ev_owner)
        fake_stripe.set_status(intent["payment_intent_id"], "processing")

        result = service.get_status(booking.id, ev_owner)
        assert result["stripe_status"] == "processing"
        # Reading never reconciles
        assert result["payment_status"] == "pending"

    def test_status_when_provider_unreachable(
        self, service, fake_stripe, booking, ev_owner
    ) -> None:
        service.create_intent(booking.id, ev_owner)
        fake_stripe.fail_with = "timeout"

        assert service.get_status(booking.id, ev_owner)["stripe_status"] == "unknown"

    def test_payment_history_and_revenue(
        self,
        service,
        ev_owner,
        ev_owner_2,
        station_owner,
        station,
        make_booking,
        base_time,
    ) -> None:
        make_booking(ev_owner, station, base_time, payment_status="completed")
        make_booking(
            ev_owner_2, station, base_time + timedelta(hours=3), hours=2, payment_status="completed"
        )
        make_booking(ev_owner, station, base_time, slot_number=2, payment_status="failed")

        history = service.station_payment_history(station.id, station_owner)
        assert len(history["payments"]) == 3
        assert history["stats"] == {"total_revenue": 30.0, "total_bookings": 2}

        failed = service.station_payment_history(station.id, station_owner, payment_status="failed")
        assert [b.payment_status for b in failed["payments"]] == ["failed"]

    def test_payment_history_requires_ownership(self, service, station, station_owner_2) -> None:
        with pytest.raises(ForbiddenException):
            service.station_payment_history(station.id, station_owner_2)
