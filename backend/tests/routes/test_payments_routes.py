from fastapi import status
import pytest

PAYMENTS = "/api/v1/payments"


@pytest.fixture
def booking(ev_owner, station, make_booking, base_time):
    return make_booking(ev_owner, station, base_time)


def _intent(client, booking, headers):
    response = client.post(
        f"{PAYMENTS}/create-payment-intent", json={"booking_id": booking.id}, headers=headers
    )
    assert response.status_code == status.HTTP_200_OK
    return response.json()


class TestPaymentRoutes:
    def test_create_intent(self, client, booking, auth_headers_ev_owner) -> None:
        body = _intent(client, booking, auth_headers_ev_owner)

        assert body["amount"] == 1000
        assert body["currency"] == "inr"
        assert body["client_secret"]

    def test_create_intent_for_someone_elses_booking(
        self, client, booking, auth_headers_ev_owner_2
    ) -> None:
        response = client.post(
            f"{PAYMENTS}/create-payment-intent",
            json={"booking_id": booking.id},
            headers=auth_headers_ev_owner_2,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_provider_outage_is_502(self, client, fake_stripe, booking, auth_headers_ev_owner) -> None:
        fake_stripe.fail_with = "Stripe unavailable"

        response = client.post(
            f"{PAYMENTS}/create-payment-intent",
            json={"booking_id": booking.id},
            headers=auth_headers_ev_owner,
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["code"] == "PAYMENT_PROVIDER_ERROR"

    def test_confirm_success(
        self, db, client, fake_stripe, booking, station, auth_headers_ev_owner
    ) -> None:
        intent = _intent(client, booking, auth_headers_ev_owner)
        fake_stripe.set_status(intent["payment_intent_id"], "succeeded")

        response = client.post(
            f"{PAYMENTS}/confirm-payment",
            json={"booking_id": booking.id, "payment_intent_id": intent["payment_intent_id"]},
            headers=auth_headers_ev_owner,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["booking"]["payment_status"] == "completed"
        db.refresh(station)
        assert station.available_slots == 1

    def test_confirm_failure_is_402(
        self, client, fake_stripe, booking, auth_headers_ev_owner
    ) -> None:
        intent = _intent(client, booking, auth_headers_ev_owner)
        fake_stripe.set_status(intent["payment_intent_id"], "requires_payment_method")

        response = client.post(
            f"{PAYMENTS}/confirm-payment",
            json={"booking_id": booking.id, "payment_intent_id": intent["payment_intent_id"]},
            headers=auth_headers_ev_owner,
        )

        assert response.status_code == status.HTTP_402_PAYMENT_REQUIRED
        assert response.json()["code"] == "PAYMENT_FAILED"

        status_response = client.get(
            f"{PAYMENTS}/status/{booking.id}", headers=auth_headers_ev_owner
        )
        assert status_response.json()["payment_status"] == "failed"
        assert status_response.json()["stripe_status"] == "requires_payment_method"

    def test_refund(
        self,
        client,
        fake_stripe,
        booking,
        auth_headers_ev_owner,
        auth_headers_station_owner,
    ) -> None:
        intent = _intent(client, booking, auth_headers_ev_owner)
        fake_stripe.set_status(intent["payment_intent_id"], "succeeded")
        client.post(
            f"{PAYMENTS}/confirm-payment",
            json={"booking_id": booking.id, "payment_intent_id": intent["payment_intent_id"]},
            headers=auth_headers_ev_owner,
        )

        response = client.post(
            f"{PAYMENTS}/refund",
            json={"booking_id": booking.id, "reason": "Connector fault"},
            headers=auth_headers_station_owner,
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["amount"] == 10.0
        assert body["booking"]["status"] == "cancelled"
        assert body["booking"]["payment_status"] == "refunded"

    def test_refund_unpaid_booking(self, client, booking, auth_headers_station_owner) -> None:
        response = client.post(
            f"{PAYMENTS}/refund", json={"booking_id": booking.id}, headers=auth_headers_station_owner
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "PAYMENT_NOT_COMPLETED"

    def test_status_without_intent(self, client, booking, auth_headers_ev_owner) -> None:
        response = client.get(f"{PAYMENTS}/status/{booking.id}", headers=auth_headers_ev_owner)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["stripe_status"] == "none"
        assert response.json()["payment_intent_id"] == ""

    def test_station_history(
        self,
        client,
        station,
        ev_owner,
        make_booking,
        base_time,
        auth_headers_station_owner,
        auth_headers_station_owner_2,
    ) -> None:
        make_booking(ev_owner, station, base_time, payment_status="completed")
        make_booking(ev_owner, station, base_time, slot_number=2, payment_status="refunded")

        response = client.get(
            f"{PAYMENTS}/station/{station.id}/history", headers=auth_headers_station_owner
        )
        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert len(body["payments"]) == 2
        assert body["stats"] == {"total_revenue": 10.0, "total_bookings": 1}

        refunded = client.get(
            f"{PAYMENTS}/station/{station.id}/history",
            params={"status": "refunded"},
            headers=auth_headers_station_owner,
        )
        assert [p["payment_status"] for p in refunded.json()["payments"]] == ["refunded"]

        foreign = client.get(
            f"{PAYMENTS}/station/{station.id}/history", headers=auth_headers_station_owner_2
        )
        assert foreign.status_code == status.HTTP_403_FORBIDDEN
