# backend/evcharge/services/payment_service.py
"""
Payment Reconciliation service.

Ties bookings to Stripe PaymentIntents and keeps the local payment status
and the station's available-slot display counter in step with what the
provider reports. Cash-on-delivery status updates come from the EV owner.

Provider calls happen before any local write, so a provider failure leaves
the booking untouched. The one exception is a confirm that the provider
reports as unsuccessful: the failed status is committed before the error is
raised.
"""

from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BookingStatus, Capability, PaymentMethod, PaymentStatus
from ..core.exceptions import (
    NotFoundException,
    PaymentFailedException,
    PaymentProviderException,
    ValidationException,
)
from ..models.booking import Booking
from ..models.station import ChargingStation
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .access_policy import authorize
from .base import BaseService
from .stripe_service import StripeService

logger = logging.getLogger(__name__)

STRIPE_SUCCEEDED = "succeeded"
COD_STATUSES = (
    PaymentStatus.PENDING.value,
    PaymentStatus.COMPLETED.value,
    PaymentStatus.FAILED.value,
)
DEFAULT_REFUND_REASON = "Station owner refund"


def to_minor_units(amount: Any) -> int:
    """Major currency units to the provider's integer minor units."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentService(BaseService):
    """Online (Stripe) and cash-on-delivery payment handling for bookings."""

    def __init__(
        self,
        db: Session,
        stripe_service: Optional[StripeService] = None,
        repository: Optional[Any] = None,
        station_repository: Optional[Any] = None,
    ):
        super().__init__(db)
        self.stripe_service = stripe_service or StripeService()
        self.repository = repository or RepositoryFactory.create_booking_repository(db)
        self.station_repository = station_repository or RepositoryFactory.create_station_repository(
            db
        )

    def _get_booking_or_404(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        return booking

    @staticmethod
    def _ensure_open_for_payment(booking: Booking) -> None:
        """Cancelled or refunded bookings take no further payment updates."""
        if (
            booking.status == BookingStatus.CANCELLED.value
            or booking.payment_status == PaymentStatus.REFUNDED.value
        ):
            raise ValidationException(
                f"Cannot update payment for a booking that is {booking.status} "
                f"with payment {booking.payment_status}",
                code="BOOKING_NOT_PAYABLE",
            )

    def _adjust_available_slots(self, station_id: str, direction: str) -> None:
        """Move the station's display counter by one under the station row lock."""
        station: Optional[ChargingStation] = self.station_repository.get_for_update(station_id)
        if station is None:
            return
        before = int(station.available_slots or 0)
        if direction == "decrement":
            after = station.decrement_available_slots()
        else:
            after = station.increment_available_slots()
        clamped = after == before
        prometheus_metrics.record_slot_adjustment(direction, clamped)
        self.log_operation(
            "adjust_available_slots",
            station_id=station_id,
            direction=direction,
            available_before=before,
            available_after=after,
            clamped=clamped,
        )

    # Online payments

    @BaseService.measure_operation("create_payment_intent")
    def create_intent(self, booking_id: str, caller: User) -> Dict[str, Any]:
        """
        Create a Stripe PaymentIntent for a booked reservation.

        Returns:
            client_secret, payment_intent_id, amount (minor units) and currency
        """
        booking = self._get_booking_or_404(booking_id)
        authorize(caller, Capability.PAY_BOOKING, booking)

        if booking.payment_status == PaymentStatus.COMPLETED.value:
            raise ValidationException("Payment already completed", code="PAYMENT_ALREADY_COMPLETED")
        if booking.status != BookingStatus.BOOKED.value:
            raise ValidationException(
                f"Cannot pay for a booking that is {booking.status}", code="BOOKING_NOT_PAYABLE"
            )

        amount = to_minor_units(booking.total_amount)
        currency = settings.stripe_currency
        station_name = booking.station.name if booking.station is not None else ""
        intent = self.stripe_service.create_payment_intent(
            amount=amount,
            currency=currency,
            metadata={
                "booking_id": booking.id,
                "user_id": caller.id,
                "station_id": booking.station_id,
            },
            description=f"EV Charging at {station_name}",
        )

        with self.transaction():
            booking.payment_intent_id = intent.id
            self.repository.flush()

        prometheus_metrics.record_payment_event(PaymentMethod.ONLINE.value, "intent_created")
        self.log_operation(
            "create_payment_intent", booking_id=booking.id, payment_intent_id=intent.id
        )
        return {
            "client_secret": intent.client_secret,
            "payment_intent_id": intent.id,
            "amount": amount,
            "currency": currency,
        }

    @BaseService.measure_operation("confirm_payment")
    def confirm_payment(self, booking_id: str, payment_intent_id: str, caller: User) -> Booking:
        """
        Reconcile a booking with its PaymentIntent.

        On ``succeeded`` the payment is completed and the station counter
        drops by one (floored at 0). Any other provider status commits
        payment_status failed and raises PaymentFailedException.
        """
        booking = self.repository.get_for_user_by_intent(booking_id, caller.id, payment_intent_id)
        if not booking:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        authorize(caller, Capability.PAY_BOOKING, booking)
        self._ensure_open_for_payment(booking)

        intent = self.stripe_service.retrieve_payment_intent(payment_intent_id)
        provider_status = getattr(intent, "status", None) or "unknown"

        if provider_status != STRIPE_SUCCEEDED:
            with self.transaction():
                booking.payment_status = PaymentStatus.FAILED.value
                self.repository.flush()
            prometheus_metrics.record_payment_event(PaymentMethod.ONLINE.value, "failed")
            self.logger.warning(
                f"Payment for booking {booking.id} not successful: provider status {provider_status}"
            )
            raise PaymentFailedException(provider_status, booking.id)

        with self.transaction():
            already_completed = booking.payment_status == PaymentStatus.COMPLETED.value
            booking.payment_status = PaymentStatus.COMPLETED.value
            if not already_completed:
                self._adjust_available_slots(booking.station_id, "decrement")
            self.repository.flush()

        prometheus_metrics.record_payment_event(PaymentMethod.ONLINE.value, "completed")
        self.log_operation("confirm_payment", booking_id=booking.id, payment_intent_id=intent.id)
        return booking

    # Cash on delivery

    @BaseService.measure_operation("set_cod_payment_status")
    def set_cod_status(
        self, booking_id: str, caller: User, payment_status: str, payment_method: str
    ) -> Booking:
        if payment_method != PaymentMethod.COD.value:
            raise ValidationException(
                "Invalid payment method. Only 'cod' can be updated directly",
                code="INVALID_PAYMENT_METHOD",
            )
        if payment_status not in COD_STATUSES:
            raise ValidationException(
                f"Invalid payment status: {payment_status}", code="INVALID_PAYMENT_STATUS"
            )

        with self.transaction():
            booking = self._get_booking_or_404(booking_id)
            authorize(caller, Capability.PAY_BOOKING, booking)
            self._ensure_open_for_payment(booking)

            was_completed = booking.payment_status == PaymentStatus.COMPLETED.value
            booking.payment_status = payment_status
            if payment_status == PaymentStatus.COMPLETED.value and not was_completed:
                self._adjust_available_slots(booking.station_id, "decrement")
            self.repository.flush()

        prometheus_metrics.record_payment_event(PaymentMethod.COD.value, payment_status)
        self.log_operation(
            "set_cod_payment_status", booking_id=booking.id, payment_status=payment_status
        )
        return booking

    # Refunds

    @BaseService.measure_operation("refund_payment")
    def refund(self, booking_id: str, caller: User, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Refund a completed online payment in full and cancel the booking.

        The station counter goes back up by one, capped at total_slots.
        """
        booking = self._get_booking_or_404(booking_id)
        authorize(caller, Capability.REFUND_BOOKING, booking)

        if booking.payment_status != PaymentStatus.COMPLETED.value:
            raise ValidationException(
                "Can only refund completed payments", code="PAYMENT_NOT_COMPLETED"
            )
        if not booking.payment_intent_id:
            raise ValidationException(
                "No payment intent found for this booking", code="PAYMENT_INTENT_MISSING"
            )

        refund = self.stripe_service.create_refund(
            payment_intent_id=booking.payment_intent_id,
            metadata={"booking_id": booking.id, "reason": reason or DEFAULT_REFUND_REASON},
        )

        with self.transaction():
            booking.payment_status = PaymentStatus.REFUNDED.value
            booking.cancel()
            self._adjust_available_slots(booking.station_id, "increment")
            self.repository.flush()

        prometheus_metrics.record_payment_event(PaymentMethod.ONLINE.value, "refunded")
        self.log_operation("refund_payment", booking_id=booking.id, refund_id=refund.id)
        return {
            "refund_id": refund.id,
            "amount": int(refund.amount) / 100,
            "currency": refund.currency,
            "booking": booking,
        }

    # Reads

    def get_status(self, booking_id: str, caller: User) -> Dict[str, Any]:
        """Local payment status next to the provider's view. Never writes."""
        booking = self._get_booking_or_404(booking_id)
        authorize(caller, Capability.PAY_BOOKING, booking)

        stripe_status = "none"
        if booking.payment_intent_id:
            try:
                intent = self.stripe_service.retrieve_payment_intent(booking.payment_intent_id)
                stripe_status = getattr(intent, "status", None) or "unknown"
            except PaymentProviderException as e:
                self.logger.warning(f"Could not fetch provider status for {booking.id}: {e.message}")
                stripe_status = "unknown"

        return {
            "booking_id": booking.id,
            "payment_status": booking.payment_status,
            "stripe_status": stripe_status,
            "payment_intent_id": booking.payment_intent_id or "",
            "amount": float(booking.total_amount),
            "currency": settings.stripe_currency,
        }

    def station_payment_history(
        self, station_id: str, caller: User, payment_status: Optional[str] = None
    ) -> Dict[str, Any]:
        station = self.station_repository.get_by_id(station_id, load_relationships=False)
        if not station:
            raise NotFoundException("Charging station not found", code="STATION_NOT_FOUND")
        authorize(caller, Capability.VIEW_STATION_BOOKINGS, station)

        payments = self.repository.list_for_station_history(
            station.id, payment_status=payment_status
        )
        total_revenue, total_bookings = self.repository.sum_revenue(station.id)
        return {
            "payments": payments,
            "stats": {
                "total_revenue": float(round(total_revenue, 2)),
                "total_bookings": total_bookings,
            },
        }
