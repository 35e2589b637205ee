# backend/evcharge/services/stripe_service.py
"""
Stripe gateway.

Thin wrapper over the Stripe SDK calls the payment flow needs: create and
retrieve a PaymentIntent, and refund one. SDK failures are logged and
raised as PaymentProviderException so nothing provider-specific leaks into
the payment service.
"""

import logging
from typing import Any, Dict, Optional

import stripe

from ..core.config import settings
from ..core.exceptions import PaymentProviderException
from .base import BaseService

logger = logging.getLogger(__name__)

REFUND_REASON = "requested_by_customer"


class StripeService:
    """Stripe API client configured from settings."""

    def __init__(self, api_key: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        key = api_key if api_key is not None else settings.stripe_secret_key.get_secret_value()

        self.stripe_configured = bool(key)
        if self.stripe_configured:
            stripe.api_key = key
            stripe.max_network_retries = 1
            stripe.default_http_client = stripe.RequestsClient(
                timeout=settings.stripe_timeout_seconds
            )
            self.logger.info("Stripe service configured successfully")
        else:
            self.logger.warning("Stripe secret key not configured - payment calls will fail")

    def _check_stripe_configured(self) -> None:
        """Check if Stripe is properly configured before making API calls."""
        if not self.stripe_configured:
            raise PaymentProviderException(
                "Stripe service not configured. Please check STRIPE_SECRET_KEY environment variable."
            )

    @BaseService.measure_operation("stripe_create_payment_intent")
    def create_payment_intent(
        self,
        *,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        description: str,
    ) -> Any:
        """
        Create a PaymentIntent.

        Args:
            amount: Amount in minor currency units
            currency: ISO currency code, lower case
            metadata: Booking references stored on the intent
            description: Statement description

        Returns:
            The Stripe PaymentIntent object
        """
        self._check_stripe_configured()
        try:
            return stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
                description=description,
            )
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error creating payment intent: {str(e)}")
            raise PaymentProviderException(
                "Failed to create payment intent", details={"provider_error": str(e)}
            ) from e

    @BaseService.measure_operation("stripe_retrieve_payment_intent")
    def retrieve_payment_intent(self, payment_intent_id: str) -> Any:
        self._check_stripe_configured()
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error retrieving payment intent {payment_intent_id}: {str(e)}")
            raise PaymentProviderException(
                "Failed to retrieve payment intent",
                details={"payment_intent_id": payment_intent_id, "provider_error": str(e)},
            ) from e

    @BaseService.measure_operation("stripe_create_refund")
    def create_refund(self, *, payment_intent_id: str, metadata: Dict[str, str]) -> Any:
        """Refund the full amount of a PaymentIntent."""
        self._check_stripe_configured()
        try:
            return stripe.Refund.create(
                payment_intent=payment_intent_id,
                reason=REFUND_REASON,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error refunding {payment_intent_id}: {str(e)}")
            raise PaymentProviderException(
                "Failed to process refund",
                details={"payment_intent_id": payment_intent_id, "provider_error": str(e)},
            ) from e
