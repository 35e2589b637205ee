# backend/evcharge/schemas/payment.py
"""Payment reconciliation schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.enums import PaymentStatus
from ._strict_base import StrictRequestModel
from .booking import BookingResponse


class CreatePaymentIntentRequest(StrictRequestModel):
    booking_id: str = Field(..., min_length=1)


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: int = Field(description="Amount in minor currency units")
    currency: str


class ConfirmPaymentRequest(StrictRequestModel):
    booking_id: str = Field(..., min_length=1)
    payment_intent_id: str = Field(..., min_length=1)


class ConfirmPaymentResponse(BaseModel):
    message: str
    booking: BookingResponse


class RefundRequest(StrictRequestModel):
    booking_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)


class RefundResponse(BaseModel):
    message: str
    refund_id: str
    amount: float = Field(description="Refunded amount in major currency units")
    currency: str
    booking: BookingResponse


class PaymentStatusResponse(BaseModel):
    booking_id: str
    payment_status: PaymentStatus
    stripe_status: str = Field(description="Provider status, 'none' or 'unknown'")
    payment_intent_id: str
    amount: float
    currency: str


class RevenueStats(BaseModel):
    total_revenue: float
    total_bookings: int


class PaymentHistoryResponse(BaseModel):
    payments: List[BookingResponse]
    stats: RevenueStats
