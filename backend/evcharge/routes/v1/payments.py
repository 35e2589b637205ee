# backend/evcharge/routes/v1/payments.py
"""
Payment routes - API v1

Versioned payment endpoints under /api/v1/payments.
All business logic delegated to PaymentService.

Endpoints:
    POST /create-payment-intent - Start an online payment (EV owner)
    POST /confirm-payment - Reconcile a booking with its intent (EV owner)
    POST /refund - Refund a completed payment (station owner)
    GET /status/{booking_id} - Local and provider payment status (EV owner)
    GET /station/{station_id}/history - Payments and revenue for a station (owner)
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ...api.dependencies import get_current_user, get_payment_service
from ...core.enums import PaymentStatus
from ...core.exceptions import DomainException
from ...models.user import User
from ...schemas.booking import BookingResponse
from ...schemas.payment import (
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    CreatePaymentIntentRequest,
    PaymentHistoryResponse,
    PaymentIntentResponse,
    PaymentStatusResponse,
    RefundRequest,
    RefundResponse,
    RevenueStats,
)
from ...services.payment_service import PaymentService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["payments-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    payload: CreatePaymentIntentRequest = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentIntentResponse:
    try:
        result = await asyncio.to_thread(
            payment_service.create_intent, payload.booking_id, current_user
        )
        return PaymentIntentResponse(**result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/confirm-payment", response_model=ConfirmPaymentResponse)
async def confirm_payment(
    payload: ConfirmPaymentRequest = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> ConfirmPaymentResponse:
    """
    Confirm a payment against the provider.

    A provider status other than ``succeeded`` is recorded as a failed
    payment and answered with 402.
    """
    try:
        booking = await asyncio.to_thread(
            payment_service.confirm_payment,
            payload.booking_id,
            payload.payment_intent_id,
            current_user,
        )
        return ConfirmPaymentResponse(
            message="Payment confirmed successfully",
            booking=BookingResponse.from_booking(booking),
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/refund", response_model=RefundResponse)
async def refund_payment(
    payload: RefundRequest = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> RefundResponse:
    try:
        result = await asyncio.to_thread(
            payment_service.refund, payload.booking_id, current_user, payload.reason
        )
        return RefundResponse(
            message="Refund processed successfully",
            refund_id=result["refund_id"],
            amount=result["amount"],
            currency=result["currency"],
            booking=BookingResponse.from_booking(result["booking"]),
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/status/{booking_id}", response_model=PaymentStatusResponse)
async def get_payment_status(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentStatusResponse:
    try:
        result = await asyncio.to_thread(payment_service.get_status, booking_id, current_user)
        return PaymentStatusResponse(**result)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/station/{station_id}/history", response_model=PaymentHistoryResponse)
async def get_station_payment_history(
    station_id: str,
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentHistoryResponse:
    try:
        result = await asyncio.to_thread(
            payment_service.station_payment_history,
            station_id,
            current_user,
            payment_status.value if payment_status else None,
        )
        return PaymentHistoryResponse(
            payments=[
                BookingResponse.from_booking(b, include_user=True) for b in result["payments"]
            ],
            stats=RevenueStats(**result["stats"]),
        )
    except DomainException as e:
        handle_domain_exception(e)
