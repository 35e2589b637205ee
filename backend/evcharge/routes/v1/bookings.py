# backend/evcharge/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService, SlotAvailabilityService
and PaymentService (cash-on-delivery status).

Endpoints:
    POST / - Create a booking (EV owners)
    GET /my-bookings - The caller's bookings
    GET / - Bookings across the caller's stations (station owners)
    GET /station/{station_id} - Bookings for one owned station
    GET /availability/{station_id} - Free slot numbers for a window (public)
    GET /{booking_id} - Booking details (either party)
    PUT /{booking_id}/status - Start or complete charging (station owner)
    PUT /{booking_id}/cancel - Cancel a booking (EV owner)
    POST /{booking_id}/review - Rate a completed booking once (EV owner)
    PUT /{booking_id}/payment-status - Cash-on-delivery payment status (EV owner)
"""

import asyncio
from datetime import datetime
import logging
from typing import Any, List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ...api.dependencies import (
    get_availability_service,
    get_booking_service,
    get_current_user,
    get_payment_service,
)
from ...core.enums import BookingStatus, PaymentStatus
from ...core.exceptions import DomainException
from ...models.user import User
from ...schemas.base_responses import PaginatedResponse
from ...schemas.booking import (
    AvailabilityResponse,
    BookingCreate,
    BookingMutationResponse,
    BookingResponse,
    BookingReviewCreate,
    BookingStatusUpdate,
    CodPaymentStatusUpdate,
)
from ...services.booking_service import BookingService
from ...services.payment_service import PaymentService
from ...services.slot_availability import SlotAvailabilityService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _page(
    items: List[Any], total: int, page: int, per_page: int, *, include_user: bool = False
) -> PaginatedResponse[BookingResponse]:
    return PaginatedResponse[BookingResponse].build(
        [BookingResponse.from_booking(b, include_user=include_user) for b in items],
        total=total,
        page=page,
        per_page=per_page,
    )


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.post("", response_model=BookingMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingMutationResponse:
    """
    Reserve a slot.

    The end time and amount are computed from the station's rate and the
    requested duration. Returns 409 when the slot is booked or blocked.
    """
    try:
        booking = await asyncio.to_thread(
            booking_service.create_booking, current_user, booking_data
        )
        return BookingMutationResponse(
            message="Booking created successfully",
            booking=BookingResponse.from_booking(booking),
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/my-bookings", response_model=PaginatedResponse[BookingResponse])
async def get_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> PaginatedResponse[BookingResponse]:
    try:
        items, total = await asyncio.to_thread(
            booking_service.list_user_bookings,
            current_user,
            status=status_filter.value if status_filter else None,
            page=page,
            per_page=per_page,
        )
        return _page(items, total, page, per_page)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=PaginatedResponse[BookingResponse])
async def get_station_owner_bookings(
    station_id: Optional[str] = Query(None),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> PaginatedResponse[BookingResponse]:
    """Bookings across every station the caller owns, optionally narrowed to one."""
    try:
        items, total = await asyncio.to_thread(
            booking_service.list_station_owner_bookings,
            current_user,
            station_id=station_id,
            status=status_filter.value if status_filter else None,
            payment_status=payment_status.value if payment_status else None,
            page=page,
            per_page=per_page,
        )
        return _page(items, total, page, per_page, include_user=True)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/station/{station_id}", response_model=PaginatedResponse[BookingResponse])
async def get_station_bookings(
    station_id: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> PaginatedResponse[BookingResponse]:
    try:
        items, total = await asyncio.to_thread(
            booking_service.list_station_bookings,
            station_id,
            current_user,
            page=page,
            per_page=per_page,
        )
        return _page(items, total, page, per_page, include_user=True)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/availability/{station_id}", response_model=AvailabilityResponse)
async def get_availability(
    station_id: str,
    start_time: datetime = Query(..., description="Window start (ISO 8601)"),
    end_time: datetime = Query(..., description="Window end (ISO 8601)"),
    availability_service: SlotAvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Slot numbers free for the whole window, ascending. Public."""
    try:
        result = await asyncio.to_thread(
            availability_service.get_station_availability, station_id, start_time, end_time
        )
        return AvailabilityResponse(**result)
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# SECTION 2: Dynamic routes (with path parameters - placed last)
# ============================================================================


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.get_booking, booking_id, current_user)
        return BookingResponse.from_booking(booking, include_user=True)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/{booking_id}/status", response_model=BookingMutationResponse)
async def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingMutationResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.update_status, booking_id, payload.status.value, current_user
        )
        return BookingMutationResponse(
            message="Booking status updated successfully",
            booking=BookingResponse.from_booking(booking),
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/{booking_id}/cancel", response_model=BookingMutationResponse)
async def cancel_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingMutationResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.cancel_booking, booking_id, current_user
        )
        return BookingMutationResponse(
            message="Booking cancelled successfully",
            booking=BookingResponse.from_booking(booking),
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/review", response_model=BookingMutationResponse)
async def add_review(
    booking_id: str,
    payload: BookingReviewCreate = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingMutationResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.add_review,
            booking_id,
            current_user,
            payload.rating,
            payload.review,
        )
        return BookingMutationResponse(
            message="Review added successfully",
            booking=BookingResponse.from_booking(booking),
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/{booking_id}/payment-status", response_model=BookingMutationResponse)
async def update_cod_payment_status(
    booking_id: str,
    payload: CodPaymentStatusUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> BookingMutationResponse:
    """Cash-on-delivery status reported by the EV owner."""
    try:
        booking = await asyncio.to_thread(
            payment_service.set_cod_status,
            booking_id,
            current_user,
            payload.payment_status.value,
            payload.payment_method,
        )
        return BookingMutationResponse(
            message="Payment status updated successfully",
            booking=BookingResponse.from_booking(booking),
        )
    except DomainException as e:
        handle_domain_exception(e)
