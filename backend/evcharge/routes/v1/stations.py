# backend/evcharge/routes/v1/stations.py
"""
Station routes - API v1

Versioned station endpoints under /api/v1/stations.
All business logic delegated to StationService.

Endpoints:
    GET / - List active stations, optionally within a radius
    GET /owner/my-stations - Stations owned by the caller
    POST / - Create a station (station owners)
    GET /{station_id} - Station details including blocked slots
    PUT /{station_id} - Update a station (owner)
    DELETE /{station_id} - Delete a station without active bookings (owner)
    POST /{station_id}/block-slots - Add a blocked window (owner)
    GET /{station_id}/stats - Booking and revenue statistics (owner)
"""

import asyncio
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ...api.dependencies import get_current_user, get_station_service
from ...core.exceptions import DomainException
from ...models.user import User
from ...schemas.base_responses import DeleteResponse
from ...schemas.station import (
    BlockSlotRequest,
    StationCreate,
    StationResponse,
    StationStatsResponse,
    StationUpdate,
)
from ...services.station_service import StationService, haversine_km

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["stations-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.get("", response_model=List[StationResponse])
async def list_stations(
    lat: Optional[float] = Query(None, ge=-90, le=90, description="Search latitude"),
    lng: Optional[float] = Query(None, ge=-180, le=180, description="Search longitude"),
    radius: Optional[float] = Query(None, gt=0, description="Search radius in km"),
    station_service: StationService = Depends(get_station_service),
) -> List[StationResponse]:
    """List active stations. The radius filter applies only when lat and lng are both given."""
    try:
        stations = await asyncio.to_thread(
            station_service.list_stations, latitude=lat, longitude=lng, radius_km=radius
        )
    except DomainException as e:
        handle_domain_exception(e)

    located = lat is not None and lng is not None
    return [
        StationResponse.from_station(
            s,
            include_blocked_slots=False,
            include_owner=True,
            distance_km=haversine_km(lat, lng, s.latitude, s.longitude) if located else None,
        )
        for s in stations
    ]


@router.get("/owner/my-stations", response_model=List[StationResponse])
async def list_my_stations(
    current_user: User = Depends(get_current_user),
    station_service: StationService = Depends(get_station_service),
) -> List[StationResponse]:
    try:
        stations = await asyncio.to_thread(station_service.list_owner_stations, current_user)
        return [StationResponse.from_station(s) for s in stations]
    except DomainException as e:
        handle_domain_exception(e)


@router.post("", response_model=StationResponse, status_code=status.HTTP_201_CREATED)
async def create_station(
    payload: StationCreate = Body(...),
    current_user: User = Depends(get_current_user),
    station_service: StationService = Depends(get_station_service),
) -> StationResponse:
    try:
        station = await asyncio.to_thread(station_service.create_station, current_user, payload)
        return StationResponse.from_station(station)
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# SECTION 2: Dynamic routes (with path parameters - placed last)
# ============================================================================


@router.get("/{station_id}", response_model=StationResponse)
async def get_station(
    station_id: str,
    station_service: StationService = Depends(get_station_service),
) -> StationResponse:
    try:
        station = await asyncio.to_thread(station_service.get_station, station_id)
        return StationResponse.from_station(station, include_owner=True)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/{station_id}", response_model=StationResponse)
async def update_station(
    station_id: str,
    payload: StationUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    station_service: StationService = Depends(get_station_service),
) -> StationResponse:
    """Partial update; a total_slots change moves available_slots by the same difference."""
    try:
        station = await asyncio.to_thread(
            station_service.update_station, station_id, current_user, payload
        )
        return StationResponse.from_station(station)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete("/{station_id}", response_model=DeleteResponse)
async def delete_station(
    station_id: str,
    current_user: User = Depends(get_current_user),
    station_service: StationService = Depends(get_station_service),
) -> DeleteResponse:
    try:
        await asyncio.to_thread(station_service.delete_station, station_id, current_user)
        return DeleteResponse(message="Station deleted successfully")
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{station_id}/block-slots", response_model=StationResponse)
async def block_slot(
    station_id: str,
    payload: BlockSlotRequest = Body(...),
    current_user: User = Depends(get_current_user),
    station_service: StationService = Depends(get_station_service),
) -> StationResponse:
    try:
        station = await asyncio.to_thread(
            station_service.block_slot, station_id, current_user, payload
        )
        return StationResponse.from_station(station)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{station_id}/stats", response_model=StationStatsResponse)
async def get_station_stats(
    station_id: str,
    current_user: User = Depends(get_current_user),
    station_service: StationService = Depends(get_station_service),
) -> StationStatsResponse:
    try:
        stats = await asyncio.to_thread(
            station_service.get_station_stats, station_id, current_user
        )
        return StationStatsResponse(**stats)
    except DomainException as e:
        handle_domain_exception(e)
