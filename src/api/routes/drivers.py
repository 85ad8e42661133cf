"""
Live driver endpoints (served from the Position Registry, not the database)
===========================================================================

GET /api/v1/drivers/nearby?lat=&lon=&radius_km= -- online drivers, nearest first
GET /api/v1/drivers/{driver_id}/position        -- last reported position
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_registry
from src.api.middleware import limiter
from src.api.schemas import DriverPositionResponse, NearbyDriverResponse
from src.api.security import get_caller
from src.config import settings
from src.domain.entities import Caller
from src.domain.errors import NotFoundError
from src.realtime.registry import PositionRegistry

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get(
    "/nearby",
    response_model=list[NearbyDriverResponse],
    summary="Online drivers around a point",
)
@limiter.limit(settings.rate_limit)
async def nearby_drivers(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0, le=500),
    limit: int = Query(50, ge=1, le=200),
    caller: Caller = Depends(get_caller),
    registry: PositionRegistry = Depends(get_registry),
):
    found = registry.nearby(lat, lon, radius_km or settings.nearby_radius_km, limit=limit)
    return [
        NearbyDriverResponse(
            **DriverPositionResponse.model_validate(position).model_dump(),
            distance_km=round(distance, 2),
        )
        for position, distance in found
    ]


@router.get(
    "/{driver_id}/position",
    response_model=DriverPositionResponse,
    summary="Last position reported by a driver",
)
@limiter.limit(settings.rate_limit)
async def driver_position(
    request: Request,
    driver_id: int,
    caller: Caller = Depends(get_caller),
    registry: PositionRegistry = Depends(get_registry),
):
    position = registry.get(driver_id)
    if position is None:
        raise NotFoundError("Position inconnue", "No position reported")
    return position
