"""
Order endpoints
===============

POST /api/v1/orders                               -- create an order (client)
GET  /api/v1/orders/my                            -- caller's orders, paged
GET  /api/v1/orders/{order_id}                    -- order with chat, tracking, photos
PUT  /api/v1/orders/{order_id}/respond            -- driver accepts / refuses
PUT  /api/v1/orders/{order_id}/status             -- lifecycle transition
POST /api/v1/orders/{order_id}/verification-photo -- loading / unloading photo
POST /api/v1/orders/{order_id}/payment-proof      -- client payment proof
"""

from __future__ import annotations

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_orders, get_settlement
from src.api.middleware import limiter
from src.api.schemas import (
    MessageResponse,
    OrderCreateRequest,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    PaymentProofRequest,
    PhotoResponse,
    RespondRequest,
    StatusChangeRequest,
    TrackingPointResponse,
    VerificationPhotoRequest,
)
from src.api.security import get_caller
from src.config import settings
from src.domain.entities import Caller
from src.domain.enums import OrderStatus
from src.services.orders import OrderLifecycleManager
from src.services.settlement import SettlementWorkflow

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    status_code=201,
    response_model=OrderResponse,
    summary="Create an order",
    description=(
        "Prices the order from the vehicle's rates, assigns it to the "
        "vehicle's driver and pushes `order.new` to that driver if connected."
    ),
)
@limiter.limit(settings.rate_limit)
async def create_order(
    request: Request,
    body: OrderCreateRequest,
    caller: Caller = Depends(get_caller),
    orders: OrderLifecycleManager = Depends(get_orders),
):
    return await orders.create_order(
        caller,
        vehicle_id=body.vehicle_id,
        service_type=body.service_type,
        pickup=body.pickup.model_dump(),
        dropoff=body.dropoff.model_dump() if body.dropoff else None,
        cargo=body.cargo.model_dump() if body.cargo else None,
        payment_method=body.payment_method,
        payment_provider=body.payment_provider,
        scheduled_at=body.scheduled_at,
        rental_hours=body.rental_hours,
        rental_days=body.rental_days,
    )


@router.get(
    "/my",
    response_model=OrderListResponse,
    summary="List the caller's orders (as client, or as driver for drivers)",
)
@limiter.limit(settings.rate_limit)
async def list_my_orders(
    request: Request,
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_caller),
    orders: OrderLifecycleManager = Depends(get_orders),
):
    rows, total = await orders.list_orders(caller, status=status, page=page, limit=limit)
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in rows],
        total=total,
        page=page,
        pages=math.ceil(total / limit),
    )


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="Get an order (client, driver or admin)",
)
@limiter.limit(settings.rate_limit)
async def get_order(
    request: Request,
    order_id: int,
    caller: Caller = Depends(get_caller),
    orders: OrderLifecycleManager = Depends(get_orders),
):
    order = await orders.get_order(caller, order_id)
    repo = orders.orders
    return OrderDetailResponse(
        **OrderResponse.model_validate(order).model_dump(),
        messages=[
            MessageResponse.model_validate(m) for m in await repo.get_messages(order.id)
        ],
        tracking=[
            TrackingPointResponse.model_validate(p)
            for p in await repo.get_tracking_points(order.id)
        ],
        photos=[PhotoResponse.model_validate(p) for p in await repo.get_photos(order.id)],
    )


@router.put(
    "/{order_id}/respond",
    response_model=OrderResponse,
    summary="Accept or refuse a pending order (assigned driver)",
)
@limiter.limit(settings.rate_limit)
async def respond_to_order(
    request: Request,
    order_id: int,
    body: RespondRequest,
    caller: Caller = Depends(get_caller),
    orders: OrderLifecycleManager = Depends(get_orders),
):
    return await orders.respond(caller, order_id, body.accept)


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Move an order along its lifecycle",
    description=(
        "Transitions outside the lifecycle graph are rejected with 409 and "
        "leave the order unchanged."
    ),
)
@limiter.limit(settings.rate_limit)
async def change_order_status(
    request: Request,
    order_id: int,
    body: StatusChangeRequest,
    caller: Caller = Depends(get_caller),
    orders: OrderLifecycleManager = Depends(get_orders),
):
    return await orders.change_status(caller, order_id, body.status, reason=body.reason)


@router.post(
    "/{order_id}/verification-photo",
    status_code=201,
    response_model=PhotoResponse,
    summary="Record a loading / unloading verification photo (assigned driver)",
)
@limiter.limit(settings.rate_limit)
async def add_verification_photo(
    request: Request,
    order_id: int,
    body: VerificationPhotoRequest,
    caller: Caller = Depends(get_caller),
    orders: OrderLifecycleManager = Depends(get_orders),
):
    return await orders.record_verification_photo(caller, order_id, body.kind, body.url)


@router.post(
    "/{order_id}/payment-proof",
    response_model=OrderResponse,
    summary="Submit a payment proof (order's client)",
)
@limiter.limit(settings.rate_limit)
async def submit_payment_proof(
    request: Request,
    order_id: int,
    body: PaymentProofRequest,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
):
    return await settlement.submit_payment_proof(
        caller,
        order_id,
        proof_url=body.proof_url,
        transaction_id=body.transaction_id,
        provider=body.provider,
    )
