"""
Admin / settlement endpoints
============================

GET  /api/v1/admin/stats                    -- dashboard counters
GET  /api/v1/admin/pending-payments         -- proofs and recharges awaiting review
POST /api/v1/admin/confirm-payment/{order}  -- proof_submitted -> confirmed
POST /api/v1/admin/orders/{order}/payout    -- confirmed -> paid_to_driver (+ wallet credit)
POST /api/v1/admin/orders/{order}/refund    -- confirmed -> refunded
POST /api/v1/admin/confirm-recharge/{tx}    -- pending recharge -> confirmed (+ wallet credit)
POST /api/v1/admin/reject-recharge/{tx}     -- pending recharge -> rejected
GET  /api/v1/admin/health                   -- simple health check
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_registry, get_settlement
from src.api.middleware import limiter
from src.api.schemas import (
    HealthResponse,
    OrderResponse,
    PendingSettlementsResponse,
    RejectRechargeRequest,
    StatsResponse,
    WalletTransactionResponse,
)
from src.api.security import get_caller
from src.config import settings
from src.domain.entities import Caller
from src.realtime.registry import PositionRegistry
from src.services.settlement import SettlementWorkflow

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats", response_model=StatsResponse, summary="Dashboard statistics")
@limiter.limit(settings.rate_limit)
async def get_stats(
    request: Request,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
    registry: PositionRegistry = Depends(get_registry),
):
    return await settlement.dashboard_stats(caller, registry)


@router.get(
    "/pending-payments",
    response_model=PendingSettlementsResponse,
    summary="Order payments and wallet recharges awaiting confirmation",
)
@limiter.limit(settings.rate_limit)
async def get_pending_payments(
    request: Request,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
):
    pending = await settlement.pending_settlements(caller)
    return PendingSettlementsResponse(
        order_payments=[OrderResponse.model_validate(o) for o in pending["order_payments"]],
        wallet_recharges=[
            WalletTransactionResponse.model_validate(tx) for tx in pending["wallet_recharges"]
        ],
    )


@router.post(
    "/confirm-payment/{order_id}",
    response_model=OrderResponse,
    summary="Confirm a submitted payment proof",
)
@limiter.limit(settings.rate_limit)
async def confirm_payment(
    request: Request,
    order_id: int,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
):
    return await settlement.confirm_payment(caller, order_id)


@router.post(
    "/orders/{order_id}/payout",
    response_model=OrderResponse,
    summary="Pay the driver's share into the driver wallet",
)
@limiter.limit(settings.rate_limit)
async def pay_out_driver(
    request: Request,
    order_id: int,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
):
    return await settlement.pay_out_driver(caller, order_id)


@router.post(
    "/orders/{order_id}/refund",
    response_model=OrderResponse,
    summary="Refund a confirmed payment",
)
@limiter.limit(settings.rate_limit)
async def refund_payment(
    request: Request,
    order_id: int,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
):
    return await settlement.refund_payment(caller, order_id)


@router.post(
    "/confirm-recharge/{tx_id}",
    response_model=WalletTransactionResponse,
    summary="Confirm a wallet recharge and credit the balance",
    description="Idempotent: confirming an already-confirmed recharge credits nothing.",
)
@limiter.limit(settings.rate_limit)
async def confirm_recharge(
    request: Request,
    tx_id: int,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
):
    return await settlement.confirm_recharge(caller, tx_id)


@router.post(
    "/reject-recharge/{tx_id}",
    response_model=WalletTransactionResponse,
    summary="Reject a wallet recharge",
)
@limiter.limit(settings.rate_limit)
async def reject_recharge(
    request: Request,
    tx_id: int,
    body: Optional[RejectRechargeRequest] = None,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
):
    return await settlement.reject_recharge(caller, tx_id, note=body.note if body else None)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(request: Request):
    stats = request.app.state.connections.get_stats()
    return HealthResponse(
        connections=stats["active_connections"],
        connected_users=stats["connected_users"],
        by_role=stats["by_role"],
        sessions=len(request.app.state.sessions),
        known_drivers=len(request.app.state.registry),
    )
