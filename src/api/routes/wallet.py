"""
Driver wallet endpoints
=======================

GET  /api/v1/wallet          -- balance and the last 20 transactions
POST /api/v1/wallet/recharge -- declare a funding proof (pending until an admin confirms)
"""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_settlement
from src.api.middleware import limiter
from src.api.schemas import RechargeRequest, WalletResponse, WalletTransactionResponse
from src.api.security import get_caller
from src.config import settings
from src.domain.entities import Caller
from src.services.settlement import SettlementWorkflow

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("", response_model=WalletResponse, summary="Driver wallet")
@limiter.limit(settings.rate_limit)
async def get_wallet(
    request: Request,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
):
    summary = await settlement.wallet_summary(caller)
    return WalletResponse(
        balance=summary["balance"],
        currency=summary["currency"],
        transactions=[
            WalletTransactionResponse.model_validate(tx) for tx in summary["transactions"]
        ],
    )


@router.post(
    "/recharge",
    status_code=201,
    response_model=WalletTransactionResponse,
    summary="Request a wallet recharge",
)
@limiter.limit(settings.rate_limit)
async def request_recharge(
    request: Request,
    body: RechargeRequest,
    caller: Caller = Depends(get_caller),
    settlement: SettlementWorkflow = Depends(get_settlement),
):
    return await settlement.request_recharge(
        caller,
        body.amount,
        proof_url=body.proof_url,
        provider=body.provider,
        transaction_id=body.transaction_id,
    )
