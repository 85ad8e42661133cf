"""
Payment / Wallet Settlement Workflow
====================================

Order payments
--------------
``pending -> proof_submitted -> confirmed -> paid_to_driver | refunded``

* only the order's client submits proof;
* only an administrator confirms, pays out or refunds;
* paying out credits the driver's wallet with ``driver_share`` and records a
  ``payout`` wallet transaction in the same database transaction as the
  status flip.

Wallet recharges
----------------
A driver declares a funding proof (a ``pending`` wallet transaction); an
administrator confirms it.  Confirmation flips the transaction with a
compare-and-set on ``pending`` and increments the balance in the *same*
transaction: either both are committed or neither is.  Re-confirming an
already-confirmed recharge is a no-op success, so a retried confirm never
credits twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.entities import Caller, ensure_payment_transition, utcnow
from src.domain.enums import (
    PaymentStatus,
    UserType,
    WalletTxStatus,
    WalletTxType,
)
from src.domain.errors import (
    AuthorizationError,
    ConcurrentUpdate,
    InvalidStateTransition,
    NotFoundError,
    PartialSettlementFailure,
    ValidationError,
)
from src.infrastructure.models import OrderModel, WalletTransactionModel
from src.infrastructure.repositories import (
    OrderRepository,
    UserRepository,
    VehicleRepository,
    WalletTransactionRepository,
)
from src.realtime.registry import PositionRegistry
from src.realtime.router import EventRouter

logger = logging.getLogger(__name__)


def _require_admin(caller: Caller) -> None:
    if not caller.is_admin:
        raise AuthorizationError("Réservé aux administrateurs", "Admins only")


def _require_driver(caller: Caller) -> None:
    if caller.role != UserType.DRIVER:
        raise AuthorizationError("Réservé aux chauffeurs", "Drivers only")


class SettlementWorkflow:
    def __init__(
        self,
        session: AsyncSession,
        router: EventRouter,
        currency: str = settings.currency,
    ):
        self.session = session
        self.router = router
        self.currency = currency
        self.orders = OrderRepository(session)
        self.users = UserRepository(session)
        self.wallet = WalletTransactionRepository(session)

    # ── Order payments ────────────────────────────────────────────────

    async def submit_payment_proof(
        self,
        caller: Caller,
        order_id: int,
        proof_url: Optional[str] = None,
        transaction_id: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> OrderModel:
        order = await self._order_for_update(order_id)
        if caller.user_id != order.client_id:
            raise AuthorizationError()
        if not proof_url and not transaction_id:
            raise ValidationError(
                "Preuve de paiement requise", "Payment proof required"
            )

        values: dict[str, Any] = {
            "payment_proof_url": proof_url,
            "payment_proof_transaction_id": transaction_id,
            "payment_proof_submitted_at": utcnow(),
        }
        if provider:
            values["payment_provider"] = provider
        return await self._move_payment(order, PaymentStatus.PROOF_SUBMITTED, values)

    async def confirm_payment(self, caller: Caller, order_id: int) -> OrderModel:
        _require_admin(caller)
        order = await self._order_for_update(order_id)
        return await self._move_payment(
            order,
            PaymentStatus.CONFIRMED,
            {"payment_confirmed_at": utcnow(), "payment_confirmed_by": caller.user_id},
        )

    async def pay_out_driver(self, caller: Caller, order_id: int) -> OrderModel:
        """Credit the driver's share to the wallet and close the payment."""
        _require_admin(caller)
        order = await self._order_for_update(order_id)
        ensure_payment_transition(order.payment_status, PaymentStatus.PAID_TO_DRIVER)

        now = utcnow()
        await self.wallet.create(
            WalletTransactionModel(
                user_id=order.driver_id,
                tx_type=WalletTxType.PAYOUT,
                amount=order.payment_driver_share,
                currency=order.payment_currency or self.currency,
                status=WalletTxStatus.CONFIRMED,
                order_id=order.id,
                confirmed_by=caller.user_id,
                confirmed_at=now,
                note=order.order_number,
            )
        )
        if not await self.users.credit_wallet(order.driver_id, order.payment_driver_share):
            await self.session.rollback()
            raise PartialSettlementFailure()
        return await self._move_payment(
            order, PaymentStatus.PAID_TO_DRIVER, {"payment_paid_out_at": now}
        )

    async def refund_payment(self, caller: Caller, order_id: int) -> OrderModel:
        _require_admin(caller)
        order = await self._order_for_update(order_id)
        return await self._move_payment(
            order, PaymentStatus.REFUNDED, {"payment_refunded_at": utcnow()}
        )

    async def _move_payment(
        self, order: OrderModel, status: PaymentStatus, values: dict[str, Any]
    ) -> OrderModel:
        current = PaymentStatus(order.payment_status)
        ensure_payment_transition(current, status)
        if not await self.orders.compare_and_set_payment(
            order.id, current, payment_status=status, **values
        ):
            await self.session.rollback()
            raise ConcurrentUpdate()

        await self.session.commit()
        await self.session.refresh(order)
        logger.info(
            "Order %s payment: %s -> %s", order.order_number, current.value, status.value
        )

        await self.router.notify_payment_status(
            order.id, status, order.client_id, order.driver_id
        )
        return order

    async def _order_for_update(self, order_id: int) -> OrderModel:
        order = await self.orders.get_for_update(order_id)
        if order is None:
            raise NotFoundError("Commande non trouvée", "Order not found")
        return order

    # ── Wallet ────────────────────────────────────────────────────────

    async def request_recharge(
        self,
        caller: Caller,
        amount: float,
        proof_url: Optional[str] = None,
        provider: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> WalletTransactionModel:
        _require_driver(caller)
        if amount is None or amount <= 0:
            raise ValidationError("Montant invalide", "Invalid amount")
        if not proof_url and not transaction_id:
            raise ValidationError(
                "Preuve de paiement requise", "Payment proof required"
            )

        tx = await self.wallet.create(
            WalletTransactionModel(
                user_id=caller.user_id,
                tx_type=WalletTxType.RECHARGE,
                amount=amount,
                currency=self.currency,
                provider=provider,
                proof_url=proof_url,
                provider_transaction_id=transaction_id,
                status=WalletTxStatus.PENDING,
            )
        )
        await self.session.commit()
        await self.session.refresh(tx)
        logger.info("Recharge %s requested by driver %s (%.0f)", tx.id, caller.user_id, amount)
        return tx

    async def confirm_recharge(self, caller: Caller, tx_id: int) -> WalletTransactionModel:
        _require_admin(caller)
        tx = await self._tx_for_update(tx_id)

        status = WalletTxStatus(tx.status)
        if status == WalletTxStatus.CONFIRMED:
            # Retried confirmation: the credit already happened with the flip.
            return tx
        if status != WalletTxStatus.PENDING:
            raise InvalidStateTransition(
                "Transaction déjà rejetée", "Transaction already rejected"
            )

        flipped = await self.wallet.compare_and_set_status(
            tx.id,
            WalletTxStatus.PENDING,
            status=WalletTxStatus.CONFIRMED,
            confirmed_by=caller.user_id,
            confirmed_at=utcnow(),
        )
        if not flipped:
            await self.session.rollback()
            raise ConcurrentUpdate()
        if not await self.users.credit_wallet(tx.user_id, tx.amount):
            await self.session.rollback()
            raise PartialSettlementFailure()

        await self.session.commit()
        await self.session.refresh(tx)
        logger.info("Recharge %s confirmed, user %s credited %.0f", tx.id, tx.user_id, tx.amount)
        return tx

    async def reject_recharge(
        self, caller: Caller, tx_id: int, note: Optional[str] = None
    ) -> WalletTransactionModel:
        _require_admin(caller)
        tx = await self._tx_for_update(tx_id)
        if WalletTxStatus(tx.status) != WalletTxStatus.PENDING:
            raise InvalidStateTransition(
                "Transaction déjà traitée", "Transaction already processed"
            )
        if not await self.wallet.compare_and_set_status(
            tx.id,
            WalletTxStatus.PENDING,
            status=WalletTxStatus.REJECTED,
            confirmed_by=caller.user_id,
            confirmed_at=utcnow(),
            note=note,
        ):
            await self.session.rollback()
            raise ConcurrentUpdate()
        await self.session.commit()
        await self.session.refresh(tx)
        logger.info("Recharge %s rejected", tx.id)
        return tx

    async def wallet_summary(self, caller: Caller) -> dict[str, Any]:
        _require_driver(caller)
        user = await self.users.get_by_id(caller.user_id)
        if user is None:
            raise NotFoundError("Utilisateur non trouvé", "User not found")
        return {
            "balance": user.wallet_balance,
            "currency": user.wallet_currency or self.currency,
            "transactions": await self.wallet.list_for_user(caller.user_id, limit=20),
        }

    async def _tx_for_update(self, tx_id: int) -> WalletTransactionModel:
        tx = await self.wallet.get_for_update(tx_id)
        if tx is None:
            raise NotFoundError("Transaction non trouvée", "Transaction not found")
        return tx

    # ── Admin views ───────────────────────────────────────────────────

    async def pending_settlements(self, caller: Caller) -> dict[str, list]:
        _require_admin(caller)
        return {
            "order_payments": await self.orders.get_awaiting_confirmation(),
            "wallet_recharges": await self.wallet.get_pending(),
        }

    async def dashboard_stats(
        self, caller: Caller, registry: PositionRegistry, now: Optional[datetime] = None
    ) -> dict[str, Any]:
        _require_admin(caller)
        now = now or utcnow()
        today = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
        return {
            "total_users": await self.users.count_by_type(UserType.CLIENT),
            "total_drivers": await self.users.count_by_type(UserType.DRIVER),
            "total_vehicles": await VehicleRepository(self.session).count(),
            "total_orders": await self.orders.count(),
            "orders_today": await self.orders.count(since=today),
            "pending_payments": await self.orders.count_by_payment_status(
                PaymentStatus.PROOF_SUBMITTED
            ),
            "revenue_today": await self.orders.platform_revenue_since(today),
            "online_drivers": registry.count_online(),
        }
