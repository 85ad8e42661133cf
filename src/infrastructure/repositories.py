"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Counters and balances are only ever changed
with single ``UPDATE ... SET x = x + :delta`` statements, and status changes
that can race go through compare-and-set updates, so no read-modify-write
spans two statements.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    OrderMessageModel,
    OrderModel,
    OrderPhotoModel,
    SequenceModel,
    TrackingPointModel,
    UserModel,
    VehicleModel,
    WalletTransactionModel,
)
from src.domain.enums import (
    OrderStatus,
    PaymentStatus,
    UserType,
    WalletTxStatus,
)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def update_location(
        self, user_id: int, lat: float, lon: float, at: datetime
    ) -> None:
        await self.session.execute(
            update(UserModel)
            .execution_options(synchronize_session=False)
            .where(UserModel.id == user_id)
            .values(location_lat=lat, location_lon=lon, location_updated_at=at)
        )

    async def increment_driver_stats(self, driver_id: int, km: float) -> bool:
        result = await self.session.execute(
            update(UserModel)
            .execution_options(synchronize_session=False)
            .where(UserModel.id == driver_id)
            .values(
                total_trips=UserModel.total_trips + 1,
                total_km=UserModel.total_km + km,
            )
        )
        return result.rowcount == 1

    async def credit_wallet(self, user_id: int, amount: float) -> bool:
        """Atomically add *amount* to the balance.  False if the user is unknown."""
        result = await self.session.execute(
            update(UserModel)
            .execution_options(synchronize_session=False)
            .where(UserModel.id == user_id)
            .values(wallet_balance=UserModel.wallet_balance + amount)
        )
        return result.rowcount == 1

    async def count_by_type(self, user_type: UserType) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(UserModel)
            .where(UserModel.user_type == user_type)
        )
        return result.scalar() or 0


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, vehicle_id: int) -> Optional[VehicleModel]:
        return await self.session.get(VehicleModel, vehicle_id)

    async def count(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(VehicleModel)
        )
        return result.scalar() or 0


class SequenceRepository:
    """Named counters incremented in place (row lock until commit)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def next_value(self, name: str) -> int:
        result = await self.session.execute(
            update(SequenceModel)
            .execution_options(synchronize_session=False)
            .where(SequenceModel.name == name)
            .values(value=SequenceModel.value + 1)
        )
        if result.rowcount == 1:
            value = await self.session.execute(
                select(SequenceModel.value).where(SequenceModel.name == name)
            )
            return value.scalar_one()
        # Unseeded sequence (the migration seeds the known ones).  Two first
        # callers collide on the primary key and one of them fails cleanly.
        await self.session.execute(insert(SequenceModel).values(name=name, value=1))
        return 1


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, order: OrderModel) -> OrderModel:
        self.session.add(order)
        await self.session.flush()
        return order

    async def get_by_id(self, order_id: int) -> Optional[OrderModel]:
        return await self.session.get(OrderModel, order_id)

    async def get_for_update(self, order_id: int) -> Optional[OrderModel]:
        """SELECT ... FOR UPDATE to serialize concurrent transitions."""
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def compare_and_set_status(
        self, order_id: int, expected: OrderStatus, **values
    ) -> bool:
        """Apply *values* only if the order is still in *expected* status."""
        result = await self.session.execute(
            update(OrderModel)
            .execution_options(synchronize_session=False)
            .where(OrderModel.id == order_id, OrderModel.status == expected)
            .values(**values)
        )
        return result.rowcount == 1

    async def compare_and_set_payment(
        self, order_id: int, expected: PaymentStatus, **values
    ) -> bool:
        result = await self.session.execute(
            update(OrderModel)
            .execution_options(synchronize_session=False)
            .where(OrderModel.id == order_id, OrderModel.payment_status == expected)
            .values(**values)
        )
        return result.rowcount == 1

    async def list_for_party(
        self,
        user_id: int,
        as_driver: bool,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[OrderModel], int]:
        party = OrderModel.driver_id if as_driver else OrderModel.client_id
        conditions = [party == user_id]
        if status is not None:
            conditions.append(OrderModel.status == status)

        result = await self.session.execute(
            select(OrderModel)
            .where(*conditions)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        total = await self.session.execute(
            select(func.count()).select_from(OrderModel).where(*conditions)
        )
        return list(result.scalars().all()), total.scalar() or 0

    async def get_awaiting_confirmation(self) -> list[OrderModel]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.payment_status == PaymentStatus.PROOF_SUBMITTED)
            .order_by(OrderModel.payment_proof_submitted_at)
        )
        return list(result.scalars().all())

    async def count(self, since: Optional[datetime] = None) -> int:
        query = select(func.count()).select_from(OrderModel)
        if since is not None:
            query = query.where(OrderModel.created_at >= since)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def count_by_payment_status(self, status: PaymentStatus) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(OrderModel)
            .where(OrderModel.payment_status == status)
        )
        return result.scalar() or 0

    async def platform_revenue_since(self, since: datetime) -> float:
        """Platform fees of orders completed since *since* with a settled payment."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(OrderModel.payment_platform_fee), 0.0)).where(
                OrderModel.completed_at >= since,
                OrderModel.payment_status.in_(
                    [PaymentStatus.CONFIRMED, PaymentStatus.PAID_TO_DRIVER]
                ),
            )
        )
        return float(result.scalar() or 0.0)

    # ── Child collections ────────────────────────────────────────────

    async def append_message(self, message: OrderMessageModel) -> OrderMessageModel:
        self.session.add(message)
        await self.session.flush()
        return message

    async def get_messages(self, order_id: int) -> list[OrderMessageModel]:
        result = await self.session.execute(
            select(OrderMessageModel)
            .where(OrderMessageModel.order_id == order_id)
            .order_by(OrderMessageModel.id)
        )
        return list(result.scalars().all())

    async def append_tracking_point(self, point: TrackingPointModel) -> None:
        self.session.add(point)
        await self.session.flush()

    async def get_tracking_points(self, order_id: int) -> list[TrackingPointModel]:
        result = await self.session.execute(
            select(TrackingPointModel)
            .where(TrackingPointModel.order_id == order_id)
            .order_by(TrackingPointModel.id)
        )
        return list(result.scalars().all())

    async def add_photo(self, photo: OrderPhotoModel) -> OrderPhotoModel:
        self.session.add(photo)
        await self.session.flush()
        return photo

    async def get_photos(self, order_id: int) -> list[OrderPhotoModel]:
        result = await self.session.execute(
            select(OrderPhotoModel)
            .where(OrderPhotoModel.order_id == order_id)
            .order_by(OrderPhotoModel.id)
        )
        return list(result.scalars().all())


class WalletTransactionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, tx: WalletTransactionModel) -> WalletTransactionModel:
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def get_by_id(self, tx_id: int) -> Optional[WalletTransactionModel]:
        return await self.session.get(WalletTransactionModel, tx_id)

    async def get_for_update(self, tx_id: int) -> Optional[WalletTransactionModel]:
        result = await self.session.execute(
            select(WalletTransactionModel)
            .where(WalletTransactionModel.id == tx_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def compare_and_set_status(
        self, tx_id: int, expected: WalletTxStatus, **values
    ) -> bool:
        result = await self.session.execute(
            update(WalletTransactionModel)
            .execution_options(synchronize_session=False)
            .where(
                WalletTransactionModel.id == tx_id,
                WalletTransactionModel.status == expected,
            )
            .values(**values)
        )
        return result.rowcount == 1

    async def list_for_user(
        self, user_id: int, limit: int = 20
    ) -> list[WalletTransactionModel]:
        result = await self.session.execute(
            select(WalletTransactionModel)
            .where(WalletTransactionModel.user_id == user_id)
            .order_by(
                WalletTransactionModel.created_at.desc(),
                WalletTransactionModel.id.desc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_pending(self) -> list[WalletTransactionModel]:
        result = await self.session.execute(
            select(WalletTransactionModel)
            .where(WalletTransactionModel.status == WalletTxStatus.PENDING)
            .order_by(WalletTransactionModel.id)
        )
        return list(result.scalars().all())
