"""
Order Lifecycle Manager
=======================

Creates orders and drives them through the status graph in
``src.domain.enums.ORDER_TRANSITIONS``.

Concurrency
-----------
Every transition loads the order ``FOR UPDATE`` and writes it back with a
compare-and-set on the status it read, so two concurrent callers can never
both move the same order; the loser gets ``ConcurrentUpdate``.

Side effects of a transition are committed in the same transaction as the
status itself (driver stats on completion).  Real-time notification happens
only after the commit.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.distance import path_length_km, round_half_up
from src.domain.entities import Caller, ensure_order_transition, utcnow
from src.domain.enums import OrderStatus, PaymentMethod, PhotoKind, ServiceType, UserType
from src.domain.errors import (
    AuthorizationError,
    ConcurrentUpdate,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from src.domain.pricing import PricingEngine
from src.infrastructure.models import OrderModel, OrderPhotoModel
from src.infrastructure.repositories import (
    OrderRepository,
    SequenceRepository,
    UserRepository,
    VehicleRepository,
)
from src.realtime.router import EventRouter

logger = logging.getLogger(__name__)

ORDER_NUMBER_SEQUENCE = "order_number"
DRIVER_REFUSED = "Driver refused"

# What an order's client may do on its own.
_CLIENT_CANCELLABLE = {OrderStatus.PENDING, OrderStatus.ACCEPTED}


def _geopoint(location: Optional[dict]) -> Optional[tuple[float, float]]:
    if not location:
        return None
    lat, lon = location.get("lat"), location.get("lon")
    if lat is None or lon is None:
        return None
    return float(lat), float(lon)


class OrderLifecycleManager:
    def __init__(
        self,
        session: AsyncSession,
        router: EventRouter,
        pricing: Optional[PricingEngine] = None,
        number_prefix: str = settings.order_number_prefix,
        currency: str = settings.currency,
    ):
        self.session = session
        self.router = router
        self.pricing = pricing or PricingEngine(
            fee_rate=settings.platform_fee_rate,
            default_minimum_price=settings.default_minimum_price,
            default_price_per_km=settings.default_price_per_km,
        )
        self.number_prefix = number_prefix
        self.currency = currency
        self.orders = OrderRepository(session)

    # ── Creation ──────────────────────────────────────────────────────

    async def create_order(
        self,
        caller: Caller,
        vehicle_id: int,
        service_type: ServiceType,
        pickup: dict[str, Any],
        payment_method: PaymentMethod,
        dropoff: Optional[dict[str, Any]] = None,
        cargo: Optional[dict[str, Any]] = None,
        payment_provider: Optional[str] = None,
        scheduled_at=None,
        rental_hours: Optional[float] = None,
        rental_days: Optional[float] = None,
    ) -> OrderModel:
        if caller.role != UserType.CLIENT:
            raise AuthorizationError("Réservé aux clients", "Clients only")

        vehicle = await VehicleRepository(self.session).get_by_id(vehicle_id)
        if vehicle is None:
            raise NotFoundError("Véhicule non trouvé", "Vehicle not found")
        if not vehicle.is_available:
            raise ValidationError("Véhicule non disponible", "Vehicle not available")

        service_type = ServiceType(service_type)
        rates = self.pricing.rates_for(vehicle.minimum_price, vehicle.price_per_km)
        quote = self.pricing.quote(
            rates, service_type, _geopoint(pickup), _geopoint(dropoff)
        )

        seq = await SequenceRepository(self.session).next_value(ORDER_NUMBER_SEQUENCE)
        order = await self.orders.create(
            OrderModel(
                order_number=f"{self.number_prefix}-{utcnow().year}-{seq:05d}",
                client_id=caller.user_id,
                driver_id=vehicle.driver_id,
                vehicle_id=vehicle.id,
                status=OrderStatus.PENDING,
                service_type=service_type,
                pickup=pickup,
                dropoff=dropoff,
                cargo=cargo,
                estimated_km=(
                    round_half_up(quote.estimated_km, 1)
                    if quote.estimated_km is not None
                    else None
                ),
                rental_hours=rental_hours,
                rental_days=rental_days,
                scheduled_at=scheduled_at,
                payment_method=PaymentMethod(payment_method),
                payment_provider=payment_provider,
                payment_amount=quote.amount,
                payment_currency=self.currency,
                payment_platform_fee=quote.platform_fee,
                payment_driver_share=quote.driver_share,
            )
        )
        await self.session.commit()
        await self.session.refresh(order)
        logger.info(
            "Order %s created (%s, amount %.0f)",
            order.order_number,
            service_type.value,
            order.payment_amount,
        )

        await self.router.notify_new_order(
            order.id,
            order.client_id,
            order.driver_id,
            {
                "orderId": order.id,
                "orderNumber": order.order_number,
                "pickup": order.pickup,
                "cargo": order.cargo,
                "amount": order.payment_amount,
                "driverShare": order.payment_driver_share,
            },
        )
        return order

    # ── Transitions ───────────────────────────────────────────────────

    async def respond(self, caller: Caller, order_id: int, accept: bool) -> OrderModel:
        """The assigned driver accepts or refuses a pending order."""
        order = await self._load_for_update(order_id)
        if caller.user_id != order.driver_id:
            raise AuthorizationError()
        if OrderStatus(order.status) != OrderStatus.PENDING:
            raise InvalidStateTransition(
                "Commande déjà traitée", "Order already handled"
            )
        if accept:
            return await self._apply(order, OrderStatus.ACCEPTED)
        return await self._apply(order, OrderStatus.CANCELLED, reason=DRIVER_REFUSED)

    async def change_status(
        self,
        caller: Caller,
        order_id: int,
        status: OrderStatus,
        reason: Optional[str] = None,
    ) -> OrderModel:
        status = OrderStatus(status)
        order = await self._load_for_update(order_id)
        self._authorize_transition(caller, order, status)
        return await self._apply(order, status, reason=reason)

    def _authorize_transition(
        self, caller: Caller, order: OrderModel, status: OrderStatus
    ) -> None:
        if status == OrderStatus.ACCEPTED:
            if caller.user_id != order.driver_id:
                raise AuthorizationError(
                    "Seul le chauffeur assigné peut accepter",
                    "Only the assigned driver can accept",
                )
            return
        if caller.is_admin or caller.user_id == order.driver_id:
            return
        if caller.user_id == order.client_id:
            if status == OrderStatus.DISPUTED:
                return
            if status == OrderStatus.CANCELLED and order.status in _CLIENT_CANCELLABLE:
                return
        raise AuthorizationError()

    async def _apply(
        self, order: OrderModel, status: OrderStatus, reason: Optional[str] = None
    ) -> OrderModel:
        current = OrderStatus(order.status)
        ensure_order_transition(current, status)

        now = utcnow()
        values: dict[str, Any] = {"status": status}
        if status == OrderStatus.ACCEPTED:
            values["accepted_at"] = now
        elif status == OrderStatus.IN_TRANSIT:
            values["started_at"] = now
        elif status == OrderStatus.CANCELLED:
            values["cancelled_at"] = now
            values["cancel_reason"] = reason

        credited_km = None
        if status == OrderStatus.COMPLETED:
            values["completed_at"] = now
            points = await self.orders.get_tracking_points(order.id)
            if len(points) >= 2:
                values["actual_km"] = round_half_up(
                    path_length_km((p.lat, p.lon) for p in points), 1
                )
            credited_km = values.get("actual_km")
            if credited_km is None:
                credited_km = order.estimated_km or 0.0

        if not await self.orders.compare_and_set_status(order.id, current, **values):
            raise ConcurrentUpdate()
        if credited_km is not None:
            await UserRepository(self.session).increment_driver_stats(
                order.driver_id, credited_km
            )

        await self.session.commit()
        await self.session.refresh(order)
        logger.info(
            "Order %s: %s -> %s", order.order_number, current.value, status.value
        )

        await self.router.notify_order_status(
            order.id, status, order.client_id, order.driver_id
        )
        return order

    # ── Verification & queries ────────────────────────────────────────

    async def record_verification_photo(
        self, caller: Caller, order_id: int, kind: PhotoKind, url: str
    ) -> OrderPhotoModel:
        kind = PhotoKind(kind)
        order = await self._load_for_update(order_id)
        if caller.user_id != order.driver_id:
            raise AuthorizationError()
        if not url:
            raise ValidationError("Photo requise", "Photo required")

        photo = await self.orders.add_photo(
            OrderPhotoModel(order_id=order.id, kind=kind, url=url)
        )
        confirmed = (
            "loading_confirmed_at" if kind == PhotoKind.LOADING else "unloading_confirmed_at"
        )
        setattr(order, confirmed, utcnow())
        await self.session.commit()
        await self.session.refresh(photo)
        return photo

    async def get_order(self, caller: Caller, order_id: int) -> OrderModel:
        order = await self.orders.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Commande non trouvée", "Order not found")
        if not caller.is_admin and caller.user_id not in (order.client_id, order.driver_id):
            raise AuthorizationError()
        return order

    async def list_orders(
        self,
        caller: Caller,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[OrderModel], int]:
        return await self.orders.list_for_party(
            caller.user_id,
            as_driver=caller.role == UserType.DRIVER,
            status=OrderStatus(status) if status is not None else None,
            page=page,
            limit=limit,
        )

    async def _load_for_update(self, order_id: int) -> OrderModel:
        order = await self.orders.get_for_update(order_id)
        if order is None:
            raise NotFoundError("Commande non trouvée", "Order not found")
        return order
