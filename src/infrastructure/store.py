"""
Durable side effects and lookups of the real-time router.

The router never shares a transaction (or a lock) with the in-memory
registries: each call here opens its own short unit-of-work, bounded by
``store_timeout_seconds``.  Store errors and timeouts surface as
``DurableWriteFailure`` so callers can decide whether the write was optional
(location sample) or required (chat message).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import OrderMessageModel, TrackingPointModel
from .repositories import OrderRepository, UserRepository
from src.domain.enums import MessageType, SenderType
from src.domain.errors import AuthorizationError, DurableWriteFailure, NotFoundError

logger = logging.getLogger(__name__)


class DurableStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: float = 5.0,
    ):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds

    async def _bounded(self, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise DurableWriteFailure(
                "Délai de la base de données dépassé", "Store call timed out"
            ) from exc
        except SQLAlchemyError as exc:
            raise DurableWriteFailure() from exc

    async def order_parties(self, order_id: int) -> Optional[tuple[int, int]]:
        """``(client_id, driver_id)`` of a stored order, or None if there is no such order."""

        async def _read() -> Optional[tuple[int, int]]:
            async with self.session_factory() as session:
                order = await OrderRepository(session).get_by_id(order_id)
                if order is None:
                    return None
                return order.client_id, order.driver_id

        return await self._bounded(_read())

    async def record_driver_location(
        self,
        driver_id: int,
        lat: float,
        lon: float,
        speed: float,
        at: datetime,
        tracked_order_ids: Iterable[int] = (),
    ) -> None:
        """Write the last-known position and extend the trail of moving orders."""

        async def _write() -> None:
            async with self.session_factory() as session:
                await UserRepository(session).update_location(driver_id, lat, lon, at)
                orders = OrderRepository(session)
                for order_id in tracked_order_ids:
                    await orders.append_tracking_point(
                        TrackingPointModel(
                            order_id=order_id,
                            lat=lat,
                            lon=lon,
                            speed=speed,
                            recorded_at=at,
                        )
                    )
                await session.commit()

        await self._bounded(_write())

    async def append_chat_message(
        self,
        order_id: int,
        sender_id: Optional[int],
        sender_type: SenderType,
        message: str,
        message_type: MessageType,
        at: datetime,
    ) -> None:
        """Persist a chat line; the sender must be a party of the order."""

        async def _write() -> None:
            async with self.session_factory() as session:
                repo = OrderRepository(session)
                order = await repo.get_by_id(order_id)
                if order is None:
                    raise NotFoundError("Commande non trouvée", "Order not found")
                party = {
                    SenderType.CLIENT: order.client_id,
                    SenderType.DRIVER: order.driver_id,
                }.get(sender_type)
                if party is None or party != sender_id:
                    raise AuthorizationError()
                await repo.append_message(
                    OrderMessageModel(
                        order_id=order_id,
                        sender_id=sender_id,
                        sender_type=sender_type,
                        message=message,
                        message_type=message_type,
                        sent_at=at,
                    )
                )
                await session.commit()
                logger.debug("Chat message stored for order %s", order_id)

        await self._bounded(_write())

