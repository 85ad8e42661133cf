"""
Event Router
============

Consumes inbound real-time events and fans the results out to the right
connections.

Flow per event
--------------
1. ``driver.location``   -> registry write, ``drivers.update`` broadcast
   (reporter excluded), ``order.driverLocation`` to the client of every
   active session of that driver, then the sampled durable write-back.
2. ``order.track``       -> bind the client handle of the order session; only
   the stored order's client may bind.
3. ``driver.acceptOrder`` -> bind the driver handle, session accepted; only
   the stored order's driver may bind.
4. ``chat.message``      -> required durable append, then delivery to the
   counterpart handle of the session (or the counterpart's other
   connections when that handle is stale).
5. connection close      -> registry entries on that handle go offline and
   are broadcast.

Events of one connection are handled in arrival order by the WebSocket
endpoint; nothing is ordered across connections.  In-memory state is
updated first and never rolled back by a failing durable side effect.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Callable, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from .connections import ConnectionInfo, ConnectionManager, envelope
from .events import AcceptOrder, ChatMessage, LocationReport, TrackRequest
from .registry import PositionRegistry
from .sessions import SessionTable
from src.domain.entities import DriverPosition, OrderSession, utcnow
from src.domain.enums import (
    TRACKED_STATUSES,
    OrderStatus,
    PaymentStatus,
    SenderType,
    UserType,
)
from src.domain.errors import (
    AuthorizationError,
    DispatchError,
    DurableWriteFailure,
    ValidationError,
)
from src.infrastructure.store import DurableStore

logger = logging.getLogger(__name__)


def _parse(model: type[BaseModel], data: Any):
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(
            f"Champ invalide: {field}", f"Invalid field: {field} ({first.get('msg')})"
        ) from exc


class EventRouter:
    def __init__(
        self,
        registry: PositionRegistry,
        sessions: SessionTable,
        connections: ConnectionManager,
        store: DurableStore,
        sample_rate: float = 0.1,
        sampler: Callable[[], float] = random.random,
    ):
        self.registry = registry
        self.sessions = sessions
        self.connections = connections
        self.store = store
        self.sample_rate = sample_rate
        self.sampler = sampler
        self._handlers = {
            "driver.location": self.on_location,
            "order.track": self.on_track,
            "driver.acceptOrder": self.on_accept,
            "chat.message": self.on_chat,
        }

    async def dispatch(self, handle: str, message: Any) -> None:
        """Route one inbound envelope; failures are replied as an ``error`` event."""
        conn = self.connections.get(handle)
        if conn is None:
            return
        event = message.get("event") if isinstance(message, dict) else None
        try:
            handler = self._handlers.get(event)
            if handler is None:
                raise ValidationError(
                    f"Événement inconnu: {event}", f"Unknown event: {event}"
                )
            await handler(conn, message.get("data") or {})
        except DispatchError as exc:
            logger.info("Event %s from %s rejected: %s", event, handle, exc)
            await self.connections.send(
                handle,
                envelope(
                    "error", {"event": event, "code": exc.code, "message": exc.message}
                ),
            )

    # ── Inbound events ────────────────────────────────────────────────

    async def on_location(self, conn: ConnectionInfo, data: dict) -> DriverPosition:
        report = _parse(LocationReport, data)
        if conn.role != UserType.DRIVER or report.driver_id != conn.user_id:
            raise AuthorizationError()

        position = DriverPosition(
            driver_id=report.driver_id,
            lat=report.lat,
            lon=report.lon,
            speed=report.speed,
            heading=report.heading,
            battery=report.battery,
            is_online=report.is_online,
            last_update=utcnow(),
            handle=conn.handle,
        )
        was_online = await self.registry.report(position)
        if position.is_online and not was_online:
            logger.info("Driver %s online", position.driver_id)

        active = self.sessions.for_driver(position.driver_id)

        await self.connections.broadcast(
            envelope("drivers.update", position.to_wire()), exclude={conn.handle}
        )
        for session in active:
            if session.client_handle is None:
                continue
            await self.connections.send(
                session.client_handle,
                envelope(
                    "order.driverLocation",
                    {
                        "orderId": session.order_id,
                        "lat": position.lat,
                        "lon": position.lon,
                        "speed": position.speed,
                        "heading": position.heading,
                    },
                ),
            )

        # After the fan-out, so observers never wait on the store.
        if self.sampler() < self.sample_rate:
            tracked = [s.order_id for s in active if s.status in TRACKED_STATUSES]
            try:
                await self.store.record_driver_location(
                    position.driver_id,
                    position.lat,
                    position.lon,
                    position.speed,
                    position.last_update,
                    tracked_order_ids=tracked,
                )
            except DurableWriteFailure:
                logger.warning(
                    "Sampled location write failed for driver %s", position.driver_id
                )
        return position

    async def on_track(self, conn: ConnectionInfo, data: dict) -> OrderSession:
        """Bind the order's client; an order not stored yet gets an empty entry."""
        request = _parse(TrackRequest, data)
        if conn.role != UserType.CLIENT or request.client_id != conn.user_id:
            raise AuthorizationError()
        parties = await self.store.order_parties(request.order_id)
        if parties is None:
            return await self.sessions.open(request.order_id)
        client_id, driver_id = parties
        if client_id != conn.user_id:
            raise AuthorizationError()
        return await self.sessions.attach_client(
            request.order_id, conn.user_id, conn.handle, driver_id=driver_id
        )

    async def on_accept(self, conn: ConnectionInfo, data: dict) -> OrderSession:
        """Bind the order's assigned driver; an order not stored yet gets an empty entry."""
        request = _parse(AcceptOrder, data)
        if conn.role != UserType.DRIVER or request.driver_id != conn.user_id:
            raise AuthorizationError()
        parties = await self.store.order_parties(request.order_id)
        if parties is None:
            return await self.sessions.open(request.order_id)
        client_id, driver_id = parties
        if driver_id != conn.user_id:
            raise AuthorizationError()
        return await self.sessions.attach_driver(
            request.order_id, conn.user_id, conn.handle, client_id=client_id
        )

    async def on_chat(self, conn: ConnectionInfo, data: dict) -> bool:
        """Persist then deliver; returns whether the counterpart received it."""
        chat = _parse(ChatMessage, data)
        expected = {UserType.CLIENT: SenderType.CLIENT, UserType.DRIVER: SenderType.DRIVER}
        if chat.sender_id != conn.user_id or expected.get(conn.role) != chat.sender_type:
            raise AuthorizationError()

        sent_at = utcnow()
        await self.store.append_chat_message(
            chat.order_id,
            chat.sender_id,
            chat.sender_type,
            chat.message,
            chat.message_type,
            sent_at,
        )

        session = self.sessions.get(chat.order_id)
        if session is None:
            return False
        if chat.sender_type == SenderType.CLIENT:
            target, counterpart = session.driver_handle, session.driver_id
        else:
            target, counterpart = session.client_handle, session.client_id
        if target is None:
            return False

        message = envelope(
            "chat.newMessage",
            {
                "orderId": chat.order_id,
                "senderId": chat.sender_id,
                "senderType": chat.sender_type.value,
                "message": chat.message,
                "type": chat.message_type.value,
                "timestamp": sent_at.isoformat(),
            },
        )
        if await self.connections.send(target, message):
            return True
        # Stale handle: the counterpart may have reconnected on another socket.
        if counterpart is None:
            return False
        return await self.connections.send_to_user(counterpart, message) > 0

    async def on_disconnect(self, handle: str) -> set[int]:
        self.connections.disconnect(handle)
        affected = await self.registry.mark_offline(handle)
        for driver_id in affected:
            position = self.registry.get(driver_id)
            if position is not None:
                await self.connections.broadcast(
                    envelope("drivers.update", position.to_wire())
                )
        return affected

    # ── Outbound notifications (from the services) ────────────────────

    async def notify_new_order(
        self,
        order_id: int,
        client_id: int,
        driver_id: int,
        payload: dict[str, Any],
    ) -> bool:
        """
        Open the order session with its parties and push ``order.new`` to the
        driver's current connection.  Best effort: dropped if the driver is
        not connected.
        """
        await self.sessions.set_status(
            order_id, OrderStatus.PENDING, client_id=client_id, driver_id=driver_id
        )
        position = self.registry.get(driver_id)
        if position is None or not position.is_online:
            logger.info("Order %s not pushed, driver %s not connected", order_id, driver_id)
            return False
        return await self.connections.send(position.handle, envelope("order.new", payload))

    async def notify_order_status(
        self,
        order_id: int,
        status: OrderStatus,
        client_id: Optional[int],
        driver_id: Optional[int],
    ) -> None:
        """Mirror a committed status into the session and tell both parties."""
        status = OrderStatus(status)
        session = await self.sessions.set_status(
            order_id, status, client_id=client_id, driver_id=driver_id
        )
        message = envelope(
            f"order.{order_id}.status", {"orderId": order_id, "status": status.value}
        )
        await self._deliver_to_parties(session, client_id, driver_id, message)

    async def notify_payment_status(
        self,
        order_id: int,
        status: PaymentStatus,
        client_id: Optional[int],
        driver_id: Optional[int],
    ) -> None:
        session = self.sessions.get(order_id) or OrderSession(order_id=order_id)
        message = envelope(
            f"order.{order_id}.payment",
            {"orderId": order_id, "status": PaymentStatus(status).value},
        )
        await self._deliver_to_parties(session, client_id, driver_id, message)

    async def _deliver_to_parties(
        self,
        session: OrderSession,
        client_id: Optional[int],
        driver_id: Optional[int],
        message: dict[str, Any],
    ) -> None:
        for role, user_id in ((UserType.CLIENT, client_id), (UserType.DRIVER, driver_id)):
            if user_id is None:
                continue
            await self._deliver(session.handle_for(role), user_id, message)

    async def _deliver(
        self, handle: Optional[str], user_id: int, message: dict[str, Any]
    ) -> str:
        """Session handle, else any live connection of the user, else the outbox."""
        if handle is not None and await self.connections.send(handle, message):
            return "session"
        if await self.connections.send_to_user(user_id, message):
            return "connection"
        if self.connections.outbox is None:
            return "dropped"
        try:
            await self.connections.outbox.push(user_id, message)
        except RedisError:
            logger.warning("Outbox unavailable, %s lost for user %s", message["event"], user_id)
            return "dropped"
        return "outbox"
