"""
Session Table
=============

Ephemeral binding ``order_id -> OrderSession`` between an order and the two
connections allowed to exchange real-time events about it.

* The client side and the driver side are set independently: a track request
  never touches the driver fields and an accept never touches the client
  fields.
* An entry may be created by either side first; the other side fills in
  later.
* Party ids come from the committed order.  When a side's party id changes,
  the handle bound on that side belonged to someone else and is dropped.
* Once the mirrored status becomes terminal the entry is stamped
  ``closed_at`` and later evicted by the session sweeper.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from src.domain.entities import OrderSession, is_terminal, utcnow
from src.domain.enums import OrderStatus
from src.infrastructure.locks import StripedLock

# Statuses an accept event may move forward from.
_BEFORE_ACCEPT = (None, OrderStatus.PENDING)


def _with_parties(
    session: OrderSession, client_id: Optional[int], driver_id: Optional[int]
) -> OrderSession:
    """Apply committed party ids (None leaves a side alone)."""
    if client_id is not None and client_id != session.client_id:
        session = replace(session, client_id=client_id, client_handle=None)
    if driver_id is not None and driver_id != session.driver_id:
        session = replace(session, driver_id=driver_id, driver_handle=None)
    return session


class SessionTable:
    def __init__(self, stripes: int = 64):
        self._entries: dict[int, OrderSession] = {}
        self._by_driver: dict[int, set[int]] = defaultdict(set)
        self._locks = StripedLock(stripes)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, order_id: int) -> Optional[OrderSession]:
        return self._entries.get(order_id)

    async def open(self, order_id: int) -> OrderSession:
        """The entry for *order_id*, created empty (no parties, no handles) if missing."""
        async with self._locks.for_key(order_id):
            session = self._entries.get(order_id)
            if session is None:
                session = OrderSession(order_id=order_id)
                self._store(session, session)
        return session

    async def attach_client(
        self,
        order_id: int,
        client_id: int,
        handle: str,
        driver_id: Optional[int] = None,
    ) -> OrderSession:
        """Bind the client side; *driver_id*, when given, is the order's committed driver."""
        async with self._locks.for_key(order_id):
            current = self._entries.get(order_id) or OrderSession(order_id=order_id)
            session = replace(
                _with_parties(current, None, driver_id),
                client_id=client_id,
                client_handle=handle,
                updated_at=utcnow(),
            )
            self._store(current, session)
        return session

    async def attach_driver(
        self,
        order_id: int,
        driver_id: int,
        handle: str,
        client_id: Optional[int] = None,
    ) -> OrderSession:
        """Bind the driver side and mark the session accepted (never backwards)."""
        async with self._locks.for_key(order_id):
            current = self._entries.get(order_id) or OrderSession(order_id=order_id)
            status = (
                OrderStatus.ACCEPTED if current.status in _BEFORE_ACCEPT else current.status
            )
            session = replace(
                _with_parties(current, client_id, None),
                driver_id=driver_id,
                driver_handle=handle,
                status=status,
                updated_at=utcnow(),
            )
            self._store(current, session)
        return session

    async def set_status(
        self,
        order_id: int,
        status: OrderStatus,
        client_id: Optional[int] = None,
        driver_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> OrderSession:
        """
        Mirror a committed order status into the session.

        Creates the entry (without handles) if the order has none yet.  The
        given party ids replace the entry's; a handle bound by anyone else is
        dropped.
        """
        now = now or utcnow()
        status = OrderStatus(status)
        async with self._locks.for_key(order_id):
            current = self._entries.get(order_id) or OrderSession(order_id=order_id)
            closed_at = current.closed_at
            if is_terminal(status):
                closed_at = closed_at or now
            session = replace(
                _with_parties(current, client_id, driver_id),
                status=status,
                updated_at=now,
                closed_at=closed_at,
            )
            self._store(current, session)
        return session

    def for_driver(self, driver_id: int) -> list[OrderSession]:
        """Active (not closed) sessions whose driver side is *driver_id*."""
        sessions = []
        for order_id in tuple(self._by_driver.get(driver_id, ())):
            session = self._entries.get(order_id)
            if session is not None and session.is_active and session.driver_id == driver_id:
                sessions.append(session)
        return sessions

    async def evict(self, order_id: int) -> bool:
        async with self._locks.for_key(order_id):
            session = self._entries.pop(order_id, None)
            if session is None:
                return False
            self._unindex(session)
        return True

    async def evict_expired(self, now: datetime, ttl_seconds: float) -> list[int]:
        """Drop sessions closed more than *ttl_seconds* before *now*."""
        cutoff = now - timedelta(seconds=ttl_seconds)
        expired = [
            s.order_id
            for s in list(self._entries.values())
            if s.closed_at is not None and s.closed_at <= cutoff
        ]
        evicted = []
        for order_id in expired:
            async with self._locks.for_key(order_id):
                session = self._entries.get(order_id)
                # Re-check under the lock; the entry may have been replaced.
                if session is None or session.closed_at is None or session.closed_at > cutoff:
                    continue
                del self._entries[order_id]
                self._unindex(session)
                evicted.append(order_id)
        return evicted

    # ── Internals ─────────────────────────────────────────────────────

    def _store(self, previous: OrderSession, session: OrderSession) -> None:
        if previous.driver_id != session.driver_id:
            self._unindex(previous)
        if session.driver_id is not None:
            self._by_driver[session.driver_id].add(session.order_id)
        self._entries[session.order_id] = session

    def _unindex(self, session: OrderSession) -> None:
        if session.driver_id is None:
            return
        orders = self._by_driver.get(session.driver_id)
        if orders is not None:
            orders.discard(session.order_id)
            if not orders:
                del self._by_driver[session.driver_id]
