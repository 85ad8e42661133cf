"""
Domain entities with business logic.

Patterns used
-------------
- **Immutable entries** for the ephemeral registries: ``DriverPosition`` and
  ``OrderSession`` are frozen and replaced as a whole on every write, so a
  reader never observes an entry mid-update.
- **State Pattern** guards: ``ensure_order_transition`` and
  ``ensure_payment_transition`` enforce the lifecycle graphs in ``enums``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from .enums import (
    ORDER_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    TERMINAL_STATUSES,
    OrderStatus,
    PaymentStatus,
    UserType,
)
from .errors import InvalidStateTransition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Caller:
    """Identity resolved from a bearer token."""

    user_id: int
    role: UserType

    @property
    def is_admin(self) -> bool:
        return self.role == UserType.ADMIN


# ── Ephemeral entities ────────────────────────────────────────────────


@dataclass(frozen=True)
class DriverPosition:
    driver_id: int
    lat: float
    lon: float
    speed: float = 0.0
    heading: float = 0.0
    battery: float = 100.0
    is_online: bool = True
    last_update: datetime = field(default_factory=utcnow)
    handle: Optional[str] = None
    h3_cell: Optional[str] = None

    def gone_offline(self) -> "DriverPosition":
        return replace(self, is_online=False)

    def to_wire(self) -> dict:
        """Observer view of the entry; the connectivity handle stays private."""
        return {
            "driverId": self.driver_id,
            "lat": self.lat,
            "lon": self.lon,
            "speed": self.speed,
            "heading": self.heading,
            "battery": self.battery,
            "isOnline": self.is_online,
            "lastUpdate": self.last_update.isoformat(),
        }


@dataclass(frozen=True)
class OrderSession:
    order_id: int
    driver_id: Optional[int] = None
    driver_handle: Optional[str] = None
    client_id: Optional[int] = None
    client_handle: Optional[str] = None
    status: Optional[OrderStatus] = None
    updated_at: datetime = field(default_factory=utcnow)
    closed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.closed_at is None

    def handle_for(self, role: UserType) -> Optional[str]:
        if role == UserType.DRIVER:
            return self.driver_handle
        if role == UserType.CLIENT:
            return self.client_handle
        return None


# ── State machine guards ──────────────────────────────────────────────


def ensure_order_transition(current: OrderStatus, new: OrderStatus) -> None:
    """Raise ``InvalidStateTransition`` unless *current* -> *new* is in the graph."""
    current, new = OrderStatus(current), OrderStatus(new)
    if new not in ORDER_TRANSITIONS.get(current, set()):
        raise InvalidStateTransition(
            f"Transition impossible de {current.value} vers {new.value}",
            f"Cannot transition from {current.value} to {new.value}",
        )


def ensure_payment_transition(current: PaymentStatus, new: PaymentStatus) -> None:
    current, new = PaymentStatus(current), PaymentStatus(new)
    if new not in PAYMENT_TRANSITIONS.get(current, set()):
        raise InvalidStateTransition(
            f"Paiement: transition impossible de {current.value} vers {new.value}",
            f"Payment cannot transition from {current.value} to {new.value}",
        )


def is_terminal(status: Optional[OrderStatus]) -> bool:
    return status in TERMINAL_STATUSES
