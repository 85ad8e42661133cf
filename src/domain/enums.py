"""Domain enumerations and state-transition rules."""

import enum


class UserType(str, enum.Enum):
    CLIENT = "client"
    DRIVER = "driver"
    ADMIN = "admin"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DRIVER_COMING = "driver_coming"
    LOADING = "loading"
    IN_TRANSIT = "in_transit"
    UNLOADING = "unloading"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


_ESCAPES = {OrderStatus.CANCELLED, OrderStatus.DISPUTED}

# State machine: maps current status -> set of valid next statuses.
# After acceptance the execution chain may skip forward (rentals have no
# loading / unloading legs) but never move backwards.
ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED} | _ESCAPES,
    OrderStatus.ACCEPTED: {
        OrderStatus.DRIVER_COMING,
        OrderStatus.LOADING,
        OrderStatus.IN_TRANSIT,
    } | _ESCAPES,
    OrderStatus.DRIVER_COMING: {OrderStatus.LOADING, OrderStatus.IN_TRANSIT} | _ESCAPES,
    OrderStatus.LOADING: {OrderStatus.IN_TRANSIT} | _ESCAPES,
    OrderStatus.IN_TRANSIT: {OrderStatus.UNLOADING, OrderStatus.COMPLETED} | _ESCAPES,
    OrderStatus.UNLOADING: {OrderStatus.COMPLETED} | _ESCAPES,
    OrderStatus.DISPUTED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

# Statuses during which driver positions are appended to the order's tracking.
TRACKED_STATUSES = frozenset(
    {OrderStatus.LOADING, OrderStatus.IN_TRANSIT, OrderStatus.UNLOADING}
)


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROOF_SUBMITTED = "proof_submitted"
    CONFIRMED = "confirmed"
    PAID_TO_DRIVER = "paid_to_driver"
    REFUNDED = "refunded"


PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PROOF_SUBMITTED},
    PaymentStatus.PROOF_SUBMITTED: {PaymentStatus.CONFIRMED},
    PaymentStatus.CONFIRMED: {PaymentStatus.PAID_TO_DRIVER, PaymentStatus.REFUNDED},
    PaymentStatus.PAID_TO_DRIVER: set(),
    PaymentStatus.REFUNDED: set(),
}


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    MOBILE_MONEY = "mobile_money"
    AGENCY = "agency"


class ServiceType(str, enum.Enum):
    TRANSPORT = "transport"
    HOURLY_RENTAL = "location_heure"
    DAILY_RENTAL = "location_jour"


class VehicleCategory(str, enum.Enum):
    CONSTRUCTION = "btp"
    AGRICULTURE = "agricole"
    TRANSPORT = "transport"
    LOGISTICS = "logistique"


class WalletTxType(str, enum.Enum):
    RECHARGE = "recharge"
    COMMISSION = "commission"
    WITHDRAWAL = "withdrawal"
    BONUS = "bonus"
    REFUND = "refund"
    PAYOUT = "payout"


class WalletTxStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class SenderType(str, enum.Enum):
    CLIENT = "client"
    DRIVER = "driver"
    SYSTEM = "system"
    BOT = "bot"


class MessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    LOCATION = "location"
    SYSTEM = "system"


class PhotoKind(str, enum.Enum):
    LOADING = "loading"
    UNLOADING = "unloading"
