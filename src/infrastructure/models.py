"""
SQLAlchemy ORM models  (maps to PostgreSQL; SQLite-compatible for tests).

Tables
------
* ``users``                 -- clients, drivers, admins (driver profile + wallet flattened)
* ``vehicles``              -- a driver's vehicles with their rates
* ``orders``                -- transport / rental orders, payment record flattened
* ``order_messages``        -- append-only chat log per order
* ``order_tracking_points`` -- ordered GPS trail captured while the cargo moves
* ``order_photos``          -- loading / unloading verification photo references
* ``wallet_transactions``   -- recharges, payouts and other wallet movements
* ``sequences``             -- named atomic counters (order numbers)

Indexes
-------
* **B-Tree** on ``(client_id, status)``, ``(driver_id, status)``,
  ``payment_status``, ``order_number`` for the party / admin queries.
* ``(user_id, created_at)`` and ``status`` on wallet transactions.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base
from src.domain.enums import (
    MessageType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PhotoKind,
    SenderType,
    ServiceType,
    UserType,
    VehicleCategory,
    WalletTxStatus,
    WalletTxType,
)


def _enum(enum_cls):
    """Store the enum *value* (``"in_transit"``) rather than the member name."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    user_type = Column(_enum(UserType), default=UserType.CLIENT, nullable=False)
    language = Column(String(2), default="fr")

    # Last known position, sampled from the live stream
    location_lat = Column(Float, nullable=True)
    location_lon = Column(Float, nullable=True)
    location_updated_at = Column(DateTime(timezone=True), nullable=True)

    # Driver profile
    driver_is_verified = Column(Boolean, default=False)
    driver_rating = Column(Float, default=5.0)
    total_trips = Column(Integer, default=0, nullable=False)
    total_km = Column(Float, default=0.0, nullable=False)
    wallet_balance = Column(Float, default=0.0, nullable=False)
    wallet_currency = Column(String(3), default="XOF")

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_users_phone", "phone"),
        Index("idx_users_type", "user_type"),
    )


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    category = Column(_enum(VehicleCategory), nullable=False)
    vehicle_type = Column(String(40), nullable=False)
    brand = Column(String(80), nullable=False)
    plate_number = Column(String(20), nullable=False)

    price_per_km = Column(Float, nullable=True)
    price_per_hour = Column(Float, nullable=True)
    price_per_day = Column(Float, nullable=True)
    minimum_price = Column(Float, nullable=True)

    is_available = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_vehicles_driver", "driver_id"),
        Index("idx_vehicles_available", "is_available"),
    )


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(20), unique=True, nullable=False)

    client_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)

    status = Column(_enum(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    service_type = Column(_enum(ServiceType), nullable=False)

    # {address, lat, lon, instructions, contact_name, contact_phone}
    pickup = Column(JSON, nullable=False)
    dropoff = Column(JSON, nullable=True)
    # {kind, description, estimated_volume_m3, estimated_weight_kg, ...}
    cargo = Column(JSON, nullable=True)

    loading_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    unloading_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    client_validated = Column(Boolean, default=False)

    estimated_km = Column(Float, nullable=True)
    actual_km = Column(Float, nullable=True)
    estimated_minutes = Column(Float, nullable=True)
    actual_minutes = Column(Float, nullable=True)
    rental_hours = Column(Float, nullable=True)
    rental_days = Column(Float, nullable=True)

    # Payment record
    payment_method = Column(_enum(PaymentMethod), nullable=False)
    payment_provider = Column(String(20), nullable=True)
    payment_amount = Column(Float, nullable=False)
    payment_currency = Column(String(3), default="XOF")
    payment_platform_fee = Column(Float, nullable=False)
    payment_driver_share = Column(Float, nullable=False)
    payment_status = Column(
        _enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    payment_proof_url = Column(String(500), nullable=True)
    payment_proof_transaction_id = Column(String(100), nullable=True)
    payment_proof_submitted_at = Column(DateTime(timezone=True), nullable=True)
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    payment_confirmed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    payment_paid_out_at = Column(DateTime(timezone=True), nullable=True)
    payment_refunded_at = Column(DateTime(timezone=True), nullable=True)

    # Ratings
    rating_client_to_driver = Column(Float, nullable=True)
    rating_driver_to_client = Column(Float, nullable=True)
    rating_client_comment = Column(Text, nullable=True)
    rating_driver_comment = Column(Text, nullable=True)

    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_orders_client_status", "client_id", "status"),
        Index("idx_orders_driver_status", "driver_id", "status"),
        Index("idx_orders_payment_status", "payment_status"),
        Index("idx_orders_created", "created_at"),
    )


class OrderMessageModel(Base):
    __tablename__ = "order_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    sender_id = Column(Integer, nullable=True)
    sender_type = Column(_enum(SenderType), nullable=False)
    message = Column(Text, nullable=False)
    message_type = Column(_enum(MessageType), default=MessageType.TEXT, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_order_messages_order", "order_id"),)


class TrackingPointModel(Base):
    __tablename__ = "order_tracking_points"

    # ``id`` order is the stored order of the trail.
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    speed = Column(Float, nullable=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_tracking_order", "order_id"),)


class OrderPhotoModel(Base):
    __tablename__ = "order_photos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    kind = Column(_enum(PhotoKind), nullable=False)
    url = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_order_photos_order", "order_id"),)


class WalletTransactionModel(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    tx_type = Column(_enum(WalletTxType), nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="XOF")

    provider = Column(String(20), nullable=True)
    proof_url = Column(String(500), nullable=True)
    provider_transaction_id = Column(String(100), nullable=True)

    status = Column(
        _enum(WalletTxStatus), default=WalletTxStatus.PENDING, nullable=False
    )
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    confirmed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    note = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_wallet_tx_user_created", "user_id", "created_at"),
        Index("idx_wallet_tx_status", "status"),
    )


class SequenceModel(Base):
    __tablename__ = "sequences"

    name = Column(String(40), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
