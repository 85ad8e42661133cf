"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.domain.enums import (
    MessageType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PhotoKind,
    SenderType,
    ServiceType,
    WalletTxStatus,
    WalletTxType,
)


# ── Requests ──────────────────────────────────────────────────────────


class Location(BaseModel):
    address: Optional[str] = Field(None, max_length=255)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lon: Optional[float] = Field(None, ge=-180, le=180)
    instructions: Optional[str] = Field(None, max_length=500)
    contact_name: Optional[str] = Field(None, max_length=120)
    contact_phone: Optional[str] = Field(None, max_length=32)


class CargoInfo(BaseModel):
    kind: Optional[str] = Field(None, max_length=60)
    description: Optional[str] = Field(None, max_length=500)
    estimated_volume_m3: Optional[float] = Field(None, ge=0)
    estimated_weight_kg: Optional[float] = Field(None, ge=0)
    requires_loading_help: bool = False


class OrderCreateRequest(BaseModel):
    vehicle_id: int
    service_type: ServiceType = ServiceType.TRANSPORT
    pickup: Location
    dropoff: Optional[Location] = None
    cargo: Optional[CargoInfo] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_provider: Optional[str] = Field(None, max_length=20)
    scheduled_at: Optional[datetime] = None
    rental_hours: Optional[float] = Field(None, gt=0)
    rental_days: Optional[float] = Field(None, gt=0)


class RespondRequest(BaseModel):
    accept: bool


class StatusChangeRequest(BaseModel):
    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=255)


class VerificationPhotoRequest(BaseModel):
    kind: PhotoKind
    url: str = Field(..., min_length=1, max_length=500)


class PaymentProofRequest(BaseModel):
    proof_url: Optional[str] = Field(None, max_length=500)
    transaction_id: Optional[str] = Field(None, max_length=100)
    provider: Optional[str] = Field(None, max_length=20)


class RechargeRequest(BaseModel):
    amount: float = Field(..., gt=0)
    provider: Optional[str] = Field(None, max_length=20)
    proof_url: Optional[str] = Field(None, max_length=500)
    transaction_id: Optional[str] = Field(None, max_length=100)


class RejectRechargeRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=255)


# ── Responses ─────────────────────────────────────────────────────────


class OrderResponse(BaseModel):
    id: int
    order_number: str
    client_id: int
    driver_id: int
    vehicle_id: int
    status: OrderStatus
    service_type: ServiceType
    pickup: dict[str, Any]
    dropoff: Optional[dict[str, Any]] = None
    cargo: Optional[dict[str, Any]] = None
    estimated_km: Optional[float] = None
    actual_km: Optional[float] = None
    rental_hours: Optional[float] = None
    rental_days: Optional[float] = None

    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_amount: float
    payment_currency: Optional[str] = None
    payment_platform_fee: float
    payment_driver_share: float
    payment_proof_url: Optional[str] = None
    payment_proof_transaction_id: Optional[str] = None
    payment_confirmed_at: Optional[datetime] = None

    loading_confirmed_at: Optional[datetime] = None
    unloading_confirmed_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    id: int
    sender_id: Optional[int] = None
    sender_type: SenderType
    message: str
    message_type: MessageType
    sent_at: datetime

    model_config = {"from_attributes": True}


class TrackingPointResponse(BaseModel):
    lat: float
    lon: float
    speed: Optional[float] = None
    recorded_at: datetime

    model_config = {"from_attributes": True}


class PhotoResponse(BaseModel):
    id: int
    order_id: int
    kind: PhotoKind
    url: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderDetailResponse(OrderResponse):
    messages: list[MessageResponse] = []
    tracking: list[TrackingPointResponse] = []
    photos: list[PhotoResponse] = []


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total: int
    page: int
    pages: int


class WalletTransactionResponse(BaseModel):
    id: int
    user_id: int
    tx_type: WalletTxType
    amount: float
    currency: Optional[str] = None
    provider: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    status: WalletTxStatus
    order_id: Optional[int] = None
    confirmed_at: Optional[datetime] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class WalletResponse(BaseModel):
    balance: float
    currency: str
    transactions: list[WalletTransactionResponse] = []


class PendingSettlementsResponse(BaseModel):
    order_payments: list[OrderResponse] = []
    wallet_recharges: list[WalletTransactionResponse] = []


class StatsResponse(BaseModel):
    total_users: int
    total_drivers: int
    total_vehicles: int
    total_orders: int
    orders_today: int
    pending_payments: int
    revenue_today: float
    online_drivers: int


class DriverPositionResponse(BaseModel):
    driver_id: int
    lat: float
    lon: float
    speed: float
    heading: float
    battery: float
    is_online: bool
    last_update: datetime

    model_config = {"from_attributes": True}


class NearbyDriverResponse(DriverPositionResponse):
    distance_km: float


class HealthResponse(BaseModel):
    status: str = "ok"
    connections: int = 0
    connected_users: int = 0
    by_role: dict[str, int] = {}
    sessions: int = 0
    known_drivers: int = 0
