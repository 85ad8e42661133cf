"""Inbound real-time event payloads (camelCase on the wire)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from src.domain.enums import MessageType, SenderType


class _Inbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LocationReport(_Inbound):
    driver_id: int = Field(..., alias="driverId")
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    speed: float = Field(0.0, ge=0)
    heading: float = 0.0
    battery: float = Field(100.0, ge=0, le=100)
    is_online: bool = Field(True, alias="isOnline")


class TrackRequest(_Inbound):
    order_id: int = Field(..., alias="orderId")
    client_id: int = Field(..., alias="clientId")


class AcceptOrder(_Inbound):
    order_id: int = Field(..., alias="orderId")
    driver_id: int = Field(..., alias="driverId")


class ChatMessage(_Inbound):
    order_id: int = Field(..., alias="orderId")
    sender_id: int = Field(..., alias="senderId")
    sender_type: SenderType = Field(..., alias="senderType")
    message: str = Field(..., min_length=1, max_length=2000)
    message_type: MessageType = Field(MessageType.TEXT, alias="type")
