"""
WebSocket connection manager.

Every accepted socket gets an opaque connectivity *handle* (a uuid string);
the handle, not the user id, is what the registries store and what targeted
delivery addresses.  A user may hold several live connections at once.

Events that must reach a user who is offline go to the Redis outbox and are
replayed, oldest first, on that user's next ``connect``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from fastapi import WebSocket
from redis.exceptions import RedisError

from src.domain.entities import utcnow
from src.domain.enums import UserType
from src.infrastructure.outbox import RedisOutbox

logger = logging.getLogger(__name__)


def envelope(event: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"event": event, "data": data}


@dataclass
class ConnectionInfo:
    websocket: WebSocket
    handle: str
    user_id: int
    role: UserType
    connected_at: datetime = field(default_factory=utcnow)


class ConnectionManager:
    def __init__(self, outbox: Optional[RedisOutbox] = None) -> None:
        self.outbox = outbox
        # handle -> ConnectionInfo
        self._connections: dict[str, ConnectionInfo] = {}
        # user_id -> handles
        self._by_user: dict[int, set[str]] = {}

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    def get(self, handle: str) -> Optional[ConnectionInfo]:
        return self._connections.get(handle)

    def handles_for(self, user_id: int) -> set[str]:
        return set(self._by_user.get(user_id, ()))

    async def connect(self, websocket: WebSocket, user_id: int, role: UserType) -> str:
        """Accept the socket, register it and replay the user's queued events."""
        await websocket.accept()

        handle = uuid.uuid4().hex
        self._connections[handle] = ConnectionInfo(
            websocket=websocket, handle=handle, user_id=user_id, role=role
        )
        self._by_user.setdefault(user_id, set()).add(handle)
        logger.info("Connected %s user %s (handle %s)", role.value, user_id, handle)

        if self.outbox is not None:
            try:
                queued = await self.outbox.drain(user_id)
            except RedisError:
                logger.warning("Outbox unavailable, nothing replayed for user %s", user_id)
                queued = []
            for message in queued:
                if not await self.send(handle, message):
                    break
        return handle

    def disconnect(self, handle: str) -> Optional[ConnectionInfo]:
        conn = self._connections.pop(handle, None)
        if conn is None:
            return None
        handles = self._by_user.get(conn.user_id)
        if handles is not None:
            handles.discard(handle)
            if not handles:
                del self._by_user[conn.user_id]
        logger.info("Disconnected user %s (handle %s)", conn.user_id, handle)
        return conn

    async def send(self, handle: Optional[str], message: dict[str, Any]) -> bool:
        """
        Targeted delivery to one connection.

        Returns:
            True if the message was written, False if the handle is not
            connected (a failed write drops the connection).
        """
        conn = self._connections.get(handle) if handle else None
        if conn is None:
            return False
        try:
            await conn.websocket.send_json(message)
        except Exception:
            logger.debug("Send to %s failed, dropping connection", handle, exc_info=True)
            self.disconnect(handle)
            return False
        return True

    async def send_to_user(self, user_id: int, message: dict[str, Any]) -> int:
        """Send to every live connection of *user_id*; returns deliveries."""
        sent = 0
        for handle in self.handles_for(user_id):
            if await self.send(handle, message):
                sent += 1
        return sent

    async def broadcast(
        self, message: dict[str, Any], exclude: Optional[Iterable[str]] = None
    ) -> int:
        """Send to all connections except the handles in *exclude*."""
        skip = set(exclude or ())
        sent = 0
        for handle in list(self._connections):
            if handle in skip:
                continue
            if await self.send(handle, message):
                sent += 1
        return sent

    def get_stats(self) -> dict[str, Any]:
        roles: dict[str, int] = {}
        for conn in list(self._connections.values()):
            roles[conn.role.value] = roles.get(conn.role.value, 0) + 1
        return {
            "active_connections": self.active_connections,
            "connected_users": len(self._by_user),
            "by_role": roles,
        }
