"""
Real-time channel
=================

WS /ws?token=<bearer>

Envelope in both directions: ``{"event": "<name>", "data": {...}}``.
Messages of one connection are dispatched strictly one after another, in
arrival order.  A rejected event is answered with an ``error`` event and the
connection stays open.
"""

from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from src.domain.errors import AuthenticationError

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_channel(websocket: WebSocket, token: Optional[str] = Query(None)):
    state = websocket.app.state
    try:
        caller = state.tokens.resolve(token)
    except AuthenticationError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    handle = await state.connections.connect(websocket, caller.user_id, caller.role)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                message = None
            await state.router.dispatch(handle, message)
    except WebSocketDisconnect:
        pass
    finally:
        await state.router.on_disconnect(handle)
