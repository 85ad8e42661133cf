"""
Background Session Sweeper
==========================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 60 s).

Order sessions are stamped ``closed_at`` when the order reaches a terminal
status.  They are kept for ``SESSION_TTL_SECONDS`` so late chat lines and
status echoes still find the parties' handles, then evicted here; the
Session Table therefore stays bounded by the number of live orders.

The sweep only touches process memory, so every API process runs its own
sweeper and no cross-process lock is needed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from src.config import settings
from src.domain.entities import utcnow
from src.realtime.sessions import SessionTable

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_sweeper_loop(
    sessions: SessionTable,
    interval_seconds: float = settings.sweep_interval_seconds,
    ttl_seconds: float = settings.session_ttl_seconds,
) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(sessions, interval_seconds, ttl_seconds))
    logger.info(
        "Session sweeper started (interval=%ss, ttl=%ss)", interval_seconds, ttl_seconds
    )


async def stop_sweeper_loop() -> None:
    global _task, _stop_event
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    _task, _stop_event = None, None
    logger.info("Session sweeper stopped")


async def run_sweep_cycle(
    sessions: SessionTable,
    ttl_seconds: float = settings.session_ttl_seconds,
    now: Optional[datetime] = None,
) -> list[int]:
    """Execute one sweep.  Returns the evicted order ids."""
    evicted = await sessions.evict_expired(now or utcnow(), ttl_seconds)
    if evicted:
        logger.info(
            "Session sweep: %d evicted, %d remaining", len(evicted), len(sessions)
        )
    return evicted


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(sessions: SessionTable, interval_seconds: float, ttl_seconds: float) -> None:
    """Periodic loop: sweep then sleep."""
    assert _stop_event is not None
    stop = _stop_event
    while not stop.is_set():
        try:
            await run_sweep_cycle(sessions, ttl_seconds)
        except Exception:
            logger.exception("Unhandled error in session sweep")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            break
        except asyncio.TimeoutError:
            pass  # next cycle
