"""
FastAPI application factory.

* Builds the dispatch core once per app: Position Registry, Session Table,
  connection manager (with its Redis outbox), durable store facade and the
  Event Router, all kept on ``app.state``.
* Registers REST routes for orders, wallet, drivers and admin, and the
  ``/ws`` real-time channel.
* Starts / stops the background session sweeper via lifespan events.
* Applies rate limiting and renders every ``DispatchError`` as
  ``{"success": false, "code", "message": {"fr", "en"}}``.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
import random
from typing import Callable, Optional

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.middleware import limiter
from src.api.routes import admin, drivers, orders, realtime, wallet
from src.api.security import TokenAuthority
from src.config import settings
from src.domain.errors import DispatchError, ValidationError
from src.domain.pricing import PricingEngine
from src.infrastructure.database import async_session_factory
from src.infrastructure.outbox import RedisOutbox, connect_redis
from src.infrastructure.store import DurableStore
from src.realtime.connections import ConnectionManager
from src.realtime.registry import PositionRegistry
from src.realtime.router import EventRouter
from src.realtime.sessions import SessionTable
from src.workers import session_sweeper as _sweeper

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the session sweeper on startup; stop it on shutdown."""
    await _sweeper.start_sweeper_loop(
        app.state.sessions,
        interval_seconds=settings.sweep_interval_seconds,
        ttl_seconds=settings.session_ttl_seconds,
    )
    yield
    await _sweeper.stop_sweeper_loop()
    if app.state.owns_redis:
        await app.state.redis.aclose()


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error = ValidationError()
    content = error.to_payload()
    content["errors"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=error.status_code, content=content)


def create_app(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    redis_client: Optional[aioredis.Redis] = None,
    sample_rate: Optional[float] = None,
    sampler: Callable[[], float] = random.random,
) -> FastAPI:
    app = FastAPI(
        title="En-Route Dispatch API",
        description=(
            "Real-time dispatch for freight and equipment rental: live driver "
            "positions, order sessions between client and driver, the order "
            "lifecycle and payment / wallet settlement."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Dispatch core
    session_factory = session_factory or async_session_factory
    app.state.owns_redis = redis_client is None
    app.state.redis = redis_client if redis_client is not None else connect_redis()
    app.state.session_factory = session_factory
    app.state.tokens = TokenAuthority()
    app.state.pricing = PricingEngine(
        fee_rate=settings.platform_fee_rate,
        default_minimum_price=settings.default_minimum_price,
        default_price_per_km=settings.default_price_per_km,
    )
    app.state.registry = PositionRegistry(
        stripes=settings.registry_stripes, h3_resolution=settings.h3_resolution
    )
    app.state.sessions = SessionTable(stripes=settings.registry_stripes)
    app.state.connections = ConnectionManager(
        RedisOutbox(
            app.state.redis,
            max_events=settings.outbox_max_events,
            ttl_seconds=settings.outbox_ttl_seconds,
        )
    )
    app.state.router = EventRouter(
        app.state.registry,
        app.state.sessions,
        app.state.connections,
        DurableStore(session_factory, timeout_seconds=settings.store_timeout_seconds),
        sample_rate=settings.location_sample_rate if sample_rate is None else sample_rate,
        sampler=sampler,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Errors
    app.add_exception_handler(DispatchError, dispatch_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Routers
    app.include_router(orders.router, prefix="/api/v1")
    app.include_router(wallet.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")
    app.include_router(realtime.router)

    return app
