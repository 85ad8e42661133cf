"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) built from the production
models, so tests run without Docker / PostgreSQL / Redis.  The Redis outbox
runs on a small in-process fake that implements the pipeline commands it
uses, and WebSockets are replaced by recorders.
"""

from __future__ import annotations

import itertools
from collections import defaultdict
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import Caller
from src.domain.enums import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ServiceType,
    UserType,
    VehicleCategory,
)
from src.domain.pricing import split_commission
from src.infrastructure.database import Base, build_engine, build_session_factory
from src.infrastructure.models import OrderModel, SequenceModel, UserModel, VehicleModel
from src.infrastructure.outbox import RedisOutbox
from src.infrastructure.store import DurableStore
from src.realtime.connections import ConnectionManager
from src.realtime.registry import PositionRegistry
from src.realtime.router import EventRouter
from src.realtime.sessions import SessionTable

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ── Fakes ─────────────────────────────────────────────────────────────


class FakeRedis:
    """The list commands the outbox pipelines use, kept in memory."""

    def __init__(self):
        self.lists: dict[str, list[str]] = defaultdict(list)
        self.ttls: dict[str, int] = {}

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    async def aclose(self) -> None:
        pass


class FakePipeline:
    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self.ops: list = []

    def rpush(self, key, value):
        self.ops.append(lambda: self.redis.lists[key].append(value) or len(self.redis.lists[key]))

    def ltrim(self, key, start, end):
        def _trim():
            items = self.redis.lists[key]
            stop = None if end == -1 else end + 1
            self.redis.lists[key] = items[start:stop]
            return True

        self.ops.append(_trim)

    def expire(self, key, seconds):
        self.ops.append(lambda: self.redis.ttls.__setitem__(key, seconds) or True)

    def lrange(self, key, start, end):
        self.ops.append(lambda: list(self.redis.lists.get(key, [])))

    def delete(self, key):
        self.ops.append(lambda: 1 if self.redis.lists.pop(key, None) is not None else 0)

    async def execute(self):
        results = [op() for op in self.ops]
        self.ops = []
        return results


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.accepted = False
        self.sent: list[dict] = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)

    def events(self) -> list[str]:
        return [m["event"] for m in self.sent]


class Sampler:
    """Deterministic stand-in for ``random.random``."""

    def __init__(self, value: float = 1.0):
        self.value = value

    def __call__(self) -> float:
        return self.value


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory schema per test, with the order-number sequence seeded."""
    engine = build_engine(TEST_DB_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = build_session_factory(engine)
    async with factory() as session:
        session.add(SequenceModel(name="order_number", value=0))
        await session.commit()
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def people(session_factory):
    """One client, two drivers, one admin and a vehicle per driver."""
    async with session_factory() as session:
        client = UserModel(name="Aïcha", phone="+22997000001", user_type=UserType.CLIENT)
        other_client = UserModel(name="Koffi", user_type=UserType.CLIENT)
        driver = UserModel(name="Serge", user_type=UserType.DRIVER, driver_is_verified=True)
        other_driver = UserModel(name="Ibrahim", user_type=UserType.DRIVER)
        admin = UserModel(name="Ops", user_type=UserType.ADMIN)
        session.add_all([client, other_client, driver, other_driver, admin])
        await session.flush()

        truck = VehicleModel(
            driver_id=driver.id,
            category=VehicleCategory.TRANSPORT,
            vehicle_type="camion_10t",
            brand="Mercedes Actros",
            plate_number="AB 1234 RB",
            minimum_price=5000,
            price_per_km=500,
            is_available=True,
        )
        excavator = VehicleModel(
            driver_id=other_driver.id,
            category=VehicleCategory.CONSTRUCTION,
            vehicle_type="tractopelle",
            brand="JCB 3CX",
            plate_number="BC 3345 RB",
            minimum_price=60000,
            price_per_km=None,
            is_available=False,
        )
        session.add_all([truck, excavator])
        await session.commit()

        return SimpleNamespace(
            client=Caller(client.id, UserType.CLIENT),
            other_client=Caller(other_client.id, UserType.CLIENT),
            driver=Caller(driver.id, UserType.DRIVER),
            other_driver=Caller(other_driver.id, UserType.DRIVER),
            admin=Caller(admin.id, UserType.ADMIN),
            truck_id=truck.id,
            excavator_id=excavator.id,
        )


# ── Dispatch core ─────────────────────────────────────────────────────


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def sampler() -> Sampler:
    return Sampler(1.0)  # never samples unless a test lowers it


@pytest.fixture
def core(session_factory, fake_redis, sampler):
    registry = PositionRegistry(stripes=8)
    sessions = SessionTable(stripes=8)
    connections = ConnectionManager(RedisOutbox(fake_redis))
    router = EventRouter(
        registry,
        sessions,
        connections,
        DurableStore(session_factory, timeout_seconds=2.0),
        sample_rate=0.1,
        sampler=sampler,
    )
    return SimpleNamespace(
        registry=registry,
        sessions=sessions,
        connections=connections,
        router=router,
        redis=fake_redis,
        sampler=sampler,
    )


_order_numbers = itertools.count(1)


async def insert_order(
    session_factory,
    people,
    status: OrderStatus = OrderStatus.PENDING,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    amount: float = 10000.0,
    **fields,
) -> int:
    """Insert an order between ``people.client`` and ``people.driver`` directly."""
    platform_fee, driver_share = split_commission(amount, 0.15)
    async with session_factory() as session:
        order = OrderModel(
            order_number=f"ER-TEST-{next(_order_numbers):05d}",
            client_id=people.client.user_id,
            driver_id=people.driver.user_id,
            vehicle_id=people.truck_id,
            status=status,
            service_type=ServiceType.TRANSPORT,
            pickup={"address": "Port autonome de Cotonou", "lat": 6.3486, "lon": 2.4330},
            dropoff={"address": "Abomey-Calavi", "lat": 6.4485, "lon": 2.3557},
            estimated_km=fields.pop("estimated_km", 14.0),
            payment_method=PaymentMethod.MOBILE_MONEY,
            payment_amount=amount,
            payment_platform_fee=platform_fee,
            payment_driver_share=driver_share,
            payment_status=payment_status,
            **fields,
        )
        session.add(order)
        await session.commit()
        return order.id
