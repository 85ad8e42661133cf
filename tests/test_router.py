"""
Event router tests.

Real registries, connection manager and durable store (SQLite); sockets are
recorders and the Redis outbox runs on the in-memory fake.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from src.domain.enums import OrderStatus, PaymentStatus, UserType
from src.domain.errors import DurableWriteFailure
from src.infrastructure.models import OrderMessageModel, TrackingPointModel, UserModel
from tests.conftest import FakeWebSocket, insert_order


async def _connect(core, user_id, role, fail=False):
    ws = FakeWebSocket(fail=fail)
    handle = await core.connections.connect(ws, user_id, role)
    return ws, handle


def _location(driver_id, lat=6.37, lon=2.39, **extra):
    return {
        "event": "driver.location",
        "data": {"driverId": driver_id, "lat": lat, "lon": lon, **extra},
    }


class TestLocation:
    @pytest.mark.asyncio
    async def test_broadcast_excludes_reporter(self, core, people):
        driver_ws, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        observer_ws, _ = await _connect(core, people.client.user_id, UserType.CLIENT)

        await core.router.dispatch(driver_handle, _location(people.driver.user_id, speed=32.5))

        assert driver_ws.sent == []
        assert observer_ws.events() == ["drivers.update"]
        update = observer_ws.sent[0]["data"]
        assert update["driverId"] == people.driver.user_id
        assert update["speed"] == 32.5
        assert update["isOnline"] is True
        assert "handle" not in update

        entry = core.registry.get(people.driver.user_id)
        assert entry.handle == driver_handle

    @pytest.mark.asyncio
    async def test_session_client_gets_targeted_location(self, core, people):
        driver_ws, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        client_ws, client_handle = await _connect(core, people.client.user_id, UserType.CLIENT)
        await core.sessions.attach_client(42, people.client.user_id, client_handle)
        await core.sessions.attach_driver(42, people.driver.user_id, driver_handle)

        await core.router.dispatch(driver_handle, _location(people.driver.user_id, 6.40, 2.42))

        assert client_ws.events() == ["drivers.update", "order.driverLocation"]
        targeted = client_ws.sent[1]["data"]
        assert targeted == {
            "orderId": 42,
            "lat": 6.40,
            "lon": 2.42,
            "speed": 0.0,
            "heading": 0.0,
        }

    @pytest.mark.asyncio
    async def test_report_for_another_driver_is_rejected(self, core, people):
        driver_ws, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)

        await core.router.dispatch(driver_handle, _location(people.other_driver.user_id))

        assert driver_ws.events() == ["error"]
        assert driver_ws.sent[0]["data"]["code"] == "authorization_error"
        assert core.registry.get(people.other_driver.user_id) is None

    @pytest.mark.asyncio
    async def test_invalid_payload_is_answered_with_error(self, core, people):
        driver_ws, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)

        await core.router.dispatch(driver_handle, _location(people.driver.user_id, lat=123.0))

        error = driver_ws.sent[0]["data"]
        assert error["event"] == "driver.location"
        assert error["code"] == "validation_error"
        assert set(error["message"]) == {"fr", "en"}

    @pytest.mark.asyncio
    async def test_sampled_report_is_written_back(self, core, people, session_factory):
        order_id = await insert_order(session_factory, people, status=OrderStatus.IN_TRANSIT)
        _, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        await core.sessions.set_status(
            order_id, OrderStatus.IN_TRANSIT, people.client.user_id, people.driver.user_id
        )
        core.sampler.value = 0.0

        await core.router.dispatch(driver_handle, _location(people.driver.user_id, 6.41, 2.44))

        async with session_factory() as session:
            driver = await session.get(UserModel, people.driver.user_id)
            assert (driver.location_lat, driver.location_lon) == (6.41, 2.44)
            points = (
                await session.execute(
                    select(TrackingPointModel).where(TrackingPointModel.order_id == order_id)
                )
            ).scalars().all()
        assert [(p.lat, p.lon) for p in points] == [(6.41, 2.44)]

    @pytest.mark.asyncio
    async def test_unsampled_report_stays_in_memory(self, core, people, session_factory):
        _, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)

        await core.router.dispatch(driver_handle, _location(people.driver.user_id))

        async with session_factory() as session:
            driver = await session.get(UserModel, people.driver.user_id)
        assert driver.location_lat is None
        assert core.registry.get(people.driver.user_id) is not None

    @pytest.mark.asyncio
    async def test_failed_sample_does_not_undo_the_report(self, core, people):
        observer_ws, _ = await _connect(core, people.client.user_id, UserType.CLIENT)
        driver_ws, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        core.sampler.value = 0.0
        core.router.store.record_driver_location = AsyncMock(side_effect=DurableWriteFailure())

        await core.router.dispatch(driver_handle, _location(people.driver.user_id))

        assert core.registry.get(people.driver.user_id).lat == 6.37
        assert observer_ws.events() == ["drivers.update"]
        assert driver_ws.sent == []

    @pytest.mark.asyncio
    async def test_observers_are_served_before_the_sampled_write(self, core, people):
        observer_ws, _ = await _connect(core, people.client.user_id, UserType.CLIENT)
        _, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        core.sampler.value = 0.0
        seen_at_write = []

        async def record(*args, **kwargs):
            seen_at_write.append(observer_ws.events())

        core.router.store.record_driver_location = AsyncMock(side_effect=record)

        await core.router.dispatch(driver_handle, _location(people.driver.user_id))

        assert seen_at_write == [["drivers.update"]]


def _track(order_id, client_id):
    return {"event": "order.track", "data": {"orderId": order_id, "clientId": client_id}}


def _accept(order_id, driver_id):
    return {"event": "driver.acceptOrder", "data": {"orderId": order_id, "driverId": driver_id}}


class TestSessions:
    @pytest.mark.asyncio
    async def test_track_and_accept_bind_each_side(self, core, people, session_factory):
        order_id = await insert_order(session_factory, people)
        _, client_handle = await _connect(core, people.client.user_id, UserType.CLIENT)
        _, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)

        await core.router.dispatch(client_handle, _track(order_id, people.client.user_id))
        await core.router.dispatch(driver_handle, _accept(order_id, people.driver.user_id))

        session = core.sessions.get(order_id)
        assert (session.client_id, session.client_handle) == (people.client.user_id, client_handle)
        assert (session.driver_id, session.driver_handle) == (people.driver.user_id, driver_handle)
        assert session.status == OrderStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_foreign_driver_cannot_take_a_seeded_session(
        self, core, people, session_factory
    ):
        order_id = await insert_order(session_factory, people)
        await core.sessions.set_status(
            order_id, OrderStatus.PENDING, people.client.user_id, people.driver.user_id
        )
        ws, handle = await _connect(core, people.other_driver.user_id, UserType.DRIVER)

        await core.router.dispatch(handle, _accept(order_id, people.other_driver.user_id))

        assert ws.sent[0]["data"]["code"] == "authorization_error"
        assert core.sessions.get(order_id).driver_handle is None

    @pytest.mark.asyncio
    async def test_foreign_client_cannot_track_an_unseeded_order(
        self, core, people, session_factory
    ):
        order_id = await insert_order(session_factory, people)
        ws, handle = await _connect(core, people.other_client.user_id, UserType.CLIENT)

        await core.router.dispatch(handle, _track(order_id, people.other_client.user_id))

        assert ws.sent[0]["data"]["code"] == "authorization_error"
        assert core.sessions.get(order_id) is None

    @pytest.mark.asyncio
    async def test_foreign_driver_cannot_accept_an_unseeded_order(
        self, core, people, session_factory
    ):
        order_id = await insert_order(session_factory, people)
        ws, handle = await _connect(core, people.other_driver.user_id, UserType.DRIVER)

        await core.router.dispatch(handle, _accept(order_id, people.other_driver.user_id))

        assert ws.sent[0]["data"]["code"] == "authorization_error"
        assert core.sessions.get(order_id) is None

    @pytest.mark.asyncio
    async def test_only_the_real_parties_receive_order_events(
        self, core, people, session_factory
    ):
        order_id = await insert_order(session_factory, people)
        outsider_ws, outsider_handle = await _connect(
            core, people.other_client.user_id, UserType.CLIENT
        )
        rogue_ws, rogue_handle = await _connect(
            core, people.other_driver.user_id, UserType.DRIVER
        )
        await core.router.dispatch(outsider_handle, _track(order_id, people.other_client.user_id))
        await core.router.dispatch(rogue_handle, _accept(order_id, people.other_driver.user_id))

        client_ws, client_handle = await _connect(core, people.client.user_id, UserType.CLIENT)
        driver_ws, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        await core.router.dispatch(client_handle, _track(order_id, people.client.user_id))
        await core.router.dispatch(driver_handle, _accept(order_id, people.driver.user_id))
        assert client_ws.sent == []
        assert driver_ws.sent == []

        outsider_ws.sent.clear()
        rogue_ws.sent.clear()
        await core.router.notify_order_status(
            order_id, OrderStatus.DRIVER_COMING, people.client.user_id, people.driver.user_id
        )
        await core.router.dispatch(driver_handle, _location(people.driver.user_id, 6.40, 2.42))

        assert client_ws.events() == [
            f"order.{order_id}.status",
            "drivers.update",
            "order.driverLocation",
        ]
        assert driver_ws.events() == [f"order.{order_id}.status"]
        # Outsiders only see the public map update.
        assert outsider_ws.events() == ["drivers.update"]
        assert rogue_ws.events() == ["drivers.update"]

    @pytest.mark.asyncio
    async def test_track_of_an_order_not_stored_yet_binds_nobody(self, core, people):
        ws, handle = await _connect(core, people.client.user_id, UserType.CLIENT)

        await core.router.dispatch(handle, _track(777, people.client.user_id))

        assert ws.sent == []
        session = core.sessions.get(777)
        assert (session.client_id, session.client_handle) == (None, None)
        assert (session.driver_id, session.driver_handle) == (None, None)

    @pytest.mark.asyncio
    async def test_committed_parties_replace_an_unverified_binding(self, core, people):
        intruder_ws, intruder_handle = await _connect(
            core, people.other_client.user_id, UserType.CLIENT
        )
        await core.sessions.attach_client(5, people.other_client.user_id, intruder_handle)

        await core.router.notify_order_status(
            5, OrderStatus.ACCEPTED, people.client.user_id, people.driver.user_id
        )

        session = core.sessions.get(5)
        assert session.client_id == people.client.user_id
        assert session.client_handle is None
        assert intruder_ws.sent == []

    @pytest.mark.asyncio
    async def test_unknown_event(self, core, people):
        ws, handle = await _connect(core, people.client.user_id, UserType.CLIENT)

        await core.router.dispatch(handle, {"event": "order.teleport", "data": {}})

        assert ws.sent == [
            {
                "event": "error",
                "data": {
                    "event": "order.teleport",
                    "code": "validation_error",
                    "message": {
                        "fr": "Événement inconnu: order.teleport",
                        "en": "Unknown event: order.teleport",
                    },
                },
            }
        ]


class TestChat:
    @pytest.mark.asyncio
    async def test_message_is_persisted_then_delivered(self, core, people, session_factory):
        order_id = await insert_order(session_factory, people, status=OrderStatus.ACCEPTED)
        client_ws, client_handle = await _connect(core, people.client.user_id, UserType.CLIENT)
        driver_ws, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        await core.sessions.attach_client(order_id, people.client.user_id, client_handle)
        await core.sessions.attach_driver(order_id, people.driver.user_id, driver_handle)

        await core.router.dispatch(
            client_handle,
            {
                "event": "chat.message",
                "data": {
                    "orderId": order_id,
                    "senderId": people.client.user_id,
                    "senderType": "client",
                    "message": "Je suis au portail nord",
                },
            },
        )

        assert client_ws.sent == []
        assert driver_ws.events() == ["chat.newMessage"]
        delivered = driver_ws.sent[0]["data"]
        assert delivered["message"] == "Je suis au portail nord"
        assert delivered["type"] == "text"

        async with session_factory() as session:
            stored = (
                await session.execute(
                    select(OrderMessageModel).where(OrderMessageModel.order_id == order_id)
                )
            ).scalars().all()
        assert [m.message for m in stored] == ["Je suis au portail nord"]

    @pytest.mark.asyncio
    async def test_reconnected_counterpart_still_gets_the_message(
        self, core, people, session_factory
    ):
        order_id = await insert_order(session_factory, people, status=OrderStatus.ACCEPTED)
        _, client_handle = await _connect(core, people.client.user_id, UserType.CLIENT)
        _, old_driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        await core.sessions.attach_client(order_id, people.client.user_id, client_handle)
        await core.sessions.attach_driver(order_id, people.driver.user_id, old_driver_handle)
        await core.router.on_disconnect(old_driver_handle)
        driver_ws, _ = await _connect(core, people.driver.user_id, UserType.DRIVER)

        delivered = await core.router.on_chat(
            core.connections.get(client_handle),
            {
                "orderId": order_id,
                "senderId": people.client.user_id,
                "senderType": "client",
                "message": "Vous êtes où ?",
            },
        )

        assert delivered is True
        assert driver_ws.events() == ["chat.newMessage"]
        assert core.sessions.get(order_id).driver_handle == old_driver_handle

    @pytest.mark.asyncio
    async def test_message_without_session_is_still_stored(self, core, people, session_factory):
        order_id = await insert_order(session_factory, people, status=OrderStatus.ACCEPTED)
        ws, handle = await _connect(core, people.driver.user_id, UserType.DRIVER)

        delivered = await core.router.on_chat(
            core.connections.get(handle),
            {
                "orderId": order_id,
                "senderId": people.driver.user_id,
                "senderType": "driver",
                "message": "J'arrive",
            },
        )

        assert delivered is False
        async with session_factory() as session:
            count = len(
                (
                    await session.execute(
                        select(OrderMessageModel).where(OrderMessageModel.order_id == order_id)
                    )
                ).scalars().all()
            )
        assert count == 1

    @pytest.mark.asyncio
    async def test_unknown_order(self, core, people):
        ws, handle = await _connect(core, people.client.user_id, UserType.CLIENT)

        await core.router.dispatch(
            handle,
            {
                "event": "chat.message",
                "data": {
                    "orderId": 9999,
                    "senderId": people.client.user_id,
                    "senderType": "client",
                    "message": "Allô ?",
                },
            },
        )

        assert ws.sent[0]["data"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_outsider_cannot_post(self, core, people, session_factory):
        order_id = await insert_order(session_factory, people)
        ws, handle = await _connect(core, people.other_client.user_id, UserType.CLIENT)

        await core.router.dispatch(
            handle,
            {
                "event": "chat.message",
                "data": {
                    "orderId": order_id,
                    "senderId": people.other_client.user_id,
                    "senderType": "client",
                    "message": "Bonjour",
                },
            },
        )

        assert ws.sent[0]["data"]["code"] == "authorization_error"


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_drivers_on_the_handle_go_offline(self, core, people):
        observer_ws, _ = await _connect(core, people.client.user_id, UserType.CLIENT)
        _, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        await core.router.dispatch(driver_handle, _location(people.driver.user_id))
        observer_ws.sent.clear()

        affected = await core.router.on_disconnect(driver_handle)

        assert affected == {people.driver.user_id}
        assert core.registry.get(people.driver.user_id).is_online is False
        assert observer_ws.events() == ["drivers.update"]
        assert observer_ws.sent[0]["data"]["isOnline"] is False
        assert core.connections.get(driver_handle) is None

    @pytest.mark.asyncio
    async def test_failed_write_drops_the_connection(self, core, people):
        _, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        _, broken_handle = await _connect(core, people.client.user_id, UserType.CLIENT, fail=True)

        await core.router.dispatch(driver_handle, _location(people.driver.user_id))

        assert core.connections.get(broken_handle) is None
        assert core.connections.active_connections == 1


class TestNotifications:
    @pytest.mark.asyncio
    async def test_new_order_reaches_the_drivers_connection(self, core, people):
        driver_ws, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        await core.router.dispatch(driver_handle, _location(people.driver.user_id))

        pushed = await core.router.notify_new_order(
            5, people.client.user_id, people.driver.user_id, {"orderId": 5}
        )

        assert pushed is True
        assert driver_ws.events() == ["order.new"]
        session = core.sessions.get(5)
        assert session.status == OrderStatus.PENDING
        assert session.driver_id == people.driver.user_id

    @pytest.mark.asyncio
    async def test_new_order_for_an_absent_driver_is_dropped(self, core, people):
        pushed = await core.router.notify_new_order(
            5, people.client.user_id, people.driver.user_id, {"orderId": 5}
        )
        assert pushed is False
        assert core.redis.lists == {}

    @pytest.mark.asyncio
    async def test_status_goes_to_session_handles(self, core, people):
        client_ws, client_handle = await _connect(core, people.client.user_id, UserType.CLIENT)
        driver_ws, driver_handle = await _connect(core, people.driver.user_id, UserType.DRIVER)
        await core.sessions.attach_client(5, people.client.user_id, client_handle)
        await core.sessions.attach_driver(5, people.driver.user_id, driver_handle)

        await core.router.notify_order_status(
            5, OrderStatus.IN_TRANSIT, people.client.user_id, people.driver.user_id
        )

        expected = {"event": "order.5.status", "data": {"orderId": 5, "status": "in_transit"}}
        assert client_ws.sent == [expected]
        assert driver_ws.sent == [expected]
        assert core.sessions.get(5).status == OrderStatus.IN_TRANSIT

    @pytest.mark.asyncio
    async def test_status_falls_back_to_any_connection_of_the_user(self, core, people):
        client_ws, _ = await _connect(core, people.client.user_id, UserType.CLIENT)

        await core.router.notify_order_status(
            5, OrderStatus.ACCEPTED, people.client.user_id, people.driver.user_id
        )

        assert client_ws.events() == ["order.5.status"]
        # The driver is offline: queued for later.
        assert len(core.redis.lists[f"outbox:{people.driver.user_id}"]) == 1

    @pytest.mark.asyncio
    async def test_offline_party_gets_queued_events_on_connect(self, core, people):
        await core.router.notify_order_status(
            5, OrderStatus.ACCEPTED, people.client.user_id, people.driver.user_id
        )
        await core.router.notify_payment_status(
            5, PaymentStatus.PROOF_SUBMITTED, people.client.user_id, people.driver.user_id
        )
        queued = core.redis.lists[f"outbox:{people.client.user_id}"]
        assert [json.loads(m)["event"] for m in queued] == ["order.5.status", "order.5.payment"]

        client_ws, _ = await _connect(core, people.client.user_id, UserType.CLIENT)

        assert client_ws.events() == ["order.5.status", "order.5.payment"]
        assert client_ws.sent[1]["data"]["status"] == "proof_submitted"
        assert f"outbox:{people.client.user_id}" not in core.redis.lists

    @pytest.mark.asyncio
    async def test_terminal_status_closes_the_session(self, core, people):
        await core.router.notify_order_status(
            5, OrderStatus.CANCELLED, people.client.user_id, people.driver.user_id
        )
        session = core.sessions.get(5)
        assert session.closed_at is not None
        assert core.sessions.for_driver(people.driver.user_id) == []
