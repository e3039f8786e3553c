"""Tests for best-effort live delivery."""
import json

import pytest

from bizchat.services.delivery_service import MESSAGE_NEW, LiveDelivery
from bizchat.utils.realtime_bus import NoopBus
from bizchat.utils.websocket_manager import ConnectionManager

from helpers import BrokenHandle, FakeHandle, SlowHandle


class RecordingBus:

    enabled = True

    def __init__(self, present=()):
        self.published = []
        self._present = set(present)

    async def publish(self, channel, message):
        self.published.append((channel, message))

    async def is_present(self, user_id):
        return user_id in self._present


class FailingBus(RecordingBus):

    async def publish(self, channel, message):
        raise ConnectionError("redis down")


@pytest.mark.asyncio
async def test_push_reaches_every_handle_of_the_user(registry, delivery):
    phone, laptop, other = FakeHandle("phone"), FakeHandle("laptop"), FakeHandle("other")
    registry.register("bob", phone)
    registry.register("bob", laptop)
    registry.register("carol", other)

    delivered = await delivery.push("bob", MESSAGE_NEW, {"id": "m1"})

    assert delivered == 2
    assert json.loads(phone.sent[0]) == {"event": "message:new", "data": {"id": "m1"}}
    assert laptop.sent == phone.sent
    assert other.sent == []


@pytest.mark.asyncio
async def test_push_without_handles_is_a_noop(delivery):
    assert await delivery.push("bob", MESSAGE_NEW, {"id": "m1"}) == 0


@pytest.mark.asyncio
async def test_slow_and_broken_handles_do_not_block_others(registry, delivery):
    slow, broken, good = SlowHandle("slow"), BrokenHandle("broken"), FakeHandle("good")
    for handle in (slow, broken, good):
        registry.register("bob", handle)

    delivered = await delivery.push("bob", MESSAGE_NEW, {"id": "m1"})

    assert delivered == 1
    assert len(good.sent) == 1
    assert slow.sent == []


@pytest.mark.asyncio
async def test_push_many_fans_out(registry, delivery):
    a, b = FakeHandle("a"), FakeHandle("b")
    registry.register("alice", a)
    registry.register("bob", b)
    assert await delivery.push_many(["alice", "bob", "nobody"], "typing", {}) == 2


@pytest.mark.asyncio
async def test_bus_publishes_on_user_channel():
    bus = RecordingBus()
    delivery = LiveDelivery(ConnectionManager(), bus, timeout=0.1)
    await delivery.push("bob", MESSAGE_NEW, {"id": "m1"})
    channel, message = bus.published[0]
    assert channel == "user:bob"
    assert json.loads(message)["event"] == "message:new"


@pytest.mark.asyncio
async def test_bus_failure_is_swallowed():
    delivery = LiveDelivery(ConnectionManager(), FailingBus(), timeout=0.1)
    assert await delivery.push("bob", MESSAGE_NEW, {"id": "m1"}) == 0


@pytest.mark.asyncio
async def test_is_online_checks_registry_then_bus():
    registry = ConnectionManager()
    registry.register("alice", FakeHandle("a"))
    local = LiveDelivery(registry, NoopBus())
    assert await local.is_online("alice") is True
    assert await local.is_online("bob") is False

    clustered = LiveDelivery(ConnectionManager(), RecordingBus(present={"bob"}))
    assert await clustered.is_online("bob") is True
    assert await clustered.is_online("carol") is False
