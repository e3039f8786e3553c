import asyncio
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from bizchat.config import get_settings
from bizchat.utils.logging import get_logger


logger = get_logger(__name__)

MessageCallback = Callable[[str], Awaitable[None]]


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


class NoopSubscription:

    async def run(self) -> None:
        await asyncio.Future()

    async def cancel(self) -> None:
        return


class NoopBus:

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        return

    async def subscribe(self, channel: str, on_message: MessageCallback) -> NoopSubscription:
        return NoopSubscription()

    async def set_presence(self, user_id: str, ttl_seconds: int = 60) -> None:
        return

    async def is_present(self, user_id: str) -> bool:
        return False


class RedisSubscription:

    def __init__(self, pubsub, channel: str, on_message: MessageCallback) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._on_message = on_message
        self._running = True

    async def run(self) -> None:
        while self._running:
            try:
                msg = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if msg and msg.get("type") == "message":
                    data = msg.get("data")
                    if isinstance(data, bytes):
                        data = data.decode("utf-8")
                    await self._on_message(data)
            except Exception:
                logger.exception("Relay from %s failed", self._channel)
                await asyncio.sleep(0.5)

    async def cancel(self) -> None:
        self._running = False
        await self._pubsub.unsubscribe(self._channel)
        await self._pubsub.aclose()


class RedisBus:
    """Cross-process fan-out: every socket relays its own user channel."""

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: MessageCallback) -> RedisSubscription:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        return RedisSubscription(pubsub, channel, on_message)

    async def set_presence(self, user_id: str, ttl_seconds: int = 60) -> None:
        await self._redis.set(f"presence:{user_id}", "online", ex=ttl_seconds)

    async def is_present(self, user_id: str) -> bool:
        ttl = await self._redis.ttl(f"presence:{user_id}")
        return bool(ttl and ttl > 0)


_bus: Optional[NoopBus | RedisBus] = None


async def get_bus() -> NoopBus | RedisBus:
    global _bus
    if _bus is not None:
        return _bus
    url = get_settings().redis_url
    _bus = RedisBus(url) if url else NoopBus()
    return _bus
