"""Test helpers: token minting and recording live handles."""
import asyncio
import time

import jwt

from bizchat.utils.realtime_bus import NoopBus


def make_token(user_id: str, secret: str = "test-secret", exp: int | None = None, claim: str = "sub") -> str:
    now = int(time.time())
    payload = {claim: user_id, "iat": now, "exp": exp if exp is not None else now + 3600}
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_header(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


class FakeHandle:
    """Live handle that records what was pushed to it."""

    def __init__(self, handle_id: str) -> None:
        self.handle_id = handle_id
        self.sent: list[str] = []

    async def send_text(self, message: str) -> None:
        self.sent.append(message)


class SlowHandle(FakeHandle):

    async def send_text(self, message: str) -> None:
        await asyncio.sleep(5)
        self.sent.append(message)


class BrokenHandle(FakeHandle):

    async def send_text(self, message: str) -> None:
        raise ConnectionResetError("socket closed")


class UnreachableBus(NoopBus):
    """Distributed bus whose broker refuses subscriptions."""

    enabled = True

    async def subscribe(self, channel, on_message):
        raise ConnectionError("redis unavailable")
