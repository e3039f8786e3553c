import asyncio
import json
from typing import Any, Iterable

from fastapi.encoders import jsonable_encoder

from bizchat.errors import TransientDeliveryFailure
from bizchat.utils.logging import get_logger
from bizchat.utils.realtime_bus import NoopBus, RedisBus, user_channel
from bizchat.utils.websocket_manager import ConnectionRegistry, LiveHandle


logger = get_logger(__name__)

MESSAGE_NEW = "message:new"
MESSAGE_READ = "message:read"
MESSAGE_DELETED = "message:deleted"
NOTIFICATION_NEW = "notification:new"
CONVERSATION_NEW = "conversation:new"
CONVERSATION_UPDATED = "conversation:updated"
TYPING = "typing"


def encode_event(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": jsonable_encoder(data)})


class LiveDelivery:
    """Best-effort push of events to a user's live handles.

    Never raises: every failure is a TransientDeliveryFailure that gets
    logged and dropped. Each handle send is bounded by ``timeout`` and
    handles are served concurrently.
    """

    def __init__(self, registry: ConnectionRegistry, bus: NoopBus | RedisBus, timeout: float = 2.0) -> None:
        self._registry = registry
        self._bus = bus
        self._timeout = timeout

    async def push(self, user_id: str, event: str, data: Any) -> int:
        payload = encode_event(event, data)
        if self._bus.enabled:
            try:
                await asyncio.wait_for(self._bus.publish(user_channel(user_id), payload), self._timeout)
            except Exception as exc:
                self._report(TransientDeliveryFailure(user_id, "bus", _describe(exc)))
                return 0
            return 1
        handles = self._registry.handles_for(user_id)
        if not handles:
            logger.debug("No live handle for %s, %s not pushed", user_id, event)
            return 0
        results = await asyncio.gather(*(self._send(user_id, handle, payload) for handle in handles))
        return sum(results)

    async def push_many(self, user_ids: Iterable[str], event: str, data: Any) -> int:
        results = await asyncio.gather(*(self.push(user_id, event, data) for user_id in user_ids))
        return sum(results)

    async def is_online(self, user_id: str) -> bool:
        if self._registry.handles_for(user_id):
            return True
        if self._bus.enabled:
            try:
                return await self._bus.is_present(user_id)
            except Exception:
                logger.exception("Presence lookup failed for %s", user_id)
        return False

    async def _send(self, user_id: str, handle: LiveHandle, payload: str) -> int:
        try:
            await asyncio.wait_for(handle.send_text(payload), self._timeout)
        except Exception as exc:
            self._report(TransientDeliveryFailure(user_id, handle.handle_id, _describe(exc)))
            return 0
        return 1

    def _report(self, failure: TransientDeliveryFailure) -> None:
        logger.warning(
            failure.message,
            extra={"extra_fields": {"user_id": failure.user_id, "handle_id": failure.handle_id}},
        )


def _describe(exc: Exception) -> str:
    return str(exc) or type(exc).__name__
