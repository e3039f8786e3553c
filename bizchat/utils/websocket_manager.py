from typing import Dict, List, Protocol
from uuid import uuid4

from fastapi import WebSocket

from bizchat.utils.logging import get_logger


logger = get_logger(__name__)


class LiveHandle(Protocol):

    handle_id: str

    async def send_text(self, message: str) -> None: ...


class ConnectionRegistry(Protocol):

    def register(self, user_id: str, handle: LiveHandle) -> None: ...

    def unregister(self, handle: LiveHandle) -> None: ...

    def handles_for(self, user_id: str) -> List[LiveHandle]: ...


class WebSocketHandle:

    def __init__(self, websocket: WebSocket) -> None:
        self.handle_id = uuid4().hex
        self._websocket = websocket

    async def send_text(self, message: str) -> None:
        await self._websocket.send_text(message)


class ConnectionManager:
    """In-process ConnectionRegistry.

    A handle belongs to exactly one user at a time; registering it under a
    new user moves it. Mutations never await, so each call is applied
    atomically with respect to the event loop.
    """

    def __init__(self) -> None:
        self.active_connections: Dict[str, Dict[str, LiveHandle]] = {}
        self._owners: Dict[str, str] = {}

    def register(self, user_id: str, handle: LiveHandle) -> None:
        owner = self._owners.get(handle.handle_id)
        if owner is not None and owner != user_id:
            self._drop(owner, handle.handle_id)
        self.active_connections.setdefault(user_id, {})[handle.handle_id] = handle
        self._owners[handle.handle_id] = user_id

    def unregister(self, handle: LiveHandle) -> None:
        owner = self._owners.pop(handle.handle_id, None)
        if owner is not None:
            self._drop(owner, handle.handle_id)

    def handles_for(self, user_id: str) -> List[LiveHandle]:
        return list(self.active_connections.get(user_id, {}).values())

    def owner_of(self, handle: LiveHandle) -> str | None:
        return self._owners.get(handle.handle_id)

    def _drop(self, user_id: str, handle_id: str) -> None:
        handles = self.active_connections.get(user_id)
        if handles is None:
            return
        handles.pop(handle_id, None)
        if not handles:
            del self.active_connections[user_id]

    async def connect(self, user_id: str, websocket: WebSocket) -> WebSocketHandle:
        await websocket.accept()
        handle = WebSocketHandle(websocket)
        self.register(user_id, handle)
        logger.info("Live handle registered", extra={"extra_fields": {"user_id": user_id, "handle_id": handle.handle_id}})
        return handle

    def disconnect(self, handle: LiveHandle) -> None:
        user_id = self.owner_of(handle)
        self.unregister(handle)
        logger.info("Live handle unregistered", extra={"extra_fields": {"user_id": user_id, "handle_id": handle.handle_id}})


manager = ConnectionManager()


def get_connection_registry() -> ConnectionManager:
    return manager
