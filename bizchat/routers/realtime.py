import asyncio
import json

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from bizchat.errors import AppError, Unauthenticated
from bizchat.services.chat_service import ChatService
from bizchat.services.delivery_service import encode_event
from bizchat.utils.dependencies import get_chat_service
from bizchat.utils.logging import get_logger
from bizchat.utils.realtime_bus import get_bus, user_channel
from bizchat.utils.security import authenticate, bearer_token_from_header
from bizchat.utils.websocket_manager import ConnectionManager, get_connection_registry


logger = get_logger(__name__)

router = APIRouter(tags=["chat"])

PRESENCE_TTL_SECONDS = 60
PRESENCE_INTERVAL_SECONDS = 30
CLOSE_UNAUTHENTICATED = 4401


async def _presence_heartbeat(bus, user_id: str) -> None:
    while True:
        try:
            await bus.set_presence(user_id, ttl_seconds=PRESENCE_TTL_SECONDS)
        except Exception:
            logger.exception("Presence heartbeat failed for %s", user_id)
        await asyncio.sleep(PRESENCE_INTERVAL_SECONDS)


@router.websocket("/ws")
async def live_socket(
    websocket: WebSocket,
    registry: ConnectionManager = Depends(get_connection_registry),
    bus = Depends(get_bus),
    service: ChatService = Depends(get_chat_service),
):
    # token via ?token=... or an Authorization header; refused before registration
    token = websocket.query_params.get("token") or bearer_token_from_header(websocket.headers.get("authorization"))
    try:
        identity = authenticate(token)
    except Unauthenticated as exc:
        logger.info("Socket handshake refused: %s", exc.message)
        await websocket.close(code=CLOSE_UNAUTHENTICATED, reason=exc.message)
        return

    user_id = identity.user_id
    handle = await registry.connect(user_id, websocket)
    subscription = None
    tasks = []
    try:
        if bus.enabled:
            subscription = await bus.subscribe(user_channel(user_id), websocket.send_text)
            tasks.append(asyncio.create_task(subscription.run()))
            tasks.append(asyncio.create_task(_presence_heartbeat(bus, user_id)))

        while True:
            data = await websocket.receive_text()
            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_text(encode_event("error", {"message": "Frames must be JSON"}))
                continue
            if not isinstance(frame, dict):
                await websocket.send_text(encode_event("error", {"message": "Frames must be JSON objects"}))
                continue

            frame_type = frame.get("type")
            if frame_type == "ping":
                await websocket.send_text(encode_event("pong", {}))
            elif frame_type in ("typing:start", "typing:stop"):
                conversation_id = frame.get("conversationId")
                if not conversation_id:
                    await websocket.send_text(encode_event("error", {"message": "conversationId is required"}))
                    continue
                try:
                    await service.set_typing(user_id, str(conversation_id), frame_type == "typing:start")
                except AppError as exc:
                    await websocket.send_text(encode_event("error", {"message": exc.message}))
            else:
                await websocket.send_text(encode_event("error", {"message": f"Unsupported frame type: {frame_type}"}))
    except WebSocketDisconnect:
        pass
    finally:
        registry.disconnect(handle)
        await service.clear_typing(user_id)
        if subscription is not None:
            await subscription.cancel()
        for task in tasks:
            task.cancel()
