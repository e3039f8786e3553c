from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bizchat.config import get_settings
from bizchat.database.connection import mongo_db_dependency
from bizchat.repositories.conversation_repository import ConversationRepository
from bizchat.repositories.message_repository import MessageRepository
from bizchat.repositories.notification_repository import NotificationRepository
from bizchat.schemas.auth import Identity
from bizchat.services.chat_service import ChatService
from bizchat.services.delivery_service import LiveDelivery
from bizchat.services.notification_service import NotificationService
from bizchat.utils.realtime_bus import get_bus
from bizchat.utils.security import authenticate
from bizchat.utils.websocket_manager import ConnectionManager, get_connection_registry


bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Identity:
    token = credentials.credentials if credentials else None
    return authenticate(token)


def get_delivery(registry: ConnectionManager = Depends(get_connection_registry), bus = Depends(get_bus)) -> LiveDelivery:
    return LiveDelivery(registry, bus, timeout=get_settings().push_timeout_seconds)


def get_notification_service(db = Depends(mongo_db_dependency), delivery: LiveDelivery = Depends(get_delivery)) -> NotificationService:
    return NotificationService(NotificationRepository(db), delivery)


def get_chat_service(
    db = Depends(mongo_db_dependency),
    delivery: LiveDelivery = Depends(get_delivery),
    notifications: NotificationService = Depends(get_notification_service),
) -> ChatService:
    msg_repo = MessageRepository(db)
    convo_repo = ConversationRepository(db)
    return ChatService(msg_repo, convo_repo, delivery, notifications)
