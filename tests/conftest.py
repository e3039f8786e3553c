"""Shared pytest fixtures for the bizchat tests."""
import os

os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ.pop("REDIS_URL", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from bizchat.config import get_settings  # noqa: E402
from bizchat.repositories.conversation_repository import ConversationRepository  # noqa: E402
from bizchat.repositories.message_repository import MessageRepository  # noqa: E402
from bizchat.repositories.notification_repository import NotificationRepository  # noqa: E402
from bizchat.services.chat_service import ChatService, TypingTracker  # noqa: E402
from bizchat.services.delivery_service import LiveDelivery  # noqa: E402
from bizchat.services.notification_service import NotificationService  # noqa: E402
from bizchat.utils.keyed_lock import KeyedLock  # noqa: E402
from bizchat.utils.realtime_bus import NoopBus, get_bus  # noqa: E402
from bizchat.utils.websocket_manager import ConnectionManager, get_connection_registry  # noqa: E402


get_settings.cache_clear()


@pytest.fixture
def mongo_client():
    return AsyncMongoMockClient()


@pytest.fixture
def db(mongo_client):
    return mongo_client["bizchat_test"]


@pytest.fixture
def registry():
    return ConnectionManager()


@pytest.fixture
def delivery(registry):
    return LiveDelivery(registry, NoopBus(), timeout=0.1)


@pytest.fixture
def notification_service(db, delivery):
    return NotificationService(NotificationRepository(db), delivery)


@pytest.fixture
def chat_service(db, delivery, notification_service):
    return ChatService(
        MessageRepository(db),
        ConversationRepository(db),
        delivery,
        notification_service,
        locks=KeyedLock(),
        typing=TypingTracker(),
    )


@pytest.fixture
def client(monkeypatch, mongo_client):
    """TestClient against the real app with Mongo swapped for mongomock."""
    import bizchat.main as main_module
    from bizchat.database import connection

    async def _noop() -> None:
        return None

    monkeypatch.setattr(main_module, "connect_to_mongo", _noop)
    monkeypatch.setattr(main_module, "close_mongo_connection", _noop)
    monkeypatch.setattr(connection, "_client", mongo_client)

    live = ConnectionManager()
    main_module.app.dependency_overrides[get_connection_registry] = lambda: live
    main_module.app.dependency_overrides[get_bus] = lambda: NoopBus()
    with TestClient(main_module.app) as test_client:
        test_client.live_registry = live
        yield test_client
    main_module.app.dependency_overrides.clear()
