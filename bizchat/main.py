from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bizchat.config import get_settings
from bizchat.database.connection import close_mongo_connection, connect_to_mongo, get_database
from bizchat.errors import AppError
from bizchat.repositories.conversation_repository import ConversationRepository
from bizchat.repositories.message_repository import MessageRepository
from bizchat.repositories.notification_repository import NotificationRepository
from bizchat.routers.conversations import router as conversations_router
from bizchat.routers.notifications import router as notifications_router
from bizchat.routers.presence import router as presence_router
from bizchat.routers.realtime import router as realtime_router
from bizchat.services.delivery_service import LiveDelivery
from bizchat.services.notification_service import NotificationService
from bizchat.utils.logging import get_logger
from bizchat.utils.realtime_bus import get_bus
from bizchat.utils.websocket_manager import manager


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    await connect_to_mongo()
    try:
        db = get_database()
        await ConversationRepository(db).ensure_indexes()
        await MessageRepository(db).ensure_indexes()
        notification_repo = NotificationRepository(db)
        await notification_repo.ensure_indexes()
        settings = get_settings()
        notifications = NotificationService(notification_repo, LiveDelivery(manager, await get_bus(), settings.push_timeout_seconds))
        await notifications.cleanup_old(settings.notification_retention_days)
        yield
    finally:
        await close_mongo_connection()


app = FastAPI(title="bizchat messaging and notifications", lifespan=lifespan)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "error": detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


app.include_router(conversations_router)
app.include_router(notifications_router)
app.include_router(presence_router)
app.include_router(realtime_router)


@app.get("/")
async def root():

    return {"service": "bizchat", "liveUsers": len(manager.active_connections)}
