from fastapi import APIRouter, Depends, Query, status

from bizchat.schemas.auth import Identity
from bizchat.schemas.notification import CreateNotificationRequest
from bizchat.services.notification_service import NotificationService
from bizchat.utils.dependencies import get_current_user, get_notification_service


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread: bool = False,
    current_user: Identity = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    result = await service.list(current_user.user_id, page=page, page_size=limit, unread_only=unread)
    return {"success": True, **result.to_api()}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(body: CreateNotificationRequest, current_user: Identity = Depends(get_current_user), service: NotificationService = Depends(get_notification_service)):
    notification = await service.create(body.recipient_id, body.type, body.title, body.message, body.payload)
    return {"success": True, "data": notification.to_api()}


@router.patch("/read-all")
async def mark_all_read(current_user: Identity = Depends(get_current_user), service: NotificationService = Depends(get_notification_service)):
    count = await service.mark_all_read(current_user.user_id)
    return {"success": True, "updated": count, "message": f"{count} notifications marked as read"}


@router.patch("/{notification_id}/read")
async def mark_read(notification_id: str, current_user: Identity = Depends(get_current_user), service: NotificationService = Depends(get_notification_service)):
    await service.mark_read(current_user.user_id, notification_id)
    return {"success": True, "message": "Notification marked as read"}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, current_user: Identity = Depends(get_current_user), service: NotificationService = Depends(get_notification_service)):
    await service.delete(current_user.user_id, notification_id)
    return {"success": True, "message": "Notification deleted"}
