import math
from datetime import timedelta
from typing import Any, Dict, Optional

from bizchat.errors import Forbidden, NotFound, ValidationError
from bizchat.models.notification import NotificationType
from bizchat.repositories.notification_repository import NotificationRepository
from bizchat.schemas.notification import NotificationOut, NotificationPage, Pagination, encode_payload
from bizchat.services.delivery_service import NOTIFICATION_NEW, LiveDelivery
from bizchat.utils.logging import get_logger
from bizchat.utils.mongo import utcnow_ms


logger = get_logger(__name__)

TITLE_MAX_LENGTH = 100
MESSAGE_MAX_LENGTH = 500


class NotificationService:

    def __init__(self, notification_repo: NotificationRepository, delivery: LiveDelivery) -> None:
        self._notification_repo = notification_repo
        self._delivery = delivery

    async def create(
        self,
        recipient_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> NotificationOut:
        if not title or len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be 1-{TITLE_MAX_LENGTH} characters")
        if not message or len(message) > MESSAGE_MAX_LENGTH:
            raise ValidationError(f"Message must be 1-{MESSAGE_MAX_LENGTH} characters")
        doc = await self._notification_repo.create(
            recipient_id=recipient_id,
            notification_type=notification_type,
            title=title,
            message=message,
            payload=encode_payload(notification_type, payload),
            created_at=utcnow_ms(),
        )
        notification = NotificationOut.from_document(doc)
        logger.info(
            "Notification created",
            extra={"extra_fields": {"notification_id": notification.id, "recipient_id": recipient_id, "type": notification_type}},
        )
        await self._delivery.push(recipient_id, NOTIFICATION_NEW, notification.to_api())
        return notification

    async def list(self, user_id: str, page: int = 1, page_size: int = 20, unread_only: bool = False) -> NotificationPage:
        if page < 1 or page_size < 1:
            raise ValidationError("page and limit must be positive")
        items = await self._notification_repo.list_for_recipient(
            user_id, skip=(page - 1) * page_size, limit=page_size, unread_only=unread_only
        )
        total = await self._notification_repo.count(user_id, unread_only=unread_only)
        unread = total if unread_only else await self._notification_repo.count(user_id, unread_only=True)
        return NotificationPage(
            data=[NotificationOut.from_document(it) for it in items],
            unread_count=unread,
            pagination=Pagination(page=page, limit=page_size, total=total, pages=math.ceil(total / page_size)),
        )

    async def _owned(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        doc = await self._notification_repo.get(notification_id)
        if doc is None:
            raise NotFound("Notification not found")
        if doc["recipient_id"] != user_id:
            raise Forbidden("Notification belongs to another user")
        return doc

    async def mark_read(self, user_id: str, notification_id: str) -> None:
        await self._owned(user_id, notification_id)
        await self._notification_repo.mark_read(notification_id)

    async def mark_all_read(self, user_id: str) -> int:
        count = await self._notification_repo.mark_all_read(user_id)
        logger.info("Notifications marked read", extra={"extra_fields": {"user_id": user_id, "count": count}})
        return count

    async def delete(self, user_id: str, notification_id: str) -> None:
        await self._owned(user_id, notification_id)
        await self._notification_repo.delete(notification_id)

    async def cleanup_old(self, retention_days: int = 30) -> int:
        """Purge read notifications older than the retention window."""
        cutoff = utcnow_ms() - timedelta(days=retention_days)
        deleted = await self._notification_repo.delete_read_before(cutoff)
        logger.info("Cleaned up old notifications", extra={"extra_fields": {"deleted": deleted, "retention_days": retention_days}})
        return deleted

    async def notify_new_review(self, business_owner_id: str, reviewer_name: str, rating: int) -> NotificationOut:
        return await self.create(
            business_owner_id,
            "new_review",
            "New review!",
            f"{reviewer_name} left a {rating}/5 star review",
            {"reviewer_name": reviewer_name, "rating": rating},
        )

    async def notify_new_message(self, recipient_id: str, sender_name: str, conversation_id: str | None = None, message_id: str | None = None) -> NotificationOut:
        return await self.create(
            recipient_id,
            "new_message",
            "New message",
            f"{sender_name} sent you a message",
            {"sender_name": sender_name, "conversation_id": conversation_id, "message_id": message_id},
        )

    async def notify_subscription_expiring(self, business_owner_id: str, days_left: int) -> NotificationOut:
        return await self.create(
            business_owner_id,
            "subscription_expiring",
            "Subscription expiring",
            f"Your subscription expires in {days_left} days. Renew it to keep all features.",
            {"days_left": days_left},
        )
