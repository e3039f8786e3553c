"""Notification request/response models and typed payloads.

``payload`` is stored free-form, but each notification type has one payload
shape. Producers are validated against it on create; readers decode it only
when they need type-specific fields (see ``decode_payload``).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from bizchat.errors import ValidationError
from bizchat.models.notification import NotificationType
from bizchat.schemas.common import ApiModel


class NewReviewPayload(ApiModel):

    reviewer_name: str
    rating: int = Field(ge=1, le=5)
    business_id: Optional[str] = None


class NewMessagePayload(ApiModel):

    sender_name: str
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None


class SubscriptionExpiringPayload(ApiModel):

    days_left: int = Field(ge=0)


class NewFollowerPayload(ApiModel):

    follower_id: str
    follower_name: Optional[str] = None


class AdPayload(ApiModel):

    ad_id: str
    ad_title: Optional[str] = None
    reason: Optional[str] = None


class CommentReplyPayload(ApiModel):

    post_id: str
    comment_id: Optional[str] = None
    author_name: Optional[str] = None


PAYLOAD_MODELS: Dict[str, type[BaseModel]] = {
    "new_review": NewReviewPayload,
    "new_message": NewMessagePayload,
    "subscription_expiring": SubscriptionExpiringPayload,
    "new_follower": NewFollowerPayload,
    "ad_expired": AdPayload,
    "ad_approved": AdPayload,
    "ad_rejected": AdPayload,
    "comment_reply": CommentReplyPayload,
}


def decode_payload(notification_type: str, payload: Optional[Dict[str, Any]]) -> BaseModel | Dict[str, Any] | None:
    """Decode a stored payload into the model for its notification type.

    Types without a dedicated shape (promotions, announcements, business
    updates) come back as the plain dict.
    """
    model = PAYLOAD_MODELS.get(notification_type)
    if model is None or payload is None:
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid payload for {notification_type}: {exc.errors()[0]['msg']}") from exc


def encode_payload(notification_type: str, payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    decoded = decode_payload(notification_type, payload)
    if isinstance(decoded, BaseModel):
        return decoded.model_dump(mode="json", by_alias=True, exclude_none=True)
    return decoded


class CreateNotificationRequest(ApiModel):

    recipient_id: str = Field(min_length=1)
    type: NotificationType
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    payload: Optional[Dict[str, Any]] = None


class NotificationOut(ApiModel):

    id: str
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    payload: Optional[Dict[str, Any]] = None
    read: bool
    created_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "NotificationOut":
        return cls(
            id=doc["_id"],
            recipient_id=doc["recipient_id"],
            type=doc["type"],
            title=doc["title"],
            message=doc["message"],
            payload=doc.get("payload"),
            read=doc.get("read", False),
            created_at=doc["created_at"],
        )


class Pagination(ApiModel):

    page: int
    limit: int
    total: int
    pages: int


class NotificationPage(ApiModel):

    data: List[NotificationOut]
    unread_count: int
    pagination: Pagination
