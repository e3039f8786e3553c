from datetime import datetime
from typing import Any, Dict, Literal, Optional, TypedDict


NotificationType = Literal[
    "new_review",
    "new_message",
    "subscription_expiring",
    "new_follower",
    "ad_expired",
    "ad_approved",
    "ad_rejected",
    "comment_reply",
    "business_update",
    "promotion",
    "system_announcement",
]


class NotificationDocument(TypedDict, total=False):
    _id: str
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    payload: Optional[Dict[str, Any]]
    read: bool
    created_at: datetime
