from datetime import datetime
from typing import List, Literal, Optional, TypedDict


ConversationType = Literal["business_customer", "user_user", "group"]

DIRECT_TYPES = ("business_customer", "user_user")


class ConversationDocument(TypedDict, total=False):
    _id: str
    type: ConversationType
    # insertion order is display order
    participants: List[str]
    business_id: Optional[str]
    title: Optional[str]
    description: Optional[str]
    created_at: datetime
    last_message_at: datetime
    last_message_preview: Optional[str]
    last_message_id: Optional[str]
    # per-user unread counters (user_id -> count)
    unread_counters: dict[str, int]
