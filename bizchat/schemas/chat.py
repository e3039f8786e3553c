from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from bizchat.models.conversation import ConversationType
from bizchat.models.message import MessageType
from bizchat.schemas.common import ApiModel


class MessageContent(ApiModel):

    type: MessageType = "text"
    content: Optional[str] = None
    media_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)


class CreateConversationRequest(ApiModel):

    type: ConversationType
    participants: List[str] = Field(min_length=1)
    title: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    business_id: Optional[str] = None


class ParticipantRequest(ApiModel):

    user_id: str = Field(min_length=1)


class MessageOut(ApiModel):

    id: str
    conversation_id: str
    sender_id: str
    type: MessageType
    content: str
    media_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MessageOut":
        return cls(
            id=doc["_id"],
            conversation_id=doc["conversation_id"],
            sender_id=doc["sender_id"],
            type=doc.get("type", "text"),
            content=doc.get("content") or "",
            media_url=doc.get("media_url"),
            file_name=doc.get("file_name"),
            file_size=doc.get("file_size"),
            read=doc.get("read", False),
            read_at=doc.get("read_at"),
            created_at=doc["created_at"],
        )


class ConversationOut(ApiModel):

    id: str
    type: ConversationType
    participants: List[str]
    title: str
    description: Optional[str] = None
    business_id: Optional[str] = None
    last_message: Optional[str] = None
    last_message_at: datetime
    unread_count: int = 0
    unread_counts: Dict[str, int] = {}
    created_at: datetime


class ConversationStats(ApiModel):

    total_conversations: int
    unread_conversations: int
    total_messages: int
    unread_messages: int
