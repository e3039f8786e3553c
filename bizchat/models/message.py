from datetime import datetime
from typing import Literal, Optional, TypedDict


MessageType = Literal["text", "image", "file"]


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: str
    sender_id: str
    type: MessageType
    content: str
    media_url: Optional[str]
    file_name: Optional[str]
    file_size: Optional[int]
    created_at: datetime
    # read receipt; flips false -> true only
    read: bool
    read_at: Optional[datetime]
