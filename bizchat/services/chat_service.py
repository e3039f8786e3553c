from typing import Any, Dict, List, Optional, Set, Tuple

from bizchat.errors import Forbidden, NotFound, ValidationError
from bizchat.models.conversation import DIRECT_TYPES, ConversationType
from bizchat.repositories.conversation_repository import ConversationRepository
from bizchat.repositories.message_repository import MessageRepository
from bizchat.schemas.chat import ConversationOut, ConversationStats, MessageContent, MessageOut
from bizchat.services.delivery_service import (
    CONVERSATION_NEW,
    CONVERSATION_UPDATED,
    MESSAGE_DELETED,
    MESSAGE_NEW,
    MESSAGE_READ,
    TYPING,
    LiveDelivery,
)
from bizchat.services.notification_service import NotificationService
from bizchat.utils.keyed_lock import KeyedLock, conversation_locks
from bizchat.utils.logging import get_logger
from bizchat.utils.mongo import utcnow_ms


logger = get_logger(__name__)

CONTENT_MAX_LENGTH = 2000
PREVIEW_MAX_LENGTH = 200


def preview_of(message_type: str, text: str) -> str:
    if text:
        return text[:PREVIEW_MAX_LENGTH]
    return f"[{message_type}]"


def display_title(conversation: Dict[str, Any], viewer_id: str) -> str:
    if conversation.get("title"):
        return conversation["title"]
    participants = conversation.get("participants", [])
    if conversation.get("type") == "group":
        return f"Group ({len(participants)} members)"
    others = [p for p in participants if p != viewer_id]
    return ", ".join(others) or "Conversation"


def validate_content(content: MessageContent) -> str:
    """Return the normalised text of a message or raise ValidationError."""
    text = (content.content or "").strip()
    if content.type in ("image", "file") and not content.media_url:
        raise ValidationError(f"{content.type} messages require mediaUrl")
    if content.type == "text" and not text:
        raise ValidationError("Message content cannot be empty")
    if len(text) > CONTENT_MAX_LENGTH:
        raise ValidationError(f"Message content exceeds {CONTENT_MAX_LENGTH} characters")
    return text


class TypingTracker:
    """Ephemeral who-is-typing sets per conversation. Never persisted."""

    def __init__(self) -> None:
        self._typing: Dict[str, Set[str]] = {}

    def start(self, conversation_id: str, user_id: str) -> List[str]:
        self._typing.setdefault(conversation_id, set()).add(user_id)
        return self.typing_in(conversation_id)

    def stop(self, conversation_id: str, user_id: str) -> List[str]:
        users = self._typing.get(conversation_id)
        if users is not None:
            users.discard(user_id)
            if not users:
                del self._typing[conversation_id]
        return self.typing_in(conversation_id)

    def typing_in(self, conversation_id: str) -> List[str]:
        return sorted(self._typing.get(conversation_id, ()))

    def conversations_of(self, user_id: str) -> List[str]:
        return [cid for cid, users in self._typing.items() if user_id in users]


typing_tracker = TypingTracker()


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        delivery: LiveDelivery,
        notifications: Optional[NotificationService] = None,
        locks: KeyedLock = conversation_locks,
        typing: TypingTracker = typing_tracker,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._delivery = delivery
        self._notifications = notifications
        self._locks = locks
        self._typing = typing

    async def _load_for(self, user_id: str, conversation_id: str) -> Dict[str, Any]:
        convo = await self._conversation_repo.get(conversation_id)
        if convo is None:
            raise NotFound("Conversation not found")
        if user_id not in convo.get("participants", []):
            raise Forbidden("You are not a participant of this conversation")
        return convo

    def _to_out(self, convo: Dict[str, Any], viewer_id: str) -> ConversationOut:
        counters = convo.get("unread_counters") or {}
        return ConversationOut(
            id=convo["_id"],
            type=convo["type"],
            participants=convo.get("participants", []),
            title=display_title(convo, viewer_id),
            description=convo.get("description"),
            business_id=convo.get("business_id"),
            last_message=convo.get("last_message_preview"),
            last_message_at=convo["last_message_at"],
            unread_count=counters.get(viewer_id, 0),
            unread_counts=counters,
            created_at=convo["created_at"],
        )

    @staticmethod
    def _others(convo: Dict[str, Any], user_id: str) -> List[str]:
        return [p for p in convo.get("participants", []) if p != user_id]

    async def create_conversation(
        self,
        user_id: str,
        conversation_type: ConversationType,
        participants: List[str],
        title: Optional[str] = None,
        description: Optional[str] = None,
        business_id: Optional[str] = None,
    ) -> Tuple[ConversationOut, bool]:
        """Create a conversation, or return the existing direct one.

        The caller is always a participant. Returns ``(conversation, created)``.
        """
        members: List[str] = []
        for p in [*participants, user_id]:
            if p and p not in members:
                members.append(p)
        if conversation_type in DIRECT_TYPES and len(members) != 2:
            raise ValidationError("Direct conversations need exactly two participants")
        if conversation_type == "group" and len(members) < 2:
            raise ValidationError("Group conversations need at least two participants")

        key = f"{conversation_type}:{business_id or ''}:{'|'.join(sorted(members))}"
        async with self._locks.hold(key):
            if conversation_type in DIRECT_TYPES:
                existing = await self._conversation_repo.find_direct(conversation_type, members, business_id)
                if existing is not None:
                    return self._to_out(existing, user_id), False
            convo = await self._conversation_repo.create(
                conversation_type,
                members,
                created_at=utcnow_ms(),
                title=title,
                description=description,
                business_id=business_id,
            )
        logger.info(
            "Conversation created",
            extra={"extra_fields": {"conversation_id": convo["_id"], "type": conversation_type, "participants": len(members)}},
        )
        for other in self._others(convo, user_id):
            await self._delivery.push(other, CONVERSATION_NEW, self._to_out(convo, other).to_api())
        return self._to_out(convo, user_id), True

    async def list_conversations(self, user_id: str, limit: int = 20, cursor: str | None = None) -> Tuple[List[ConversationOut], Optional[str]]:
        items, next_cursor = await self._conversation_repo.list_for_user(user_id, limit=limit, cursor=cursor)
        return [self._to_out(it, user_id) for it in items], next_cursor

    async def get_conversation(self, user_id: str, conversation_id: str) -> ConversationOut:
        return self._to_out(await self._load_for(user_id, conversation_id), user_id)

    async def list_messages(self, user_id: str, conversation_id: str, limit: int = 50, cursor: str | None = None) -> Tuple[List[MessageOut], Optional[str]]:
        await self._load_for(user_id, conversation_id)
        items, next_cursor = await self._message_repo.get_messages_by_conversation(conversation_id, limit=limit, cursor=cursor)
        return [MessageOut.from_document(it) for it in items], next_cursor

    async def send_message(self, user_id: str, conversation_id: str, content: MessageContent) -> MessageOut:
        text = validate_content(content)
        async with self._locks.hold(conversation_id):
            convo = await self._load_for(user_id, conversation_id)
            # never behind the current head, so last_message_at only moves forward
            sent_at = max(utcnow_ms(), convo["last_message_at"])
            saved = await self._message_repo.save_message(
                conversation_id=conversation_id,
                sender_id=user_id,
                message_type=content.type,
                content=text,
                created_at=sent_at,
                media_url=content.media_url,
                file_name=content.file_name,
                file_size=content.file_size,
            )
            recipients = self._others(convo, user_id)
            await self._conversation_repo.update_on_new_message(
                conversation_id, saved["_id"], preview_of(content.type, text), sent_at, recipients
            )
        message = MessageOut.from_document(saved)
        logger.info(
            "Message sent",
            extra={"extra_fields": {"conversation_id": conversation_id, "message_id": message.id, "sender_id": user_id}},
        )
        await self._delivery.push_many(recipients, MESSAGE_NEW, message.to_api())
        await self._notify_offline(recipients, user_id, message)
        return message

    async def _notify_offline(self, recipients: List[str], sender_id: str, message: MessageOut) -> None:
        if self._notifications is None:
            return
        for recipient in recipients:
            if await self._delivery.is_online(recipient):
                continue
            # the message is already stored; a missing notification must not fail the send
            try:
                await self._notifications.notify_new_message(
                    recipient, sender_name=sender_id, conversation_id=message.conversation_id, message_id=message.id
                )
            except Exception:
                logger.exception("Offline notification for %s failed", recipient)

    async def mark_read(self, user_id: str, conversation_id: str) -> int:
        async with self._locks.hold(conversation_id):
            convo = await self._load_for(user_id, conversation_id)
            read_at = utcnow_ms()
            count = await self._message_repo.mark_read(conversation_id, user_id, read_at)
            await self._conversation_repo.reset_unread(conversation_id, user_id)
        logger.info(
            "Conversation marked read",
            extra={"extra_fields": {"conversation_id": conversation_id, "user_id": user_id, "count": count}},
        )
        await self._delivery.push_many(
            self._others(convo, user_id),
            MESSAGE_READ,
            {"conversationId": conversation_id, "readerId": user_id, "count": count, "readAt": read_at},
        )
        return count

    async def delete_message(self, user_id: str, message_id: str) -> None:
        message = await self._message_repo.get(message_id)
        if message is None:
            raise NotFound("Message not found")
        if message["sender_id"] != user_id:
            raise Forbidden("Only the sender can delete a message")
        conversation_id = message["conversation_id"]
        async with self._locks.hold(conversation_id):
            if not await self._message_repo.delete(message_id):
                raise NotFound("Message not found")
            convo = await self._conversation_repo.get(conversation_id)
            if convo is None:
                return
            if convo.get("last_message_id") == message_id:
                latest = await self._message_repo.latest(conversation_id)
                if latest is None:
                    await self._conversation_repo.set_last_message(conversation_id, None, None, convo["created_at"])
                else:
                    await self._conversation_repo.set_last_message(
                        conversation_id, latest["_id"], preview_of(latest.get("type", "text"), latest.get("content", "")), latest["created_at"]
                    )
            if not message.get("read"):
                # unread means no recipient had read it yet
                await self._conversation_repo.decrement_unread(conversation_id, self._others(convo, user_id))
        logger.info("Message deleted", extra={"extra_fields": {"conversation_id": conversation_id, "message_id": message_id}})
        await self._delivery.push_many(
            self._others(convo, user_id), MESSAGE_DELETED, {"conversationId": conversation_id, "messageId": message_id}
        )

    async def add_participant(self, user_id: str, conversation_id: str, new_participant_id: str) -> bool:
        async with self._locks.hold(conversation_id):
            convo = await self._load_for(user_id, conversation_id)
            if convo["type"] != "group":
                raise ValidationError("Participants can only be added to group conversations")
            if new_participant_id in convo["participants"]:
                return False
            updated = await self._conversation_repo.add_participant(conversation_id, new_participant_id)
        if updated is None:
            return False
        await self._delivery.push(
            new_participant_id, CONVERSATION_UPDATED, {"action": "added", "conversation": self._to_out(updated, new_participant_id).to_api()}
        )
        return True

    async def remove_participant(self, user_id: str, conversation_id: str, participant_id: str) -> None:
        async with self._locks.hold(conversation_id):
            convo = await self._load_for(user_id, conversation_id)
            if convo["type"] != "group":
                raise ValidationError("Participants can only be removed from group conversations")
            if participant_id not in convo["participants"]:
                raise NotFound("User is not a participant of this conversation")
            await self._conversation_repo.remove_participant(conversation_id, participant_id)
        self._typing.stop(conversation_id, participant_id)
        await self._delivery.push(participant_id, CONVERSATION_UPDATED, {"action": "removed", "conversationId": conversation_id})

    async def stats(self, user_id: str) -> ConversationStats:
        conversations = await self._conversation_repo.all_for_user(user_id)
        unread = [(c.get("unread_counters") or {}).get(user_id, 0) for c in conversations]
        total_messages = await self._message_repo.count_in_conversations([c["_id"] for c in conversations])
        return ConversationStats(
            total_conversations=len(conversations),
            unread_conversations=sum(1 for n in unread if n > 0),
            total_messages=total_messages,
            unread_messages=sum(unread),
        )

    async def set_typing(self, user_id: str, conversation_id: str, typing: bool) -> List[str]:
        convo = await self._load_for(user_id, conversation_id)
        if typing:
            users = self._typing.start(conversation_id, user_id)
        else:
            users = self._typing.stop(conversation_id, user_id)
        await self._delivery.push_many(self._others(convo, user_id), TYPING, {"conversationId": conversation_id, "userIds": users})
        return users

    async def clear_typing(self, user_id: str) -> None:
        for conversation_id in self._typing.conversations_of(user_id):
            users = self._typing.stop(conversation_id, user_id)
            convo = await self._conversation_repo.get(conversation_id)
            if convo is not None:
                await self._delivery.push_many(self._others(convo, user_id), TYPING, {"conversationId": conversation_id, "userIds": users})
