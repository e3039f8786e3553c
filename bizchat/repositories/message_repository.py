from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from bizchat.errors import ValidationError
from bizchat.utils.mongo import decode_cursor, encode_cursor, normalize, to_bson_datetime, to_object_id


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("created_at", DESCENDING)])

    async def save_message(
        self,
        conversation_id: str,
        sender_id: str,
        message_type: str,
        content: str,
        created_at: datetime,
        media_url: Optional[str] = None,
        file_name: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "type": message_type,
            "content": content,
            "media_url": media_url,
            "file_name": file_name,
            "file_size": file_size,
            "created_at": to_bson_datetime(created_at),
            "read": False,
            "read_at": None,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return normalize(doc)

    async def get(self, message_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(message_id)
        if oid is None:
            return None
        return normalize(await self.collection.find_one({"_id": oid}))

    async def get_messages_by_conversation(
        self,
        conversation_id: str,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """Newest page first from the store, returned oldest -> newest.

        ``next_cursor`` points at the page of older messages.
        """
        query: Dict[str, Any] = {"conversation_id": conversation_id}
        sort = [("created_at", DESCENDING), ("_id", DESCENDING)]
        if cursor:
            decoded = decode_cursor(cursor)
            if decoded is None:
                raise ValidationError("Invalid cursor")
            ts, oid = decoded
            query["$or"] = [
                {"created_at": {"$lt": to_bson_datetime(ts)}},
                {"created_at": to_bson_datetime(ts), "_id": {"$lt": oid}},
            ]
        cur = self.collection.find(query).sort(sort).limit(limit)
        items = [normalize(it) for it in await cur.to_list(length=limit)]
        next_cursor = None
        if len(items) == limit:
            last = items[-1]
            next_cursor = encode_cursor(last["created_at"], last["_id"])
        return list(reversed(items)), next_cursor

    async def latest(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        cur = self.collection.find({"conversation_id": conversation_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(1)
        items = await cur.to_list(length=1)
        return normalize(items[0]) if items else None

    async def mark_read(self, conversation_id: str, reader_id: str, read_at: datetime) -> int:
        result = await self.collection.update_many(
            {"conversation_id": conversation_id, "sender_id": {"$ne": reader_id}, "read": False},
            {"$set": {"read": True, "read_at": to_bson_datetime(read_at)}},
        )
        return result.modified_count or 0

    async def count_in_conversations(self, conversation_ids: List[str]) -> int:
        if not conversation_ids:
            return 0
        return await self.collection.count_documents({"conversation_id": {"$in": conversation_ids}})

    async def delete(self, message_id: str) -> bool:
        result = await self.collection.delete_one({"_id": to_object_id(message_id)})
        return result.deleted_count > 0
