from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from bizchat.errors import ValidationError
from bizchat.utils.mongo import decode_cursor, encode_cursor, normalize, to_bson_datetime, to_object_id


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index([("last_message_at", DESCENDING)])

    async def create(
        self,
        conversation_type: str,
        participants: List[str],
        created_at: datetime,
        title: Optional[str] = None,
        description: Optional[str] = None,
        business_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "type": conversation_type,
            "participants": list(participants),
            "business_id": business_id,
            "title": title,
            "description": description,
            "created_at": to_bson_datetime(created_at),
            "last_message_at": to_bson_datetime(created_at),
            "last_message_preview": None,
            "last_message_id": None,
            "unread_counters": {p: 0 for p in participants},
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return normalize(doc)

    async def find_direct(self, conversation_type: str, participants: List[str], business_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        query: Dict[str, Any] = {
            "type": conversation_type,
            "participants": {"$all": list(participants), "$size": len(participants)},
        }
        if business_id:
            query["business_id"] = business_id
        return normalize(await self.collection.find_one(query))

    async def get(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(conversation_id)
        if oid is None:
            return None
        return normalize(await self.collection.find_one({"_id": oid}))

    async def update_on_new_message(self, conversation_id: str, message_id: str, preview: str, sent_at: datetime, recipients: Iterable[str]) -> None:
        update: Dict[str, Any] = {
            "$set": {
                "last_message_at": to_bson_datetime(sent_at),
                "last_message_preview": preview,
                "last_message_id": message_id,
            },
        }
        increments = {f"unread_counters.{r}": 1 for r in recipients}
        if increments:
            update["$inc"] = increments
        await self.collection.update_one({"_id": to_object_id(conversation_id)}, update)

    async def set_last_message(self, conversation_id: str, message_id: Optional[str], preview: Optional[str], sent_at: datetime) -> None:
        await self.collection.update_one(
            {"_id": to_object_id(conversation_id)},
            {"$set": {"last_message_at": to_bson_datetime(sent_at), "last_message_preview": preview, "last_message_id": message_id}},
        )

    async def reset_unread(self, conversation_id: str, user_id: str) -> None:
        await self.collection.update_one(
            {"_id": to_object_id(conversation_id)},
            {"$set": {f"unread_counters.{user_id}": 0}},
        )

    async def decrement_unread(self, conversation_id: str, user_ids: Iterable[str]) -> None:
        oid = to_object_id(conversation_id)
        for user_id in user_ids:
            # floored at zero: only counters still above it are touched
            await self.collection.update_one(
                {"_id": oid, f"unread_counters.{user_id}": {"$gt": 0}},
                {"$inc": {f"unread_counters.{user_id}": -1}},
            )

    async def add_participant(self, conversation_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        doc = await self.collection.find_one_and_update(
            {"_id": to_object_id(conversation_id), "participants": {"$ne": user_id}},
            {"$push": {"participants": user_id}, "$set": {f"unread_counters.{user_id}": 0}},
            return_document=ReturnDocument.AFTER,
        )
        return normalize(doc)

    async def remove_participant(self, conversation_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        doc = await self.collection.find_one_and_update(
            {"_id": to_object_id(conversation_id), "participants": user_id},
            {"$pull": {"participants": user_id}, "$unset": {f"unread_counters.{user_id}": ""}},
            return_document=ReturnDocument.AFTER,
        )
        return normalize(doc)

    async def list_for_user(self, user_id: str, limit: int = 20, cursor: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        query: Dict[str, Any] = {"participants": user_id}
        sort = [("last_message_at", DESCENDING), ("_id", DESCENDING)]
        if cursor:
            decoded = decode_cursor(cursor)
            if decoded is None:
                raise ValidationError("Invalid cursor")
            ts, oid = decoded
            query["$or"] = [
                {"last_message_at": {"$lt": to_bson_datetime(ts)}},
                {"last_message_at": to_bson_datetime(ts), "_id": {"$lt": oid}},
            ]

        cursor_db = self.collection.find(query).sort(sort).limit(limit)
        items = [normalize(it) for it in await cursor_db.to_list(length=limit)]
        next_cursor = None
        if len(items) == limit:
            last = items[-1]
            next_cursor = encode_cursor(last["last_message_at"], last["_id"])
        return items, next_cursor

    async def all_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        cursor_db = self.collection.find({"participants": user_id})
        return [normalize(it) for it in await cursor_db.to_list(length=None)]
