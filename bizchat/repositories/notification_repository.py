from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from bizchat.utils.mongo import normalize, to_bson_datetime, to_object_id


class NotificationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["notifications"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("recipient_id", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([("recipient_id", ASCENDING), ("read", ASCENDING)])

    async def create(
        self,
        recipient_id: str,
        notification_type: str,
        title: str,
        message: str,
        payload: Optional[Dict[str, Any]],
        created_at: datetime,
    ) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "recipient_id": recipient_id,
            "type": notification_type,
            "title": title,
            "message": message,
            "payload": payload,
            "read": False,
            "created_at": to_bson_datetime(created_at),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return normalize(doc)

    async def get(self, notification_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(notification_id)
        if oid is None:
            return None
        return normalize(await self.collection.find_one({"_id": oid}))

    def _query(self, recipient_id: str, unread_only: bool) -> Dict[str, Any]:
        query: Dict[str, Any] = {"recipient_id": recipient_id}
        if unread_only:
            query["read"] = False
        return query

    async def list_for_recipient(self, recipient_id: str, skip: int, limit: int, unread_only: bool = False) -> List[Dict[str, Any]]:
        cur = (
            self.collection.find(self._query(recipient_id, unread_only))
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        return [normalize(it) for it in await cur.to_list(length=limit)]

    async def count(self, recipient_id: str, unread_only: bool = False) -> int:
        return await self.collection.count_documents(self._query(recipient_id, unread_only))

    async def mark_read(self, notification_id: str) -> bool:
        result = await self.collection.update_one(
            {"_id": to_object_id(notification_id), "read": False},
            {"$set": {"read": True}},
        )
        return bool(result.modified_count)

    async def mark_all_read(self, recipient_id: str) -> int:
        result = await self.collection.update_many(
            {"recipient_id": recipient_id, "read": False},
            {"$set": {"read": True}},
        )
        return result.modified_count or 0

    async def delete(self, notification_id: str) -> bool:
        result = await self.collection.delete_one({"_id": to_object_id(notification_id)})
        return result.deleted_count > 0

    async def delete_read_before(self, cutoff: datetime) -> int:
        result = await self.collection.delete_many({"read": True, "created_at": {"$lt": to_bson_datetime(cutoff)}})
        return result.deleted_count or 0
