from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def as_utc(value: datetime) -> datetime:
    # Mongo hands back naive UTC unless the client is tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow_ms() -> datetime:
    """Current UTC time at the millisecond precision BSON dates keep."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def encode_cursor(ts: datetime, oid: str) -> str:
    delta = as_utc(ts) - EPOCH
    return f"{delta // timedelta(milliseconds=1)}:{oid}"


def decode_cursor(cursor: str) -> Optional[tuple[datetime, ObjectId]]:
    # cursor format: ts_ms:oid
    ts_str, _, oid_hex = cursor.partition(":")
    oid = to_object_id(oid_hex)
    if not ts_str.isdigit() or oid is None:
        return None
    return EPOCH + timedelta(milliseconds=int(ts_str)), oid


def normalize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc["_id"] = str(doc.get("_id"))
    for key, value in doc.items():
        if isinstance(value, datetime):
            doc[key] = as_utc(value)
    return doc


def to_bson_datetime(value: datetime) -> datetime:
    # written and queried as naive UTC; normalize() hands back aware values
    return as_utc(value).replace(tzinfo=None)
