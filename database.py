"""
MongoDB access for the gym back-office.

The client is created lazily by pymongo; no connection is attempted until the
first operation runs.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from pymongo import MongoClient
from pymongo.database import Database

from config import get_settings

_settings = get_settings()

client: MongoClient = MongoClient(_settings.database_url, tz_aware=False)
db: Database = client[_settings.database_name]


def to_object_id(value: Any) -> Union[ObjectId, Any]:
    """Return an ObjectId for valid hex ids, the raw value otherwise."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def to_datetime(value: Optional[date]) -> Optional[datetime]:
    # BSON has no date type; calendar days are stored as midnight UTC
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, datetime.min.time())


def serialize_doc(value: Any) -> Any:
    """Make a Mongo document JSON friendly: ids to str, datetimes to iso."""
    if isinstance(value, dict):
        d: Dict[str, Any] = {}
        for k, v in value.items():
            if k == '_id':
                d['id'] = str(v)
            else:
                d[k] = serialize_doc(v)
        return d
    if isinstance(value, list):
        return [serialize_doc(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
