"""
MongoDB access for the school portal.

``db`` is None until DATABASE_URL is configured; request handlers get the
handle through the ``get_db`` dependency so tests can swap in another database.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.database import Database

import settings
from errors import InternalError, ValidationError

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.DATABASE_URL:
    client = MongoClient(settings.DATABASE_URL)
    db = client[settings.DATABASE_NAME]
else:
    logger.warning("DATABASE_URL not set; datastore routes will fail until it is configured")


def get_db() -> Database:
    if db is None:
        raise InternalError("Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id")


def create_document(database: Database, collection_name: str, data: dict) -> dict:
    """Insert ``data`` stamped with created/updated times and return the stored document."""
    doc = dict(data)
    stamp = now_utc()
    doc["created_at"] = stamp
    doc["updated_at"] = stamp
    res = database[collection_name].insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None) -> list:
    cursor = database[collection_name].find(filter_dict or {}).sort("created_at", 1)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(doc: dict, hidden: tuple = ()) -> dict:
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k in hidden:
            continue
        if k == "_id":
            out["id"] = str(v)
        elif isinstance(v, ObjectId):
            out[k] = str(v)
        elif isinstance(v, (datetime, date)):
            out[k] = v.isoformat()
        else:
            out[k] = v
    return out
