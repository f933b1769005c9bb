"""
MongoDB access

Thin helpers over pymongo. The database handle is created once by connect()
and passed to whoever needs it; nothing here keeps module state.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import StorageUnavailable

logger = logging.getLogger(__name__)

CONTENT = "content"
MESSAGES = "messages"
COUNTERS = "counters"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def connect(settings, client: Optional[MongoClient] = None) -> Database:
    """Open the database named in settings and make sure the server answers."""
    if client is None:
        client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000)
    db = client[settings.database_name]
    try:
        client.admin.command("ping")
    except PyMongoError as e:
        logger.error("Database ping failed: %s", type(e).__name__)
        raise StorageUnavailable("Could not reach the database") from e
    logger.info("Connected to MongoDB database %s", settings.database_name)
    return db


def ensure_indexes(db: Database) -> None:
    db[MESSAGES].create_index("id", unique=True)
    db[MESSAGES].create_index([("createdAt", DESCENDING), ("id", DESCENDING)])


def create_document(db: Database, collection_name: str, data: Dict[str, Any]) -> str:
    doc = dict(data)
    doc.setdefault("created_at", _now())
    doc["updated_at"] = _now()
    res = db[collection_name].insert_one(doc)
    return str(res.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List] = None,
    skip: int = 0,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {}, {"_id": 0})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def initialize_if_absent(collection: Collection, key: str, value: Any) -> Any:
    """
    Store `value` under `key` only when no record exists yet and return
    whatever value ends up stored. Two callers racing on the same key both
    get the winner's value back.
    """
    now = _now()
    try:
        doc = collection.find_one_and_update(
            {"_id": key},
            {"$setOnInsert": {"value": value, "created_at": now, "updated_at": now}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        doc = collection.find_one({"_id": key})
    return doc["value"]


def next_sequence(db: Database, name: str) -> int:
    doc = db[COUNTERS].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])


def raise_sequence(db: Database, name: str, floor: int) -> None:
    """Make sure the next id handed out by next_sequence is above `floor`."""
    db[COUNTERS].update_one({"_id": name}, {"$max": {"seq": int(floor)}}, upsert=True)
