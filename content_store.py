"""
Content and message storage

Content documents are resolved in three tiers: the MongoDB "content"
collection, then the legacy JSON file for that key under DATA_DIR, then the
key's empty default. Whatever the lower tiers produce is written back with
a conditional insert, so the first read after a backend switch migrates the
key and every later read is served from the database.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from pymongo import DESCENDING
from pymongo.database import Database

from database import (
    CONTENT,
    MESSAGES,
    create_document,
    get_documents,
    initialize_if_absent,
    next_sequence,
    raise_sequence,
)
from errors import NotFound
from schemas import ContentKey, Message, MessagePage

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
LEGACY_MESSAGES_FILE = "messages.json"
NEWEST_FIRST = [("createdAt", DESCENDING), ("id", DESCENDING)]

_MISSING = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def storage_time(value: datetime) -> datetime:
    """Naive UTC with millisecond precision, which is what MongoDB hands back."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


class ContentStore:
    def __init__(self, db: Database, data_dir: Union[str, Path], clock: Optional[Callable[[], datetime]] = None):
        self._db = db
        self._content = db[CONTENT]
        self._messages = db[MESSAGES]
        self._data_dir = Path(data_dir)
        self._clock = clock or _utcnow

    # -----------------------------
    # Named documents
    # -----------------------------

    def get_document(self, key: Union[ContentKey, str]) -> Any:
        key = ContentKey(key)
        doc = self._content.find_one({"_id": key.value})
        if doc is not None:
            return doc["value"]

        value = self._read_legacy(key)
        source = "legacy file"
        if value is _MISSING:
            value = key.default()
            source = "default"
        stored = initialize_if_absent(self._content, key.value, value)
        logger.info("Migrated content %r into the database from %s", key.value, source)
        return stored

    def put_document(self, key: Union[ContentKey, str], value: Any) -> None:
        key = ContentKey(key)
        self._content.replace_one(
            {"_id": key.value},
            {"value": value, "updated_at": self._clock()},
            upsert=True,
        )
        logger.info("Updated content %r", key.value)

    def _read_legacy(self, key: ContentKey) -> Any:
        path = self._data_dir / key.filename
        if not path.is_file():
            return _MISSING
        try:
            with path.open(encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable legacy file %s: %s", path.name, e)
            return _MISSING

    # -----------------------------
    # Messages
    # -----------------------------

    def append_message(self, name: str, email: str, body: str) -> Message:
        record = {
            "id": next_sequence(self._db, MESSAGES),
            "name": name,
            "email": email,
            "message": body,
            "createdAt": storage_time(self._clock()),
            "read": False,
        }
        create_document(self._db, MESSAGES, record)
        logger.info("Stored message %s", record["id"])
        return Message(**record)

    def all_messages(self) -> List[Message]:
        return [Message(**d) for d in get_documents(self._db, MESSAGES, sort=NEWEST_FIRST)]

    def list_messages(self, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> MessagePage:
        page = page if page and page >= 1 else 1
        page_size = page_size if page_size and page_size > 0 else DEFAULT_PAGE_SIZE

        total = self._messages.count_documents({})
        docs = get_documents(
            self._db,
            MESSAGES,
            sort=NEWEST_FIRST,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        return MessagePage(
            page=page,
            limit=page_size,
            total=total,
            messages=[Message(**d) for d in docs],
        )

    def mark_read(self, message_id: int) -> None:
        res = self._messages.update_one({"id": message_id}, {"$set": {"read": True}})
        if res.matched_count == 0:
            raise NotFound("Message not found")

    def delete_message(self, message_id: int) -> None:
        res = self._messages.delete_one({"id": message_id})
        if res.deleted_count:
            logger.info("Deleted message %s", message_id)

    # -----------------------------
    # Legacy message import
    # -----------------------------

    def import_legacy_messages(self) -> int:
        """
        Copy DATA_DIR/messages.json into an empty messages collection.
        Returns the number of records imported.
        """
        if self._messages.count_documents({}) > 0:
            return 0
        path = self._data_dir / LEGACY_MESSAGES_FILE
        if not path.is_file():
            return 0
        try:
            with path.open(encoding="utf-8") as fh:
                records = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning("Skipping unreadable legacy messages file: %s", e)
            return 0
        if not isinstance(records, list):
            logger.warning("Skipping legacy messages file: expected a list")
            return 0

        records = [r for r in records if isinstance(r, dict)]
        known_ids = [i for i in (_coerce_id(r.get("id")) for r in records) if i is not None]
        if known_ids:
            raise_sequence(self._db, MESSAGES, max(known_ids))

        imported = 0
        for rec in records:
            msg_id = _coerce_id(rec.get("id"))
            if msg_id is None:
                msg_id = next_sequence(self._db, MESSAGES)
            fields = self._legacy_fields(rec, msg_id)
            res = self._messages.update_one({"id": msg_id}, {"$setOnInsert": fields}, upsert=True)
            if res.upserted_id is not None:
                imported += 1

        logger.info("Imported %d legacy messages", imported)
        return imported

    def _legacy_fields(self, rec: Dict[str, Any], msg_id: int) -> Dict[str, Any]:
        created = _parse_date(rec.get("createdAt") or rec.get("date"))
        if created is None and msg_id > 10 ** 11:
            # ids used to be Date.now() values
            created = datetime.fromtimestamp(msg_id / 1000, tz=timezone.utc)
        return {
            "name": str(rec.get("name") or ""),
            "email": str(rec.get("email") or ""),
            "message": str(rec.get("message") or ""),
            "createdAt": storage_time(created or self._clock()),
            "read": rec.get("read") is True,
        }


def _coerce_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_date(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
