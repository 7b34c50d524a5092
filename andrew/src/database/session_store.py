"""
Andrew - MongoSessionManager
=============================
Optional server-side chat history backed by MongoDB via ``motor``.

The chat widget can keep its history locally; when ``MONGO_URI`` is set
and the request carries a ``sessionId``, the API stores it here instead.

Rules
-----
- At most ``SESSION_MAX_MESSAGES`` messages are kept per session (the
  oldest are dropped on write).
- A session idle for longer than ``SESSION_EXPIRY_HOURS`` is cleared the
  next time it is loaded.
- Every query filters by ``session_id``.

Collection schema (``sessions``)::

    {
        "session_id": str,
        "messages": [{"role": str, "content": str}, ...],
        "created_at": datetime,
        "updated_at": datetime
    }
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import motor.motor_asyncio

from andrew.config.settings import settings
from andrew.src.utils.logger import get_logger

logger = get_logger(__name__)

StoredMessage = dict[str, str]

_mongo_client: motor.motor_asyncio.AsyncIOMotorClient | None = None


def is_session_store_enabled() -> bool:
    return settings.MONGO_URI is not None


def _get_mongo_client() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Return (or create) the module-level async MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        if settings.MONGO_URI is None:
            raise RuntimeError("MONGO_URI is not configured; session history is disabled.")
        _mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value())
        logger.info("[SESSION] MongoDB async client created (singleton).")
    return _mongo_client


def _as_utc(value: datetime) -> datetime:
    # motor returns naive UTC datetimes unless the client is tz_aware
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class MongoSessionManager:
    """
    Async chat-history store.

    Parameters
    ----------
    collection
        Pre-built collection (tests inject a fake).  When omitted the
        shared client opens ``settings.MONGO_DB_NAME[collection_name]``.
    collection_name
        Collection used when *collection* is not given.
    max_messages / expiry_hours
        Override the ``SESSION_*`` settings.
    """

    __slots__ = ("_collection", "_max_messages", "_expiry")

    def __init__(self, collection: Any | None = None, collection_name: str = "sessions", max_messages: int | None = None, expiry_hours: int | None = None) -> None:
        if collection is None:
            client = _get_mongo_client()
            collection = client[settings.MONGO_DB_NAME][collection_name]
        self._collection = collection
        self._max_messages = max_messages or settings.SESSION_MAX_MESSAGES
        self._expiry = timedelta(hours=expiry_hours or settings.SESSION_EXPIRY_HOURS)


    async def get_history(self, session_id: str) -> list[StoredMessage]:
        """Return the stored messages, clearing the session first if it expired."""
        if await self.should_clear(session_id):
            logger.info("[SESSION] Session '%s' expired — clearing.", session_id)
            await self.clear_session(session_id)
            return []

        doc = await self._collection.find_one({"session_id": session_id}, {"messages": 1})
        if doc is None:
            return []
        return doc.get("messages", [])


    async def save_conversation(self, session_id: str, messages: list[StoredMessage]) -> None:
        """Replace the stored history with the last ``max_messages`` of *messages*."""
        now = datetime.now(timezone.utc)
        trimmed = [{"role": m["role"], "content": m["content"]} for m in messages[-self._max_messages:]]
        await self._collection.update_one({"session_id": session_id}, {"$set": {"messages": trimmed, "updated_at": now}, "$setOnInsert": {"created_at": now}}, upsert=True)
        logger.debug("[SESSION] Saved %d message(s) for session '%s'.", len(trimmed), session_id)


    async def append_exchange(self, session_id: str, user_content: str, assistant_content: str) -> None:
        """Append one user/assistant pair, keeping only the newest ``max_messages``."""
        now = datetime.now(timezone.utc)
        pair: list[StoredMessage] = [{"role": "user", "content": user_content}, {"role": "assistant", "content": assistant_content}]
        await self._collection.update_one({"session_id": session_id}, {"$push": {"messages": {"$each": pair, "$slice": -self._max_messages}}, "$set": {"updated_at": now}, "$setOnInsert": {"created_at": now}}, upsert=True)


    async def clear_session(self, session_id: str) -> bool:
        """Delete a session entirely.  Returns True if removed."""
        result = await self._collection.delete_one({"session_id": session_id})
        return result.deleted_count > 0


    async def get_conversation_age(self, session_id: str) -> float:
        """Seconds since the last write to the session; 0.0 when unknown."""
        doc = await self._collection.find_one({"session_id": session_id}, {"updated_at": 1})
        if doc is None or doc.get("updated_at") is None:
            return 0.0
        return (datetime.now(timezone.utc) - _as_utc(doc["updated_at"])).total_seconds()


    async def should_clear(self, session_id: str) -> bool:
        return await self.get_conversation_age(session_id) > self._expiry.total_seconds()
