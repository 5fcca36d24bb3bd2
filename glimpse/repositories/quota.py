"""Atomic usage counters backing the quota policy."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import QUOTA_USAGE_COLLECTION
from ..models.quota import QuotaAction
from .exceptions import translate_transient

LOGGER = logging.getLogger("uvicorn.error")

_PROJECTION = {"_id": 0}


class QuotaUsageRepository:
    """One counter document per ``(accountId, scope, action, windowKey)``."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[QUOTA_USAGE_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @staticmethod
    def _key(account_id: str, scope: str, action: QuotaAction, window_key: str) -> Dict[str, Any]:
        return {"accountId": account_id, "scope": scope, "action": action.value, "windowKey": window_key}

    async def _ensure_counter(self, key: Dict[str, Any], now_ms: int) -> None:
        try:
            await self._collection.update_one(
                key,
                {"$setOnInsert": {"count": 0, "createdAt": now_ms}},
                upsert=True,
            )
        except DuplicateKeyError:
            # Another request created the counter first
            pass

    @translate_transient
    async def increment_if_below(
        self,
        *,
        account_id: str,
        scope: str,
        action: QuotaAction,
        window_key: str,
        cap: Optional[int],
        now_ms: int,
    ) -> Optional[int]:
        """Increment-and-check in a single conditional update.

        Returns the new count, or ``None`` when the counter is already at
        ``cap``. Two concurrent callers can never both pass the cap because
        the condition and the increment are evaluated by the server together.
        """
        key = self._key(account_id, scope, action, window_key)
        await self._ensure_counter(key, now_ms)
        query: Dict[str, Any] = dict(key)
        if cap is not None:
            query["count"] = {"$lt": cap}
        doc = await self._collection.find_one_and_update(
            query,
            {"$inc": {"count": 1}, "$set": {"updatedAt": now_ms}},
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return int(doc.get("count", 0))

    @translate_transient
    async def decrement(
        self, *, account_id: str, scope: str, action: QuotaAction, window_key: str, now_ms: int
    ) -> None:
        await self._collection.update_one(
            {**self._key(account_id, scope, action, window_key), "count": {"$gt": 0}},
            {"$inc": {"count": -1}, "$set": {"updatedAt": now_ms}},
        )

    @translate_transient
    async def get_count(self, *, account_id: str, scope: str, action: QuotaAction, window_key: str) -> int:
        doc = await self._collection.find_one(self._key(account_id, scope, action, window_key), _PROJECTION)
        return int(doc.get("count", 0)) if doc else 0

    @translate_transient
    async def list_windows(self, account_id: str, window_keys: List[str]) -> List[Dict[str, Any]]:
        cursor = self._collection.find({"accountId": account_id, "windowKey": {"$in": window_keys}}, _PROJECTION)
        return await cursor.to_list(length=None)


__all__ = ["QuotaUsageRepository"]
