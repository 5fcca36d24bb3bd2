"""Repository helpers for directional like edges."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import LIKES_COLLECTION
from ..models.likes import LikeDocument, LikeState
from .exceptions import DuplicateKeyRepositoryError, translate_transient

LOGGER = logging.getLogger("uvicorn.error")

_PROJECTION = {"_id": 0}


def _active_clause(now_ms: int) -> Dict[str, Any]:
    """LIKED and not yet past expiry, or already MATCHED."""
    return {
        "$or": [
            {"state": LikeState.MATCHED.value},
            {"state": LikeState.LIKED.value, "expiresAt": {"$gt": now_ms}},
        ]
    }


class LikeRepository:
    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[LIKES_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @translate_transient
    async def insert(self, like: LikeDocument) -> LikeDocument:
        doc = like.model_dump(by_alias=True, mode="json")
        try:
            await self._collection.insert_one(dict(doc))
        except DuplicateKeyError as exc:
            raise DuplicateKeyRepositoryError("an active like already exists for this pair") from exc
        return like

    @translate_transient
    async def get(self, like_id: str) -> Optional[LikeDocument]:
        doc = await self._collection.find_one({"likeId": like_id}, _PROJECTION)
        return LikeDocument(**doc) if doc else None

    @translate_transient
    async def latest_for_direction(
        self, from_profile_id: str, to_profile_id: str, context_id: str
    ) -> Optional[LikeDocument]:
        cursor = (
            self._collection.find(
                {"fromProfileId": from_profile_id, "toProfileId": to_profile_id, "contextId": context_id},
                _PROJECTION,
            )
            .sort("createdAt", DESCENDING)
            .limit(1)
        )
        rows = await cursor.to_list(length=1)
        return LikeDocument(**rows[0]) if rows else None

    @translate_transient
    async def find_active(
        self, from_profile_id: str, to_profile_id: str, context_id: str, now_ms: int
    ) -> Optional[LikeDocument]:
        query = {
            "fromProfileId": from_profile_id,
            "toProfileId": to_profile_id,
            "contextId": context_id,
            **_active_clause(now_ms),
        }
        doc = await self._collection.find_one(query, _PROJECTION)
        return LikeDocument(**doc) if doc else None

    @translate_transient
    async def mark_matched(self, like_id: str, match_id: Optional[str], now_ms: int) -> Optional[LikeDocument]:
        """Compare-and-swap an active like to MATCHED. ``None`` if it was cancelled or expired first."""
        change: Dict[str, Any] = {"state": LikeState.MATCHED.value, "matchedAt": now_ms}
        if match_id:
            change["matchId"] = match_id
        doc = await self._collection.find_one_and_update(
            {"likeId": like_id, **_active_clause(now_ms)},
            {"$set": change},
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        return LikeDocument(**doc) if doc else None

    @translate_transient
    async def attach_match(self, like_ids: Iterable[str], match_id: str) -> None:
        await self._collection.update_many(
            {"likeId": {"$in": list(like_ids)}, "state": LikeState.MATCHED.value},
            {"$set": {"matchId": match_id}},
        )

    @translate_transient
    async def revert_to_liked(self, like_id: str) -> None:
        await self._collection.update_one(
            {"likeId": like_id, "state": LikeState.MATCHED.value, "matchId": None},
            {"$set": {"state": LikeState.LIKED.value, "matchedAt": None}},
        )

    @translate_transient
    async def cancel(self, like_id: str, from_profile_id: str, now_ms: int) -> Optional[LikeDocument]:
        """Compare-and-swap LIKED -> CANCELLED; only the issuing profile may do this."""
        doc = await self._collection.find_one_and_update(
            {
                "likeId": like_id,
                "fromProfileId": from_profile_id,
                "state": LikeState.LIKED.value,
                "expiresAt": {"$gt": now_ms},
            },
            {"$set": {"state": LikeState.CANCELLED.value, "cancelledAt": now_ms}, "$unset": {"activeKey": ""}},
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        return LikeDocument(**doc) if doc else None

    @translate_transient
    async def expire(self, like_id: str, now_ms: int) -> None:
        await self._collection.update_one(
            {"likeId": like_id, "state": LikeState.LIKED.value, "expiresAt": {"$lte": now_ms}},
            {"$set": {"state": LikeState.EXPIRED.value}, "$unset": {"activeKey": ""}},
        )

    @translate_transient
    async def expire_stale(self, now_ms: int) -> int:
        result = await self._collection.update_many(
            {"state": LikeState.LIKED.value, "expiresAt": {"$lte": now_ms}},
            {"$set": {"state": LikeState.EXPIRED.value}, "$unset": {"activeKey": ""}},
        )
        return int(result.modified_count)

    @translate_transient
    async def release_pair(self, context_id: str, profile_a: str, profile_b: str, now_ms: int) -> int:
        """Move both directions of a pair out of the active set (unmatch/report)."""
        result = await self._collection.update_many(
            {
                "contextId": context_id,
                "state": {"$in": [LikeState.LIKED.value, LikeState.MATCHED.value]},
                "$or": [
                    {"fromProfileId": profile_a, "toProfileId": profile_b},
                    {"fromProfileId": profile_b, "toProfileId": profile_a},
                ],
            },
            {"$set": {"state": LikeState.CANCELLED.value, "cancelledAt": now_ms}, "$unset": {"activeKey": ""}},
        )
        return int(result.modified_count)

    @translate_transient
    async def list_received(self, profile_ids: List[str], now_ms: int, limit: int = 100) -> List[LikeDocument]:
        if not profile_ids:
            return []
        cursor = (
            self._collection.find(
                {
                    "toProfileId": {"$in": profile_ids},
                    "state": LikeState.LIKED.value,
                    "expiresAt": {"$gt": now_ms},
                },
                _PROJECTION,
            )
            .sort("createdAt", DESCENDING)
            .limit(limit)
        )
        return [LikeDocument(**row) for row in await cursor.to_list(length=limit)]

    @translate_transient
    async def list_sent(self, profile_ids: List[str], limit: int = 100) -> List[LikeDocument]:
        if not profile_ids:
            return []
        cursor = (
            self._collection.find({"fromProfileId": {"$in": profile_ids}}, _PROJECTION)
            .sort("createdAt", DESCENDING)
            .limit(limit)
        )
        return [LikeDocument(**row) for row in await cursor.to_list(length=limit)]


__all__ = ["LikeRepository"]
