"""Repository helpers for match records."""

from __future__ import annotations

import logging
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import MATCHES_COLLECTION
from ..models.match import MatchDocument, MatchStatus
from .exceptions import NotFoundRepositoryError, translate_transient

LOGGER = logging.getLogger("uvicorn.error")

_PROJECTION = {"_id": 0}


class MatchRepository:
    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[MATCHES_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @translate_transient
    async def create_once(self, match: MatchDocument) -> tuple[MatchDocument, bool]:
        """Insert the match unless one is already active for its pair key.

        Returns the stored match and whether this call created it. The
        unique ``activePairKey`` index serialises concurrent creators.
        """
        pair_key = match.active_pair_key
        doc = match.model_dump(by_alias=True, mode="json")
        # The upsert copies the key from the filter
        doc.pop("activePairKey", None)
        created = False
        try:
            result = await self._collection.update_one(
                {"activePairKey": pair_key},
                {"$setOnInsert": doc},
                upsert=True,
            )
            created = result.upserted_id is not None
        except DuplicateKeyError:
            LOGGER.debug("Concurrent match upsert for pair=%s resolved by unique index", pair_key)
        stored = await self._collection.find_one({"activePairKey": pair_key}, _PROJECTION)
        if not stored:
            raise NotFoundRepositoryError("match upsert failed")
        return MatchDocument(**stored), created

    @translate_transient
    async def get(self, match_id: str) -> Optional[MatchDocument]:
        doc = await self._collection.find_one({"matchId": match_id}, _PROJECTION)
        return MatchDocument(**doc) if doc else None

    @translate_transient
    async def get_active_by_pair_key(self, pair_key: str) -> Optional[MatchDocument]:
        doc = await self._collection.find_one({"activePairKey": pair_key}, _PROJECTION)
        return MatchDocument(**doc) if doc else None

    @translate_transient
    async def list_active_for(self, profile_ids: List[str], limit: int = 200) -> List[MatchDocument]:
        if not profile_ids:
            return []
        cursor = (
            self._collection.find(
                {
                    "status": MatchStatus.ACTIVE.value,
                    "$or": [
                        {"profileIdA": {"$in": profile_ids}},
                        {"profileIdB": {"$in": profile_ids}},
                    ],
                },
                _PROJECTION,
            )
            .sort("matchedAt", DESCENDING)
            .limit(limit)
        )
        return [MatchDocument(**row) for row in await cursor.to_list(length=limit)]

    @translate_transient
    async def close(self, match_id: str, status: MatchStatus, now_ms: int) -> Optional[MatchDocument]:
        """Soft-delete an active match and release its pair key."""
        doc = await self._collection.find_one_and_update(
            {"matchId": match_id, "status": MatchStatus.ACTIVE.value},
            {"$set": {"status": status.value, "closedAt": now_ms}, "$unset": {"activePairKey": ""}},
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        return MatchDocument(**doc) if doc else None

    @translate_transient
    async def raise_reveal(self, match_id: str, *, reveal_rank: int, chat_turns: int) -> Optional[MatchDocument]:
        """Advance the stored high-water marks; ``$max`` never lowers them."""
        doc = await self._collection.find_one_and_update(
            {"matchId": match_id},
            {"$max": {"revealRank": int(reveal_rank), "chatTurns": int(chat_turns)}},
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        return MatchDocument(**doc) if doc else None

    @translate_transient
    async def add_consent(self, match_id: str, profile_id: str) -> Optional[MatchDocument]:
        doc = await self._collection.find_one_and_update(
            {"matchId": match_id, "status": MatchStatus.ACTIVE.value},
            {"$addToSet": {"consents": profile_id}},
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        return MatchDocument(**doc) if doc else None


__all__ = ["MatchRepository"]
