"""Repository helpers for per-context profiles and their activity log."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import PROFILE_ACTIVITY_COLLECTION, PROFILES_COLLECTION
from ..models.profile import ContextType, ProfileDocument
from .exceptions import NotFoundRepositoryError, translate_transient

LOGGER = logging.getLogger("uvicorn.error")

_PROJECTION = {"_id": 0}


class ProfileRepository:
    """MongoDB access layer for profile documents.

    Every read and write is keyed by ``profileId`` plus at least one more
    scoping field (owner or context), so a caller holding one profile id can
    never reach a sibling profile of the same account.
    """

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[PROFILES_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @translate_transient
    async def upsert_for_context(
        self,
        *,
        account_id: str,
        context_type: ContextType,
        context_key: str,
        on_insert: Dict[str, Any],
    ) -> ProfileDocument:
        """Create the profile for the key if missing; return whatever is stored."""
        key = {"accountId": account_id, "contextType": context_type.value, "contextKey": context_key}
        try:
            doc = await self._collection.find_one_and_update(
                key,
                {"$setOnInsert": on_insert},
                upsert=True,
                projection=_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Lost a concurrent upsert race; the winner's document is the answer
            doc = await self._collection.find_one(key, _PROJECTION)
        if not doc:  # pragma: no cover - Motor returns the doc on upsert
            raise NotFoundRepositoryError("profile upsert failed")
        return ProfileDocument(**doc)

    @translate_transient
    async def get_by_profile_id(self, profile_id: str) -> Optional[ProfileDocument]:
        doc = await self._collection.find_one({"profileId": profile_id}, _PROJECTION)
        return ProfileDocument(**doc) if doc else None

    @translate_transient
    async def get_owned(self, account_id: str, profile_id: str) -> Optional[ProfileDocument]:
        doc = await self._collection.find_one({"profileId": profile_id, "accountId": account_id}, _PROJECTION)
        return ProfileDocument(**doc) if doc else None

    @translate_transient
    async def get_for_context(
        self, account_id: str, context_type: ContextType, context_key: str
    ) -> Optional[ProfileDocument]:
        doc = await self._collection.find_one(
            {"accountId": account_id, "contextType": context_type.value, "contextKey": context_key},
            _PROJECTION,
        )
        return ProfileDocument(**doc) if doc else None

    @translate_transient
    async def list_for_account(self, account_id: str, *, active_only: bool = True) -> List[ProfileDocument]:
        query: Dict[str, Any] = {"accountId": account_id}
        if active_only:
            query["isActive"] = True
        rows = await self._collection.find(query, _PROJECTION).to_list(length=None)
        return [ProfileDocument(**row) for row in rows]

    @translate_transient
    async def get_many(self, profile_ids: List[str]) -> Dict[str, ProfileDocument]:
        if not profile_ids:
            return {}
        rows = await self._collection.find({"profileId": {"$in": list(profile_ids)}}, _PROJECTION).to_list(
            length=None
        )
        return {row["profileId"]: ProfileDocument(**row) for row in rows}

    @translate_transient
    async def update_scoped(
        self,
        *,
        profile_id: str,
        account_id: str,
        context_key: str,
        updates: Dict[str, Any],
        unset: Optional[List[str]] = None,
    ) -> ProfileDocument:
        """Update one profile; the filter pins owner and context together."""
        change: Dict[str, Any] = {"$set": updates}
        if unset:
            change["$unset"] = {name: "" for name in unset}
        doc = await self._collection.find_one_and_update(
            {"profileId": profile_id, "accountId": account_id, "contextKey": context_key},
            change,
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundRepositoryError("profile not found")
        return ProfileDocument(**doc)

    @translate_transient
    async def hard_delete(self, profile_id: str) -> bool:
        result = await self._collection.delete_one({"profileId": profile_id})
        return bool(result.deleted_count)

    @translate_transient
    async def find_purgeable(self, now_ms: int, limit: int = 500) -> List[ProfileDocument]:
        """Expired INSTANT profiles plus deactivated profiles past retention."""
        query = {
            "$or": [
                {"contextType": ContextType.INSTANT.value, "expiresAt": {"$lte": now_ms}},
                {"isActive": False, "purgeAfter": {"$lte": now_ms}},
            ]
        }
        rows = await self._collection.find(query, _PROJECTION).limit(limit).to_list(length=limit)
        return [ProfileDocument(**row) for row in rows]


class ProfileActivityRepository:
    """Append-only audit trail for a profile; erased together with INSTANT profiles."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._collection: AsyncIOMotorCollection = database[PROFILE_ACTIVITY_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @translate_transient
    async def record(self, profile_id: str, kind: str, at: int, **data: Any) -> None:
        await self._collection.insert_one({"profileId": profile_id, "kind": kind, "at": at, **data})

    @translate_transient
    async def erase_for(self, profile_id: str) -> int:
        result = await self._collection.delete_many({"profileId": profile_id})
        return int(result.deleted_count)


__all__ = ["ProfileActivityRepository", "ProfileRepository"]
