"""Repository helpers for interest registrations."""

from __future__ import annotations

from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import INTEREST_REGISTRATIONS_COLLECTION
from ..models.interest import InterestRegistrationDocument, InterestType, RegistrationStatus
from .exceptions import DuplicateKeyRepositoryError, translate_transient

_PROJECTION = {"_id": 0}


class InterestRegistrationRepository:
    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._collection: AsyncIOMotorCollection = database[INTEREST_REGISTRATIONS_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @translate_transient
    async def insert(self, registration: InterestRegistrationDocument) -> InterestRegistrationDocument:
        try:
            await self._collection.insert_one(registration.model_dump(by_alias=True, mode="json"))
        except DuplicateKeyError as exc:
            raise DuplicateKeyRepositoryError("an active registration already exists for this value") from exc
        return registration

    @translate_transient
    async def get_owned(self, account_id: str, registration_id: str) -> Optional[InterestRegistrationDocument]:
        doc = await self._collection.find_one(
            {"registrationId": registration_id, "accountId": account_id}, _PROJECTION
        )
        return InterestRegistrationDocument(**doc) if doc else None

    @translate_transient
    async def find_active_same_value(
        self, account_id: str, type_: InterestType, value_hash: str, now_ms: int
    ) -> Optional[InterestRegistrationDocument]:
        doc = await self._collection.find_one(
            {
                "accountId": account_id,
                "type": type_.value,
                "valueHash": value_hash,
                "status": RegistrationStatus.ACTIVE.value,
                "expiresAt": {"$gt": now_ms},
            },
            _PROJECTION,
        )
        return InterestRegistrationDocument(**doc) if doc else None

    @translate_transient
    async def latest_closed_same_value(
        self, account_id: str, type_: InterestType, value_hash: str
    ) -> Optional[InterestRegistrationDocument]:
        cursor = (
            self._collection.find(
                {
                    "accountId": account_id,
                    "type": type_.value,
                    "valueHash": value_hash,
                    "status": RegistrationStatus.DELETED.value,
                },
                _PROJECTION,
            )
            .sort("closedAt", DESCENDING)
            .limit(1)
        )
        rows = await cursor.to_list(length=1)
        return InterestRegistrationDocument(**rows[0]) if rows else None

    @translate_transient
    async def list_active(self, account_id: str) -> List[InterestRegistrationDocument]:
        cursor = self._collection.find(
            {"accountId": account_id, "status": RegistrationStatus.ACTIVE.value}, _PROJECTION
        ).sort("createdAt", DESCENDING)
        return [InterestRegistrationDocument(**row) for row in await cursor.to_list(length=None)]

    @translate_transient
    async def find_lapsed(self, now_ms: int, account_id: Optional[str] = None) -> List[InterestRegistrationDocument]:
        query = {"status": RegistrationStatus.ACTIVE.value, "expiresAt": {"$lte": now_ms}}
        if account_id:
            query["accountId"] = account_id
        rows = await self._collection.find(query, _PROJECTION).to_list(length=None)
        return [InterestRegistrationDocument(**row) for row in rows]

    @translate_transient
    async def close(
        self, registration_id: str, status: RegistrationStatus, now_ms: int
    ) -> Optional[InterestRegistrationDocument]:
        """ACTIVE -> DELETED/EXPIRED exactly once; ``None`` if already closed."""
        doc = await self._collection.find_one_and_update(
            {"registrationId": registration_id, "status": RegistrationStatus.ACTIVE.value},
            {"$set": {"status": status.value, "closedAt": now_ms}, "$unset": {"activeValueKey": ""}},
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        return InterestRegistrationDocument(**doc) if doc else None


__all__ = ["InterestRegistrationRepository"]
