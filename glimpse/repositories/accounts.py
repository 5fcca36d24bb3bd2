"""Repository helpers for account records."""

from __future__ import annotations

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import ACCOUNTS_COLLECTION
from ..models.account import AccountDocument
from ..models.quota import Tier
from .exceptions import DuplicateKeyRepositoryError, NotFoundRepositoryError, translate_transient

LOGGER = logging.getLogger("uvicorn.error")

_PROJECTION = {"_id": 0}


class AccountRepository:
    """Thin abstraction over the accounts collection."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[ACCOUNTS_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @translate_transient
    async def create_account(
        self,
        *,
        account_id: str,
        phone_number_hash: str,
        created_at: int,
        tier: Tier = Tier.BASIC,
        verified_at: Optional[int] = None,
        real_name: Optional[str] = None,
    ) -> AccountDocument:
        doc = AccountDocument(
            account_id=account_id,
            phone_number_hash=phone_number_hash,
            created_at=created_at,
            tier=tier,
            verified_at=verified_at,
            real_name=real_name,
        ).model_dump(by_alias=True, mode="json")
        try:
            await self._collection.insert_one(dict(doc))
        except DuplicateKeyError as exc:
            LOGGER.debug("Duplicate account insertion for account=%s", account_id)
            raise DuplicateKeyRepositoryError("account already exists") from exc
        return AccountDocument(**doc)

    @translate_transient
    async def ensure_account(self, *, account_id: str, phone_number_hash: str, created_at: int) -> AccountDocument:
        """Insert the account if missing and return the stored record."""
        try:
            doc = await self._collection.find_one_and_update(
                {"accountId": account_id},
                {
                    "$setOnInsert": {
                        "accountId": account_id,
                        "phoneNumberHash": phone_number_hash,
                        "createdAt": created_at,
                        "tier": Tier.BASIC.value,
                    }
                },
                upsert=True,
                projection=_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            doc = await self._collection.find_one({"accountId": account_id}, _PROJECTION)
        if not doc:
            raise NotFoundRepositoryError("account upsert failed")
        return AccountDocument(**doc)

    @translate_transient
    async def get_by_account_id(self, account_id: str) -> Optional[AccountDocument]:
        doc = await self._collection.find_one({"accountId": account_id}, _PROJECTION)
        return AccountDocument(**doc) if doc else None

    @translate_transient
    async def set_tier(self, account_id: str, tier: Tier, expires_at: Optional[int] = None) -> AccountDocument:
        doc = await self._collection.find_one_and_update(
            {"accountId": account_id},
            {"$set": {"tier": tier.value, "tierExpiresAt": expires_at}},
            projection=_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundRepositoryError("account not found")
        return AccountDocument(**doc)


__all__ = ["AccountRepository"]
