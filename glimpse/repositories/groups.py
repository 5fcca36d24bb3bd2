"""Repository helpers for groups and report records."""

from __future__ import annotations

from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

from ..db.collections import GROUPS_COLLECTION, REPORTS_COLLECTION
from ..models.group import GroupDocument
from ..models.profile import ContextType
from ..models.report import ReportDocument
from .exceptions import translate_transient

_PROJECTION = {"_id": 0}


class GroupRepository:
    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._collection: AsyncIOMotorCollection = database[GROUPS_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @translate_transient
    async def insert(self, group: GroupDocument) -> GroupDocument:
        await self._collection.insert_one(group.model_dump(by_alias=True, mode="json"))
        return group

    @translate_transient
    async def get(self, group_id: str) -> Optional[GroupDocument]:
        doc = await self._collection.find_one({"groupId": group_id}, _PROJECTION)
        return GroupDocument(**doc) if doc else None

    @translate_transient
    async def list_open_location_groups(self, now_ms: int, limit: int = 1000) -> List[GroupDocument]:
        cursor = self._collection.find(
            {
                "contextType": ContextType.LOCATION.value,
                "isActive": True,
                "latitude": {"$ne": None},
                "longitude": {"$ne": None},
                "$or": [{"expiresAt": None}, {"expiresAt": {"$gt": now_ms}}],
            },
            _PROJECTION,
        ).limit(limit)
        return [GroupDocument(**row) for row in await cursor.to_list(length=limit)]


class ReportRepository:
    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._collection: AsyncIOMotorCollection = database[REPORTS_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    @translate_transient
    async def insert(self, report: ReportDocument) -> ReportDocument:
        await self._collection.insert_one(report.model_dump(by_alias=True, mode="json"))
        return report


__all__ = ["GroupRepository", "ReportRepository"]
