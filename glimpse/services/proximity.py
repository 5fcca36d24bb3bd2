"""Radius queries over location groups."""

from __future__ import annotations

import logging
from typing import Iterable, List, Tuple, TypeVar

from ..cache import TTLCache
from ..clock import Clock
from ..geo import GeoPoint, nearby
from ..models.group import GroupDocument
from ..repositories.groups import GroupRepository

LOGGER = logging.getLogger("uvicorn.error")

K = TypeVar("K")

_GROUPS_CACHE_KEY = "proximity:location-groups"
_GROUPS_CACHE_TTL_SECONDS = 30


class ProximityIndex:
    def __init__(self, groups: GroupRepository, cache: TTLCache, *, clock: Clock) -> None:
        self._groups = groups
        self._cache = cache
        self._clock = clock

    @staticmethod
    def nearby(
        center: GeoPoint,
        radius_meters: float,
        candidates: Iterable[Tuple[K, GeoPoint]],
    ) -> List[Tuple[K, float]]:
        """Candidates inside ``radius_meters``, nearest first, ties by id."""
        if radius_meters < 0:
            raise ValueError("radius must not be negative")
        return nearby(center, radius_meters, candidates)

    async def location_groups(self, center: GeoPoint, radius_meters: float) -> List[Tuple[GroupDocument, float]]:
        """Open location groups around ``center`` with their distance in meters.

        A group is listed whenever its centre is inside the query radius; the
        group's own radius only matters when joining it.
        """
        now_ms = self._clock()
        groups = {g.group_id: g for g in await self._open_location_groups() if g.is_open(now_ms)}
        hits = self.nearby(
            center,
            radius_meters,
            ((gid, GeoPoint(g.latitude, g.longitude)) for gid, g in groups.items()),
        )
        return [(groups[gid], distance) for gid, distance in hits]

    async def invalidate(self) -> None:
        await self._cache.delete_prefix(_GROUPS_CACHE_KEY)

    async def _open_location_groups(self) -> List[GroupDocument]:
        cached = await self._cache.get(_GROUPS_CACHE_KEY)
        if cached is not None:
            return cached
        groups = await self._groups.list_open_location_groups(self._clock())
        await self._cache.set(_GROUPS_CACHE_KEY, groups, _GROUPS_CACHE_TTL_SECONDS)
        LOGGER.debug("Loaded %s location groups into proximity cache", len(groups))
        return groups


__all__ = ["ProximityIndex"]
