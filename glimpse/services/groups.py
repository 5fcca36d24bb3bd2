"""Group lifecycle: the entry points through which profiles come into existence."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..clock import HOUR_MS, Clock
from ..errors import NotFound, NotPermitted, ValidationError
from ..geo import GeoPoint, distance_between
from ..models.group import GroupCreateRequest, GroupDocument, GroupJoinRequest, GroupView
from ..models.identifiers import new_id
from ..models.profile import (
    ContextDetails,
    ContextType,
    CreatedContext,
    InstantContext,
    LocationContext,
    OfficialContext,
    ProfileDocument,
)
from ..repositories.groups import GroupRepository
from .profile_store import ProfileStore
from .proximity import ProximityIndex

LOGGER = logging.getLogger("uvicorn.error")

_DEFAULT_LOCATION_RADIUS_M = 1000.0


def group_view(group: GroupDocument, distance_meters: Optional[float] = None) -> GroupView:
    return GroupView(
        group_id=group.group_id,
        name=group.name,
        context_type=group.context_type,
        latitude=group.latitude,
        longitude=group.longitude,
        radius_meters=group.radius_meters,
        expires_at=group.expires_at,
        distance_meters=round(distance_meters, 1) if distance_meters is not None else None,
    )


class GroupService:
    def __init__(
        self,
        groups: GroupRepository,
        profile_store: ProfileStore,
        proximity: ProximityIndex,
        *,
        clock: Clock,
        instant_ttl_hours: float,
    ) -> None:
        self._groups = groups
        self._profiles = profile_store
        self._proximity = proximity
        self._clock = clock
        self._instant_ttl_hours = instant_ttl_hours

    async def create_group(self, account_id: str, request: GroupCreateRequest) -> GroupDocument:
        now_ms = self._clock()
        duration_hours = request.duration_hours
        if request.context_type is ContextType.INSTANT and duration_hours is None:
            duration_hours = self._instant_ttl_hours
        radius = request.radius_meters
        if request.context_type is ContextType.LOCATION and radius is None:
            radius = _DEFAULT_LOCATION_RADIUS_M

        group = GroupDocument(
            group_id=new_id("g"),
            name=request.name.strip(),
            context_type=request.context_type,
            latitude=request.latitude,
            longitude=request.longitude,
            radius_meters=radius,
            organization_domain=request.organization_domain,
            created_by=account_id,
            is_active=True,
            expires_at=now_ms + int(duration_hours * HOUR_MS) if duration_hours else None,
            created_at=now_ms,
        )
        await self._groups.insert(group)
        if group.context_type is ContextType.LOCATION:
            await self._proximity.invalidate()
        LOGGER.info("Group %s created (%s)", group.group_id, group.context_type.value)
        return group

    async def join_group(
        self, account_id: str, group_id: str, request: Optional[GroupJoinRequest] = None
    ) -> Tuple[GroupDocument, ProfileDocument]:
        """Enter a group's context, creating or reactivating the account's profile there."""
        request = request or GroupJoinRequest()
        group = await self._open_group(group_id)

        distance: Optional[float] = None
        if group.context_type is ContextType.LOCATION:
            if request.latitude is None or request.longitude is None:
                raise ValidationError("joining a location group requires latitude and longitude")
            distance = distance_between(
                GeoPoint(request.latitude, request.longitude),
                GeoPoint(group.latitude, group.longitude),
            )
            if distance > (group.radius_meters or _DEFAULT_LOCATION_RADIUS_M):
                raise ValidationError("outside the group's radius")

        profile = await self._profiles.get_or_create_profile(
            account_id,
            group.context_type,
            group.group_id,
            context=self._context_details(group),
            nickname=request.nickname,
            expires_at=group.expires_at if group.context_type is ContextType.INSTANT else None,
        )
        LOGGER.debug("Account joined group %s as profile %s", group_id, profile.profile_id)
        return group, profile

    async def leave_group(self, account_id: str, group_id: str) -> ProfileDocument:
        group = await self._groups.get(group_id)
        if not group:
            raise NotFound("group")
        for profile in await self._profiles.list_account_profiles(account_id):
            if profile.context_id == group_id and profile.is_active:
                await self._profiles.deactivate(profile.profile_id, reason="left_group")
                return profile
        raise NotFound("profile")

    async def nearby_groups(
        self, latitude: float, longitude: float, radius_meters: float
    ) -> List[GroupView]:
        try:
            center = GeoPoint(latitude, longitude)
        except ValueError as exc:
            raise ValidationError(str(exc)) from None
        hits = await self._proximity.location_groups(center, radius_meters)
        return [group_view(group, distance) for group, distance in hits]

    async def _open_group(self, group_id: str) -> GroupDocument:
        group = await self._groups.get(group_id)
        if not group:
            raise NotFound("group")
        if not group.is_open(self._clock()):
            raise NotPermitted("group has expired")
        return group

    @staticmethod
    def _context_details(group: GroupDocument) -> ContextDetails:
        if group.context_type is ContextType.OFFICIAL:
            return OfficialContext(group_id=group.group_id, organization_domain=group.organization_domain)
        if group.context_type is ContextType.CREATED:
            return CreatedContext(group_id=group.group_id, created_by=group.created_by)
        if group.context_type is ContextType.INSTANT:
            return InstantContext(meeting_id=group.group_id)
        return LocationContext(
            group_id=group.group_id,
            latitude=group.latitude,
            longitude=group.longitude,
            radius_meters=group.radius_meters or _DEFAULT_LOCATION_RADIUS_M,
        )


__all__ = ["GroupService", "group_view"]
