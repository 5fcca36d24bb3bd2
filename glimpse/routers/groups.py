from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..container import ServiceContainer
from ..dependencies import get_container, require_account
from ..models.group import (
    GroupCreateRequest,
    GroupJoinRequest,
    GroupJoinResponse,
    GroupView,
    NearbyGroupsResponse,
)
from ..models.profile import OwnProfile
from ..services.groups import group_view
from ..services.profile_store import ProfileStore

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("", response_model=GroupView, status_code=status.HTTP_201_CREATED)
async def create_group(
    payload: GroupCreateRequest,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> GroupView:
    group = await container.groups.create_group(account_id, payload)
    return group_view(group)


@router.get("/location", response_model=NearbyGroupsResponse)
async def list_location_groups(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: float = Query(1000, gt=0, le=50_000, description="Search radius in meters"),
    container: ServiceContainer = Depends(get_container),
) -> NearbyGroupsResponse:
    groups = await container.groups.nearby_groups(latitude, longitude, radius)
    return NearbyGroupsResponse(groups=groups)


@router.post("/{group_id}/join", response_model=GroupJoinResponse)
async def join_group(
    group_id: str,
    payload: Optional[GroupJoinRequest] = None,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> GroupJoinResponse:
    group, profile = await container.groups.join_group(account_id, group_id.strip(), payload)
    return GroupJoinResponse(group=group_view(group), profile=ProfileStore.owner_view(profile))


@router.post("/{group_id}/leave", response_model=OwnProfile)
async def leave_group(
    group_id: str,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> OwnProfile:
    profile = await container.groups.leave_group(account_id, group_id.strip())
    return ProfileStore.owner_view(profile.model_copy(update={"is_active": False}))


__all__ = ["router"]
