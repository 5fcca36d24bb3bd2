from typing import List

from fastapi import APIRouter, Depends

from ..container import ServiceContainer
from ..dependencies import get_container, require_account
from ..models.profile import OwnProfile, ProfilePatch
from ..services.profile_store import ProfileStore

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("", response_model=List[OwnProfile])
async def list_my_profiles(
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> List[OwnProfile]:
    profiles = await container.profiles.list_account_profiles(account_id)
    return [ProfileStore.owner_view(p) for p in profiles]


@router.get("/{profile_id}", response_model=OwnProfile)
async def get_my_profile(
    profile_id: str,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> OwnProfile:
    profile = await container.profiles.get_owned_profile(account_id, profile_id.strip())
    return ProfileStore.owner_view(profile)


@router.patch("/{profile_id}", response_model=OwnProfile)
async def update_my_profile(
    profile_id: str,
    payload: ProfilePatch,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> OwnProfile:
    profile = await container.profiles.update_profile(account_id, profile_id.strip(), payload)
    return ProfileStore.owner_view(profile)


__all__ = ["router"]
