from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .profile import ContextType, OwnProfile


class GroupDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    group_id: str = Field(alias="groupId")
    name: str
    context_type: ContextType = Field(alias="contextType")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_meters: Optional[float] = Field(default=None, alias="radiusMeters")
    organization_domain: Optional[str] = Field(default=None, alias="organizationDomain")
    created_by: Optional[str] = Field(default=None, alias="createdBy")
    is_active: bool = Field(default=True, alias="isActive")
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")
    created_at: int = Field(alias="createdAt")

    def is_open(self, now_ms: int) -> bool:
        if not self.is_active:
            return False
        return self.expires_at is None or self.expires_at > now_ms


class GroupCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=80)
    context_type: ContextType = Field(alias="contextType")
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    radius_meters: Optional[float] = Field(default=None, gt=0, le=50_000, alias="radiusMeters")
    duration_hours: Optional[float] = Field(default=None, gt=0, le=24 * 30, alias="durationHours")
    organization_domain: Optional[str] = Field(default=None, alias="organizationDomain")

    @model_validator(mode="after")
    def _location_groups_need_coordinates(self) -> "GroupCreateRequest":
        if self.context_type is ContextType.LOCATION and (self.latitude is None or self.longitude is None):
            raise ValueError("location groups require latitude and longitude")
        return self


class GroupJoinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    nickname: Optional[str] = Field(default=None, min_length=1, max_length=32)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class GroupView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    group_id: str = Field(alias="groupId")
    name: str
    context_type: ContextType = Field(alias="contextType")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_meters: Optional[float] = Field(default=None, alias="radiusMeters")
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")
    distance_meters: Optional[float] = Field(default=None, alias="distanceMeters")


class GroupJoinResponse(BaseModel):
    group: GroupView
    profile: OwnProfile


class NearbyGroupsResponse(BaseModel):
    groups: List[GroupView] = Field(default_factory=list)


__all__ = [
    "GroupCreateRequest",
    "GroupDocument",
    "GroupJoinRequest",
    "GroupJoinResponse",
    "GroupView",
    "NearbyGroupsResponse",
]
