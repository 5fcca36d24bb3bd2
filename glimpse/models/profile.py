from enum import Enum
from typing import Annotated, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ContextType(str, Enum):
    OFFICIAL = "OFFICIAL"
    CREATED = "CREATED"
    INSTANT = "INSTANT"
    LOCATION = "LOCATION"

    @property
    def requires_context_id(self) -> bool:
        return self is not ContextType.LOCATION


class RevealState(str, Enum):
    """Disclosure stages, ordered from most to least anonymous."""

    FULL = "FULL"
    PARTIAL = "PARTIAL"
    VERIFIED = "VERIFIED"
    REVEALED = "REVEALED"

    @property
    def rank(self) -> int:
        return _STAGE_ORDER.index(self)

    @classmethod
    def from_rank(cls, rank: int) -> "RevealState":
        return _STAGE_ORDER[max(0, min(rank, len(_STAGE_ORDER) - 1))]


_STAGE_ORDER = (RevealState.FULL, RevealState.PARTIAL, RevealState.VERIFIED, RevealState.REVEALED)

# A profile's anonymity level uses the same ladder as a match's reveal state.
AnonymityLevel = RevealState


class RevealField(str, Enum):
    NICKNAME = "nickname"
    AGE = "age"
    INTERESTS = "interests"
    PHOTO = "photo"
    REAL_NAME = "realName"


FieldSet = FrozenSet[RevealField]

ALL_FIELDS: FieldSet = frozenset(RevealField)


class RevealConditions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    after_match: bool = Field(default=True, alias="afterMatch")
    after_chat_turns: int = Field(default=10, ge=0, alias="afterChatTurns")
    mutual_consent: bool = Field(default=False, alias="mutualConsent")
    time_delay_seconds: int = Field(default=24 * 60 * 60, ge=0, alias="timeDelaySeconds")


class AnonymitySettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level: AnonymityLevel = AnonymityLevel.PARTIAL
    revealable_fields: List[RevealField] = Field(
        default_factory=lambda: list(RevealField), alias="revealableFields"
    )
    reveal_conditions: RevealConditions = Field(default_factory=RevealConditions, alias="revealConditions")

    @property
    def field_set(self) -> FieldSet:
        return frozenset(self.revealable_fields)


class OfficialContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    context_type: Literal["OFFICIAL"] = Field(default="OFFICIAL", alias="contextType")
    group_id: str = Field(alias="groupId")
    organization_domain: Optional[str] = Field(default=None, alias="organizationDomain")


class CreatedContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    context_type: Literal["CREATED"] = Field(default="CREATED", alias="contextType")
    group_id: str = Field(alias="groupId")
    created_by: Optional[str] = Field(default=None, alias="createdBy")


class InstantContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    context_type: Literal["INSTANT"] = Field(default="INSTANT", alias="contextType")
    meeting_id: str = Field(alias="meetingId")
    feature_hint: Optional[str] = Field(default=None, max_length=120, alias="featureHint")


class LocationContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    context_type: Literal["LOCATION"] = Field(default="LOCATION", alias="contextType")
    group_id: Optional[str] = Field(default=None, alias="groupId")
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius_meters: float = Field(default=1000, gt=0, alias="radiusMeters")


ContextDetails = Annotated[
    Union[OfficialContext, CreatedContext, InstantContext, LocationContext],
    Field(discriminator="context_type"),
]


class ProfileDocument(BaseModel):
    """Canonical per-context profile document stored in MongoDB."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    profile_id: str = Field(alias="profileId")
    account_id: str = Field(alias="accountId")
    context_type: ContextType = Field(alias="contextType")
    context_id: Optional[str] = Field(default=None, alias="contextId")
    context_key: str = Field(alias="contextKey")
    context: Optional[ContextDetails] = None
    nickname: str
    bio: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    age: Optional[int] = None
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")
    anonymity_settings: AnonymitySettings = Field(default_factory=AnonymitySettings, alias="anonymitySettings")
    is_active: bool = Field(default=True, alias="isActive")
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")
    deactivated_at: Optional[int] = Field(default=None, alias="deactivatedAt")
    purge_after: Optional[int] = Field(default=None, alias="purgeAfter")
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now_ms


class PublicProfile(BaseModel):
    """The only profile shape that may leave the service boundary."""

    model_config = ConfigDict(populate_by_name=True)

    profile_id: str = Field(alias="profileId")
    context_type: ContextType = Field(alias="contextType")
    nickname: Optional[str] = None
    age: Optional[int] = None
    interests: Optional[List[str]] = None
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")
    real_name: Optional[str] = Field(default=None, alias="realName")


class OwnProfile(BaseModel):
    """Profile view returned to its owner, still without account fields."""

    model_config = ConfigDict(populate_by_name=True)

    profile_id: str = Field(alias="profileId")
    context_type: ContextType = Field(alias="contextType")
    context_id: Optional[str] = Field(default=None, alias="contextId")
    nickname: str
    bio: Optional[str] = None
    interests: List[str] = Field(default_factory=list)
    age: Optional[int] = None
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")
    anonymity_settings: AnonymitySettings = Field(alias="anonymitySettings")
    is_active: bool = Field(alias="isActive")
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")


class ProfilePatch(BaseModel):
    """Mutable fields for partial profile updates."""

    model_config = ConfigDict(populate_by_name=True)

    nickname: Optional[str] = Field(default=None, min_length=1, max_length=32)
    bio: Optional[str] = Field(default=None, max_length=600)
    interests: Optional[List[str]] = None
    age: Optional[int] = Field(default=None, ge=18, le=120)
    photo_url: Optional[str] = Field(default=None, alias="photoUrl", max_length=512)
    anonymity_settings: Optional[AnonymitySettings] = Field(default=None, alias="anonymitySettings")


__all__ = [
    "ALL_FIELDS",
    "AnonymityLevel",
    "AnonymitySettings",
    "ContextDetails",
    "ContextType",
    "CreatedContext",
    "FieldSet",
    "InstantContext",
    "LocationContext",
    "OfficialContext",
    "OwnProfile",
    "ProfileDocument",
    "ProfilePatch",
    "PublicProfile",
    "RevealConditions",
    "RevealField",
    "RevealState",
]
