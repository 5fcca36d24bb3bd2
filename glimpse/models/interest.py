from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class InterestType(str, Enum):
    PHONE = "PHONE"
    EMAIL = "EMAIL"
    SOCIAL_ID = "SOCIAL_ID"
    NAME = "NAME"
    COMPANY = "COMPANY"
    SCHOOL = "SCHOOL"
    PART_TIME_JOB = "PART_TIME_JOB"
    PLATFORM = "PLATFORM"
    GAME_ID = "GAME_ID"
    GROUP = "GROUP"
    LOCATION = "LOCATION"


class RegistrationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"
    EXPIRED = "EXPIRED"


class InterestRegistrationDocument(BaseModel):
    """Stores only a salted hash plus a masked display value, never the raw input."""

    model_config = ConfigDict(populate_by_name=True)

    registration_id: str = Field(alias="registrationId")
    account_id: str = Field(alias="accountId")
    type: InterestType
    value_hash: str = Field(alias="valueHash")
    display_value: str = Field(alias="displayValue")
    status: RegistrationStatus = RegistrationStatus.ACTIVE
    created_at: int = Field(alias="createdAt")
    expires_at: int = Field(alias="expiresAt")
    closed_at: Optional[int] = Field(default=None, alias="closedAt")
    # Set while ACTIVE, unset on close; unique per account, type and value
    active_value_key: Optional[str] = Field(default=None, alias="activeValueKey")


class InterestRegisterRequest(BaseModel):
    type: InterestType
    value: str = Field(min_length=1, max_length=200)


class InterestRegistrationView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    registration_id: str = Field(alias="registrationId")
    type: InterestType
    display_value: str = Field(alias="displayValue")
    status: RegistrationStatus
    created_at: int = Field(alias="createdAt")
    expires_at: int = Field(alias="expiresAt")


class InterestListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    registrations: List[InterestRegistrationView] = Field(default_factory=list)
    used: int
    limit: Optional[int] = None


class InterestDeleteResponse(BaseModel):
    status: Literal["ok"] = "ok"
    removed: bool


__all__ = [
    "InterestDeleteResponse",
    "InterestListResponse",
    "InterestRegisterRequest",
    "InterestRegistrationDocument",
    "InterestRegistrationView",
    "InterestType",
    "RegistrationStatus",
]
