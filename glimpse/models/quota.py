from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Tier(str, Enum):
    BASIC = "BASIC"
    ADVANCED = "ADVANCED"
    PREMIUM = "PREMIUM"


class QuotaAction(str, Enum):
    REGISTER_INTEREST = "REGISTER_INTEREST"
    SEND_LIKE = "SEND_LIKE"
    SEND_SUPER_LIKE = "SEND_SUPER_LIKE"


class DenialReason(str, Enum):
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    TIER_REQUIRED = "TIER_REQUIRED"
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"


class DailyReset(str, Enum):
    CALENDAR = "calendar"
    ROLLING = "rolling"


class TierLimits(BaseModel):
    """Numeric limits for one subscription tier. ``None`` means uncapped."""

    model_config = ConfigDict(frozen=True)

    max_registrations: Optional[int] = 5
    super_likes_per_day: Optional[int] = 0
    likes_per_day: Optional[int] = None
    daily_reset: DailyReset = DailyReset.CALENDAR
    sees_received_likes: bool = False


class Allowed(BaseModel):
    allowed: Literal[True] = True
    remaining: Optional[int] = None
    # Counter window a consumed unit was charged to
    window_key: Optional[str] = None


class Denied(BaseModel):
    allowed: Literal[False] = False
    reason: DenialReason
    limit: Optional[int] = None


QuotaDecision = Union[Allowed, Denied]


class QuotaCounter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: QuotaAction
    scope: str
    used: int
    limit: Optional[int] = None


class QuotaUsageResponse(BaseModel):
    tier: Tier
    counters: List[QuotaCounter] = Field(default_factory=list)


__all__ = [
    "Allowed",
    "DailyReset",
    "Denied",
    "DenialReason",
    "QuotaAction",
    "QuotaCounter",
    "QuotaDecision",
    "QuotaUsageResponse",
    "Tier",
    "TierLimits",
]
