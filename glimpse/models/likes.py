from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .identifiers import EntityId
from .profile import PublicProfile


class LikeState(str, Enum):
    LIKED = "LIKED"
    MATCHED = "MATCHED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class LikeDocument(BaseModel):
    """Directional like edge. Carries profile ids only, never account ids."""

    model_config = ConfigDict(populate_by_name=True)

    like_id: str = Field(alias="likeId")
    from_profile_id: str = Field(alias="fromProfileId")
    to_profile_id: str = Field(alias="toProfileId")
    context_id: str = Field(alias="contextId")
    is_super: bool = Field(default=False, alias="isSuper")
    state: LikeState = LikeState.LIKED
    active_key: Optional[str] = Field(default=None, alias="activeKey")
    created_at: int = Field(alias="createdAt")
    expires_at: int = Field(alias="expiresAt")
    cancelled_at: Optional[int] = Field(default=None, alias="cancelledAt")
    matched_at: Optional[int] = Field(default=None, alias="matchedAt")
    match_id: Optional[str] = Field(default=None, alias="matchId")

    def is_active(self, now_ms: int) -> bool:
        if self.state is LikeState.MATCHED:
            return True
        return self.state is LikeState.LIKED and self.expires_at > now_ms


class LikeOutcome(str, Enum):
    PENDING = "PENDING"
    MATCHED = "MATCHED"


class LikeResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    outcome: LikeOutcome
    like_id: str = Field(alias="likeId")
    match_id: Optional[str] = Field(default=None, alias="matchId")
    matched_at: Optional[int] = Field(default=None, alias="matchedAt")

    @property
    def matched(self) -> bool:
        return self.outcome is LikeOutcome.MATCHED


class LikeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_profile_id: EntityId = Field(alias="fromProfileId")
    to_profile_id: EntityId = Field(alias="toProfileId")
    context_id: EntityId = Field(alias="contextId")
    is_super: bool = Field(default=False, alias="isSuper")


class MatchSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    match_id: str = Field(alias="matchId")
    matched_at: int = Field(alias="matchedAt")


class LikeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Literal["PENDING", "MATCHED"]
    like_id: str = Field(alias="likeId")
    match: Optional[MatchSummary] = None


class ReceivedLike(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    like_id: str = Field(alias="likeId")
    context_id: str = Field(alias="contextId")
    to_profile_id: str = Field(alias="toProfileId")
    is_super: bool = Field(alias="isSuper")
    liked_at: int = Field(alias="likedAt")
    from_profile: PublicProfile = Field(alias="fromProfile")


class SentLike(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    like_id: str = Field(alias="likeId")
    context_id: str = Field(alias="contextId")
    from_profile_id: str = Field(alias="fromProfileId")
    is_super: bool = Field(alias="isSuper")
    state: LikeState
    liked_at: int = Field(alias="likedAt")
    to_profile: PublicProfile = Field(alias="toProfile")


class LikesReceivedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    liked_me: List[ReceivedLike] = Field(default_factory=list, alias="likedMe")
    masked: bool = False


class LikesSentResponse(BaseModel):
    likes: List[SentLike] = Field(default_factory=list)


class LikeCancelResponse(BaseModel):
    status: Literal["ok"] = "ok"
    state: LikeState


__all__ = [
    "LikeCancelResponse",
    "LikeDocument",
    "LikeOutcome",
    "LikeRequest",
    "LikeResponse",
    "LikeResult",
    "LikeState",
    "LikesReceivedResponse",
    "LikesSentResponse",
    "MatchSummary",
    "ReceivedLike",
    "SentLike",
]
