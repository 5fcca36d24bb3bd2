from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .profile import PublicProfile, RevealField, RevealState


class MatchStatus(str, Enum):
    ACTIVE = "ACTIVE"
    REPORTED = "REPORTED"
    UNMATCHED = "UNMATCHED"


class MatchDocument(BaseModel):
    """Undirected pairing; ``profile_id_a`` is always the lower of the two ids."""

    model_config = ConfigDict(populate_by_name=True)

    match_id: str = Field(alias="matchId")
    profile_id_a: str = Field(alias="profileIdA")
    profile_id_b: str = Field(alias="profileIdB")
    context_id: str = Field(alias="contextId")
    matched_at: int = Field(alias="matchedAt")
    status: MatchStatus = MatchStatus.ACTIVE
    active_pair_key: Optional[str] = Field(default=None, alias="activePairKey")
    reveal_rank: int = Field(default=0, alias="revealRank")
    chat_turns: int = Field(default=0, alias="chatTurns")
    consents: List[str] = Field(default_factory=list)
    closed_at: Optional[int] = Field(default=None, alias="closedAt")

    @property
    def reveal_state(self) -> RevealState:
        return RevealState.from_rank(self.reveal_rank)

    @property
    def participants(self) -> tuple[str, str]:
        return (self.profile_id_a, self.profile_id_b)

    def counterpart_of(self, profile_id: str) -> Optional[str]:
        if profile_id == self.profile_id_a:
            return self.profile_id_b
        if profile_id == self.profile_id_b:
            return self.profile_id_a
        return None


class MatchView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    match_id: str = Field(alias="matchId")
    context_id: str = Field(alias="contextId")
    my_profile_id: str = Field(alias="myProfileId")
    matched_at: int = Field(alias="matchedAt")
    reveal_state: RevealState = Field(alias="revealState")
    counterpart: PublicProfile


class MatchesResponse(BaseModel):
    matches: List[MatchView] = Field(default_factory=list)


class RevealResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    match_id: str = Field(alias="matchId")
    reveal_state: RevealState = Field(alias="revealState")
    visible_fields: List[RevealField] = Field(alias="visibleFields")
    counterpart: PublicProfile


class UnmatchResponse(BaseModel):
    status: Literal["ok"] = "ok"


__all__ = [
    "MatchDocument",
    "MatchStatus",
    "MatchView",
    "MatchesResponse",
    "RevealResponse",
    "UnmatchResponse",
]
