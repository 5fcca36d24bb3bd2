from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .identifiers import EntityId


class ReportReason(str, Enum):
    MISMATCH = "MISMATCH"
    FAKE_PROFILE = "FAKE_PROFILE"
    HARASSMENT = "HARASSMENT"
    SPAM = "SPAM"
    OTHER = "OTHER"


class ReportDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(alias="reportId")
    match_id: str = Field(alias="matchId")
    reporter_profile_id: str = Field(alias="reporterProfileId")
    reason: ReportReason
    details: Optional[str] = None
    status: Literal["PENDING", "REVIEWED", "DISMISSED"] = "PENDING"
    created_at: int = Field(alias="createdAt")


class ReportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    match_id: EntityId = Field(alias="matchId")
    profile_id: EntityId = Field(alias="profileId")
    reason: ReportReason = ReportReason.MISMATCH
    details: Optional[str] = Field(default=None, max_length=1000)


class ReportResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(alias="reportId")
    status: Literal["PENDING", "REVIEWED", "DISMISSED"]


__all__ = ["ReportDocument", "ReportReason", "ReportRequest", "ReportResponse"]
