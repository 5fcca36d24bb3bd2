from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .quota import Tier


class AccountDocument(BaseModel):
    """Root identity. Never serialised to any client other than its owner."""

    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(alias="accountId")
    phone_number_hash: str = Field(alias="phoneNumberHash")
    verified_at: Optional[int] = Field(default=None, alias="verifiedAt")
    created_at: int = Field(alias="createdAt")
    tier: Tier = Tier.BASIC
    tier_expires_at: Optional[int] = Field(default=None, alias="tierExpiresAt")
    real_name: Optional[str] = Field(default=None, alias="realName")

    def effective_tier(self, now_ms: int) -> Tier:
        if self.tier_expires_at is not None and self.tier_expires_at <= now_ms:
            return Tier.BASIC
        return self.tier


__all__ = ["AccountDocument"]
