"""Tier-parameterised quota gate for likes, super-likes and interest registrations."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..clock import DAY_MS, Clock
from ..errors import NotFound
from ..models.account import AccountDocument
from ..models.interest import RegistrationStatus
from ..models.profile import ContextType
from ..models.quota import (
    Allowed,
    DailyReset,
    Denied,
    DenialReason,
    QuotaAction,
    QuotaCounter,
    QuotaDecision,
    QuotaUsageResponse,
    Tier,
    TierLimits,
)
from ..repositories.accounts import AccountRepository
from ..repositories.interests import InterestRegistrationRepository
from ..repositories.quota import QuotaUsageRepository

LOGGER = logging.getLogger("uvicorn.error")

ACCOUNT_SCOPE = "ACCOUNT"
CONCURRENT_WINDOW = "concurrent"


class QuotaPolicy:
    """Decides whether an account may perform a metered action.

    Registration caps count concurrently active registrations and only free
    up when one is deleted or expires. Like and super-like caps are daily and
    scoped per context type; the day boundary is local midnight in the
    configured timezone, or a rolling 24h window anchored at account creation
    for tiers configured that way.
    """

    def __init__(
        self,
        usage: QuotaUsageRepository,
        accounts: AccountRepository,
        registrations: InterestRegistrationRepository,
        *,
        limits_for: Callable[[Tier], TierLimits],
        timezone: str,
        clock: Clock,
    ) -> None:
        self._usage = usage
        self._accounts = accounts
        self._registrations = registrations
        self._limits_for = limits_for
        self._tz = ZoneInfo(timezone)
        self._clock = clock

    async def account_tier(self, account_id: str) -> Tuple[AccountDocument, Tier]:
        account = await self._accounts.get_by_account_id(account_id)
        if not account:
            raise NotFound("account")
        return account, account.effective_tier(self._clock())

    async def limits(self, account_id: str) -> TierLimits:
        _, tier = await self.account_tier(account_id)
        return self._limits_for(tier)

    async def can_perform(
        self,
        account_id: str,
        action: QuotaAction,
        context_type: Optional[ContextType] = None,
    ) -> QuotaDecision:
        """Read-only check. Use ``consume`` to actually spend a unit."""
        account, tier = await self.account_tier(account_id)
        limits = self._limits_for(tier)
        now_ms = self._clock()
        if action is QuotaAction.REGISTER_INTEREST:
            await self.expire_lapsed_registrations(account_id)

        cap = self._cap(limits, action)
        if cap == 0:
            return Denied(reason=DenialReason.TIER_REQUIRED, limit=0)
        scope, window_key = self._window(account, limits, action, context_type, now_ms)
        used = await self._usage.get_count(account_id=account_id, scope=scope, action=action, window_key=window_key)
        if cap is not None and used >= cap:
            return Denied(reason=DenialReason.LIMIT_EXCEEDED, limit=cap)
        return Allowed(remaining=None if cap is None else cap - used)

    async def consume(
        self,
        account_id: str,
        action: QuotaAction,
        context_type: Optional[ContextType] = None,
    ) -> QuotaDecision:
        """Atomically spend one unit, or deny without side effects."""
        account, tier = await self.account_tier(account_id)
        limits = self._limits_for(tier)
        now_ms = self._clock()
        if action is QuotaAction.REGISTER_INTEREST:
            await self.expire_lapsed_registrations(account_id)

        cap = self._cap(limits, action)
        if cap == 0:
            LOGGER.debug("Quota denied account=%s action=%s tier=%s: tier required", account_id, action.value, tier.value)
            return Denied(reason=DenialReason.TIER_REQUIRED, limit=0)
        scope, window_key = self._window(account, limits, action, context_type, now_ms)
        count = await self._usage.increment_if_below(
            account_id=account_id,
            scope=scope,
            action=action,
            window_key=window_key,
            cap=cap,
            now_ms=now_ms,
        )
        if count is None:
            LOGGER.debug("Quota denied account=%s action=%s cap=%s", account_id, action.value, cap)
            return Denied(reason=DenialReason.LIMIT_EXCEEDED, limit=cap)
        return Allowed(remaining=None if cap is None else cap - count, window_key=window_key)

    async def release(
        self,
        account_id: str,
        action: QuotaAction,
        context_type: Optional[ContextType] = None,
        *,
        window_key: Optional[str] = None,
    ) -> None:
        """Give back a unit whose protected action never persisted, or a freed registration slot.

        ``window_key`` should come from the ``Allowed`` decision that charged
        the unit; without it the current window is assumed.
        """
        now_ms = self._clock()
        if window_key is None:
            account, tier = await self.account_tier(account_id)
            scope, window_key = self._window(account, self._limits_for(tier), action, context_type, now_ms)
        else:
            scope = self._scope(action, context_type)
        await self._usage.decrement(
            account_id=account_id, scope=scope, action=action, window_key=window_key, now_ms=now_ms
        )

    async def expire_lapsed_registrations(self, account_id: Optional[str] = None) -> int:
        """Expire registrations past ``expiresAt`` and free their concurrent slots."""
        now_ms = self._clock()
        freed = 0
        for registration in await self._registrations.find_lapsed(now_ms, account_id):
            closed = await self._registrations.close(
                registration.registration_id, RegistrationStatus.EXPIRED, now_ms
            )
            if closed is None:
                continue
            await self._usage.decrement(
                account_id=registration.account_id,
                scope=ACCOUNT_SCOPE,
                action=QuotaAction.REGISTER_INTEREST,
                window_key=CONCURRENT_WINDOW,
                now_ms=now_ms,
            )
            freed += 1
        return freed

    async def usage(self, account_id: str) -> QuotaUsageResponse:
        account, tier = await self.account_tier(account_id)
        limits = self._limits_for(tier)
        now_ms = self._clock()
        await self.expire_lapsed_registrations(account_id)

        daily_key = self._daily_window_key(account, limits, now_ms)
        rows = await self._usage.list_windows(account_id, [daily_key, CONCURRENT_WINDOW])
        counters: List[QuotaCounter] = []
        seen_registration = False
        for row in rows:
            action = QuotaAction(row["action"])
            seen_registration = seen_registration or action is QuotaAction.REGISTER_INTEREST
            counters.append(
                QuotaCounter(
                    action=action,
                    scope=row["scope"],
                    used=int(row.get("count", 0)),
                    limit=self._cap(limits, action),
                )
            )
        if not seen_registration:
            counters.append(
                QuotaCounter(
                    action=QuotaAction.REGISTER_INTEREST,
                    scope=ACCOUNT_SCOPE,
                    used=0,
                    limit=limits.max_registrations,
                )
            )
        counters.sort(key=lambda c: (c.action.value, c.scope))
        return QuotaUsageResponse(tier=tier, counters=counters)

    @staticmethod
    def _cap(limits: TierLimits, action: QuotaAction) -> Optional[int]:
        if action is QuotaAction.REGISTER_INTEREST:
            return limits.max_registrations
        if action is QuotaAction.SEND_SUPER_LIKE:
            return limits.super_likes_per_day
        return limits.likes_per_day

    def _window(
        self,
        account: AccountDocument,
        limits: TierLimits,
        action: QuotaAction,
        context_type: Optional[ContextType],
        now_ms: int,
    ) -> Tuple[str, str]:
        if action is QuotaAction.REGISTER_INTEREST:
            return ACCOUNT_SCOPE, CONCURRENT_WINDOW
        return self._scope(action, context_type), self._daily_window_key(account, limits, now_ms)

    @staticmethod
    def _scope(action: QuotaAction, context_type: Optional[ContextType]) -> str:
        if action is QuotaAction.REGISTER_INTEREST or context_type is None:
            return ACCOUNT_SCOPE
        return context_type.value

    def _daily_window_key(self, account: AccountDocument, limits: TierLimits, now_ms: int) -> str:
        if limits.daily_reset is DailyReset.ROLLING:
            return f"r:{max(0, now_ms - account.created_at) // DAY_MS}"
        local_day = datetime.fromtimestamp(now_ms / 1000, tz=self._tz).date()
        return f"d:{local_day.isoformat()}"


__all__ = ["ACCOUNT_SCOPE", "CONCURRENT_WINDOW", "QuotaPolicy"]
