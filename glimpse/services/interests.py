"""Interest registrations: hashed "I am looking for this person" entries, metered by tier."""

from __future__ import annotations

import hashlib
import logging
import re

from ..clock import DAY_MS, HOUR_MS, Clock
from ..errors import CooldownActive, NotFound, NotPermitted, QuotaDenied, ValidationError
from ..models.identifiers import new_id
from ..models.interest import (
    InterestDeleteResponse,
    InterestListResponse,
    InterestRegistrationDocument,
    InterestRegistrationView,
    InterestType,
    RegistrationStatus,
)
from ..models.quota import Denied, QuotaAction
from ..repositories.exceptions import DuplicateKeyRepositoryError
from ..repositories.interests import InterestRegistrationRepository
from .quota_policy import QuotaPolicy

LOGGER = logging.getLogger("uvicorn.error")

_WHITESPACE = re.compile(r"\s+")


def normalize_value(type_: InterestType, value: str) -> str:
    text = (value or "").strip()
    if type_ is InterestType.PHONE:
        return re.sub(r"\D", "", text)
    if type_ is InterestType.EMAIL:
        return text.lower()
    return _WHITESPACE.sub(" ", text).lower()


def hash_value(type_: InterestType, normalized: str, pepper: str = "") -> str:
    digest = hashlib.sha256(f"{pepper}:{type_.value}:{normalized}".encode("utf-8"))
    return digest.hexdigest()


def mask_value(type_: InterestType, normalized: str) -> str:
    """Display form kept next to the hash; never enough to recover the input."""
    if type_ is InterestType.PHONE:
        return f"***-****-{normalized[-4:]}" if len(normalized) >= 4 else "***"
    if type_ is InterestType.EMAIL and "@" in normalized:
        local, _, domain = normalized.partition("@")
        return f"{local[:1]}***@{domain}"
    if len(normalized) <= 1:
        return "*"
    return normalized[0] + "*" * min(len(normalized) - 1, 8)


def registration_view(registration: InterestRegistrationDocument) -> InterestRegistrationView:
    return InterestRegistrationView(
        registration_id=registration.registration_id,
        type=registration.type,
        display_value=registration.display_value,
        status=registration.status,
        created_at=registration.created_at,
        expires_at=registration.expires_at,
    )


class InterestService:
    def __init__(
        self,
        registrations: InterestRegistrationRepository,
        quota: QuotaPolicy,
        *,
        clock: Clock,
        ttl_days: float,
        cooldown_hours: float,
        pepper: str = "",
    ) -> None:
        self._registrations = registrations
        self._quota = quota
        self._clock = clock
        self._ttl_ms = int(ttl_days * DAY_MS)
        self._cooldown_ms = int(cooldown_hours * HOUR_MS)
        self._pepper = pepper

    async def register(self, account_id: str, type_: InterestType, value: str) -> InterestRegistrationDocument:
        normalized = normalize_value(type_, value)
        if not normalized:
            raise ValidationError("value is empty after normalisation")
        value_hash = hash_value(type_, normalized, self._pepper)
        now_ms = self._clock()

        if await self._registrations.find_active_same_value(account_id, type_, value_hash, now_ms):
            raise NotPermitted("this value is already registered")
        previous = await self._registrations.latest_closed_same_value(account_id, type_, value_hash)
        if previous and previous.closed_at is not None and now_ms - previous.closed_at < self._cooldown_ms:
            raise CooldownActive(
                retry_after_ms=previous.closed_at + self._cooldown_ms - now_ms,
                message="this value was removed too recently",
            )

        decision = await self._quota.consume(account_id, QuotaAction.REGISTER_INTEREST)
        if isinstance(decision, Denied):
            raise QuotaDenied(decision.reason, "registration limit reached", limit=decision.limit)

        registration = InterestRegistrationDocument(
            registration_id=new_id("i"),
            account_id=account_id,
            type=type_,
            value_hash=value_hash,
            display_value=mask_value(type_, normalized),
            status=RegistrationStatus.ACTIVE,
            created_at=now_ms,
            expires_at=now_ms + self._ttl_ms,
            active_value_key=f"{account_id}|{type_.value}|{value_hash}",
        )
        try:
            await self._registrations.insert(registration)
        except DuplicateKeyRepositoryError:
            await self._quota.release(account_id, QuotaAction.REGISTER_INTEREST)
            LOGGER.debug("Concurrent duplicate interest registration for account %s", account_id)
            raise NotPermitted("this value is already registered") from None
        LOGGER.info("Interest registration %s created (%s)", registration.registration_id, type_.value)
        return registration

    async def delete(self, account_id: str, registration_id: str) -> InterestDeleteResponse:
        registration = await self._registrations.get_owned(account_id, registration_id)
        if not registration:
            raise NotFound("registration")
        closed = await self._registrations.close(registration_id, RegistrationStatus.DELETED, self._clock())
        if closed is None:
            return InterestDeleteResponse(removed=False)
        await self._quota.release(account_id, QuotaAction.REGISTER_INTEREST)
        return InterestDeleteResponse(removed=True)

    async def list_active(self, account_id: str) -> InterestListResponse:
        await self._quota.expire_lapsed_registrations(account_id)
        active = await self._registrations.list_active(account_id)
        limits = await self._quota.limits(account_id)
        return InterestListResponse(
            registrations=[registration_view(r) for r in active],
            used=len(active),
            limit=limits.max_registrations,
        )


__all__ = ["InterestService", "hash_value", "mask_value", "normalize_value", "registration_view"]
