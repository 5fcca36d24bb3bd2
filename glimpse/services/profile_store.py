"""Partitioned per-context profiles and the single sanitisation choke point."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..clock import DAY_MS, HOUR_MS, Clock
from ..errors import InvalidContext, IsolationViolation, NotFound
from ..models.identifiers import new_id
from ..models.profile import (
    AnonymityLevel,
    AnonymitySettings,
    ContextDetails,
    ContextType,
    FieldSet,
    OwnProfile,
    ProfileDocument,
    ProfilePatch,
    PublicProfile,
    RevealConditions,
    RevealField,
)
from ..repositories.exceptions import NotFoundRepositoryError
from ..repositories.profiles import ProfileActivityRepository, ProfileRepository

LOGGER = logging.getLogger("uvicorn.error")

_DEFAULT_LEVEL = {
    ContextType.INSTANT: AnonymityLevel.FULL,
    ContextType.OFFICIAL: AnonymityLevel.VERIFIED,
    ContextType.CREATED: AnonymityLevel.PARTIAL,
    ContextType.LOCATION: AnonymityLevel.PARTIAL,
}

_NO_CONTEXT_KEY = "-"


def _clean_str(value: Any, max_len: Optional[int] = None) -> Optional[str]:
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if max_len is not None and len(text) > max_len:
            text = text[:max_len]
        return text
    return None


def _clean_interests(raw: Iterable[Any], limit: int = 20) -> List[str]:
    interests: List[str] = []
    for entry in raw or []:
        cleaned = _clean_str(entry, max_len=40)
        if not cleaned or cleaned in interests:
            continue
        interests.append(cleaned)
        if len(interests) >= limit:
            break
    return interests


def default_anonymity(context_type: ContextType) -> AnonymitySettings:
    return AnonymitySettings(
        level=_DEFAULT_LEVEL[context_type],
        revealable_fields=list(RevealField),
        reveal_conditions=RevealConditions(),
    )


def context_key_for(context_type: ContextType, context_id: Optional[str]) -> str:
    if context_type.requires_context_id and not context_id:
        raise InvalidContext(f"{context_type.value} profiles require a context id")
    return context_id or _NO_CONTEXT_KEY


class ProfileStore:
    """Owns the per-context profiles of every account.

    Lookups are always scoped (by owner or by context) so an id that belongs
    to a sibling profile answers exactly like an id that does not exist.
    """

    def __init__(
        self,
        profiles: ProfileRepository,
        activity: ProfileActivityRepository,
        *,
        clock: Clock,
        instant_ttl_hours: float,
        retention_days: float,
    ) -> None:
        self._profiles = profiles
        self._activity = activity
        self._clock = clock
        self._instant_ttl_ms = int(instant_ttl_hours * HOUR_MS)
        self._retention_ms = int(retention_days * DAY_MS)

    async def get_or_create_profile(
        self,
        account_id: str,
        context_type: ContextType,
        context_id: Optional[str],
        *,
        context: Optional[ContextDetails] = None,
        nickname: Optional[str] = None,
        expires_at: Optional[int] = None,
    ) -> ProfileDocument:
        """Idempotently resolve the account's profile for one context."""
        context_key = context_key_for(context_type, context_id)
        if context is not None and context.context_type != context_type.value:
            raise InvalidContext("context details do not match the context type")

        now_ms = self._clock()
        existing = await self._profiles.get_for_context(account_id, context_type, context_key)
        if existing and existing.is_expired(now_ms):
            await self._purge(existing, reason="expired")
            existing = None
        if existing:
            if not existing.is_active:
                return await self._reactivate(existing, now_ms)
            return existing

        if context_type is ContextType.INSTANT and expires_at is None:
            expires_at = now_ms + self._instant_ttl_ms
        elif context_type is not ContextType.INSTANT:
            expires_at = None

        profile = ProfileDocument(
            profile_id=new_id("p"),
            account_id=account_id,
            context_type=context_type,
            context_id=context_id,
            context_key=context_key,
            context=context,
            nickname=_clean_str(nickname, max_len=32) or self._generated_nickname(context_type),
            anonymity_settings=default_anonymity(context_type),
            is_active=True,
            expires_at=expires_at,
            created_at=now_ms,
            updated_at=now_ms,
        )
        stored = await self._profiles.upsert_for_context(
            account_id=account_id,
            context_type=context_type,
            context_key=context_key,
            on_insert=profile.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
        if stored.profile_id == profile.profile_id:
            await self._activity.record(stored.profile_id, "created", now_ms, contextId=context_id)
        return stored

    async def get_profile(self, profile_id: str, *, context_id: Optional[str]) -> ProfileDocument:
        """Resolve an active profile inside one context.

        A profile living in another context, an expired INSTANT profile and a
        missing id all raise the same ``NotFound``.
        """
        profile = await self._load_live(profile_id)
        if not profile or not profile.is_active or profile.context_id != context_id:
            raise NotFound("profile")
        return profile

    async def get_owned_profile(self, account_id: str, profile_id: str) -> ProfileDocument:
        profile = await self._profiles.get_owned(account_id, profile_id)
        if profile and profile.is_expired(self._clock()):
            await self._purge(profile, reason="expired")
            profile = None
        if not profile:
            raise NotFound("profile")
        return profile

    async def list_account_profiles(self, account_id: str) -> List[ProfileDocument]:
        now_ms = self._clock()
        live: List[ProfileDocument] = []
        for profile in await self._profiles.list_for_account(account_id):
            if profile.is_expired(now_ms):
                await self._purge(profile, reason="expired")
                continue
            live.append(profile)
        return live

    async def load_many(self, profile_ids: Iterable[str]) -> Dict[str, ProfileDocument]:
        """Batch lookup used to render counterparts; expired INSTANT profiles are dropped."""
        now_ms = self._clock()
        found = await self._profiles.get_many(list(profile_ids))
        return {pid: p for pid, p in found.items() if not p.is_expired(now_ms)}

    async def update_profile(self, account_id: str, profile_id: str, patch: ProfilePatch) -> ProfileDocument:
        profile = await self.get_owned_profile(account_id, profile_id)
        updates: Dict[str, Any] = {}
        if patch.nickname is not None:
            nickname = _clean_str(patch.nickname, max_len=32)
            if nickname:
                updates["nickname"] = nickname
        if patch.bio is not None:
            updates["bio"] = _clean_str(patch.bio, max_len=600)
        if patch.interests is not None:
            updates["interests"] = _clean_interests(patch.interests)
        if patch.age is not None:
            updates["age"] = patch.age
        if patch.photo_url is not None:
            updates["photoUrl"] = _clean_str(patch.photo_url, max_len=512)
        if patch.anonymity_settings is not None:
            updates["anonymitySettings"] = patch.anonymity_settings.model_dump(by_alias=True, mode="json")
        if not updates:
            return profile

        now_ms = self._clock()
        updates["updatedAt"] = now_ms
        try:
            updated = await self._profiles.update_scoped(
                profile_id=profile.profile_id,
                account_id=account_id,
                context_key=profile.context_key,
                updates=updates,
            )
        except NotFoundRepositoryError:
            raise NotFound("profile") from None
        await self._activity.record(profile_id, "updated", now_ms, fields=sorted(updates))
        return updated

    async def deactivate(self, profile_id: str, reason: str) -> None:
        """Leave a context.

        Regular profiles keep their data until the retention window passes.
        INSTANT profiles are hard-deleted at ``expiresAt``; if that moment has
        already passed they are erased right away.
        """
        profile = await self._profiles.get_by_profile_id(profile_id)
        if not profile:
            raise NotFound("profile")
        now_ms = self._clock()
        if profile.context_type is ContextType.INSTANT:
            if profile.expires_at is None or profile.expires_at <= now_ms:
                await self._purge(profile, reason=reason)
                return
            await self._profiles.update_scoped(
                profile_id=profile.profile_id,
                account_id=profile.account_id,
                context_key=profile.context_key,
                updates={"isActive": False, "deactivatedAt": now_ms, "updatedAt": now_ms},
            )
            return
        await self._profiles.update_scoped(
            profile_id=profile.profile_id,
            account_id=profile.account_id,
            context_key=profile.context_key,
            updates={
                "isActive": False,
                "deactivatedAt": now_ms,
                "purgeAfter": now_ms + self._retention_ms,
                "updatedAt": now_ms,
            },
        )
        await self._activity.record(profile_id, "deactivated", now_ms, reason=reason)
        LOGGER.info("Profile %s deactivated (%s)", profile_id, reason)

    async def purge_expired(self) -> int:
        """Sweeper entry point; the same checks also run lazily on every read."""
        now_ms = self._clock()
        purged = 0
        for profile in await self._profiles.find_purgeable(now_ms):
            await self._purge(profile, reason="sweep")
            purged += 1
        return purged

    @staticmethod
    def assert_in_context(profile: ProfileDocument, context_id: Optional[str], operation: str) -> None:
        if profile.context_id != context_id:
            raise IsolationViolation(operation, profile.profile_id)

    @staticmethod
    def sanitize(
        profile: ProfileDocument,
        visible_fields: FieldSet,
        *,
        real_name: Optional[str] = None,
    ) -> PublicProfile:
        """Build the only externally visible shape of a profile.

        Fields are whitelisted from ``visible_fields`` intersected with the
        profile's own revealable set. Owner identifiers and anything not on
        the whitelist (including unexpected extra keys) never make it out.
        """
        allowed = frozenset(visible_fields) & profile.anonymity_settings.field_set
        public: Dict[str, Any] = {
            "profileId": profile.profile_id,
            "contextType": profile.context_type,
        }
        if RevealField.NICKNAME in allowed:
            public["nickname"] = profile.nickname
        if RevealField.AGE in allowed:
            public["age"] = profile.age
        if RevealField.INTERESTS in allowed:
            public["interests"] = list(profile.interests)
        if RevealField.PHOTO in allowed:
            public["photoUrl"] = profile.photo_url
        if RevealField.REAL_NAME in allowed and real_name:
            public["realName"] = real_name
        return PublicProfile(**public)

    @staticmethod
    def owner_view(profile: ProfileDocument) -> OwnProfile:
        return OwnProfile(
            profile_id=profile.profile_id,
            context_type=profile.context_type,
            context_id=profile.context_id,
            nickname=profile.nickname,
            bio=profile.bio,
            interests=list(profile.interests),
            age=profile.age,
            photo_url=profile.photo_url,
            anonymity_settings=profile.anonymity_settings,
            is_active=profile.is_active,
            expires_at=profile.expires_at,
        )

    async def _load_live(self, profile_id: str) -> Optional[ProfileDocument]:
        profile = await self._profiles.get_by_profile_id(profile_id)
        if profile and profile.is_expired(self._clock()):
            await self._purge(profile, reason="expired")
            return None
        return profile

    async def _reactivate(self, profile: ProfileDocument, now_ms: int) -> ProfileDocument:
        updated = await self._profiles.update_scoped(
            profile_id=profile.profile_id,
            account_id=profile.account_id,
            context_key=profile.context_key,
            updates={"isActive": True, "updatedAt": now_ms},
            unset=["deactivatedAt", "purgeAfter"],
        )
        await self._activity.record(profile.profile_id, "reactivated", now_ms)
        return updated

    async def _purge(self, profile: ProfileDocument, *, reason: str) -> None:
        """Hard delete: the document and every activity entry that names it."""
        await self._profiles.hard_delete(profile.profile_id)
        erased = await self._activity.erase_for(profile.profile_id)
        LOGGER.info(
            "Purged %s profile %s (%s); erased %s activity entries",
            profile.context_type.value,
            profile.profile_id,
            reason,
            erased,
        )

    @staticmethod
    def _generated_nickname(context_type: ContextType) -> str:
        prefix = {
            ContextType.OFFICIAL: "Member",
            ContextType.CREATED: "Guest",
            ContextType.INSTANT: "Someone",
            ContextType.LOCATION: "Nearby",
        }[context_type]
        return f"{prefix}-{new_id('n')[-4:]}"


__all__ = ["ProfileStore", "context_key_for", "default_anonymity"]
