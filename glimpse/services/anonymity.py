"""Progressive identity disclosure between matched profiles."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ..clock import Clock
from ..errors import NotFound, NotPermitted
from ..models.match import MatchDocument, MatchStatus
from ..models.profile import (
    FieldSet,
    ProfileDocument,
    RevealConditions,
    RevealField,
    RevealState,
)
from ..repositories.matches import MatchRepository
from .profile_store import ProfileStore

LOGGER = logging.getLogger("uvicorn.error")

UNLOCKED_FIELDS: Dict[RevealState, FieldSet] = {
    RevealState.FULL: frozenset({RevealField.NICKNAME}),
    RevealState.PARTIAL: frozenset({RevealField.NICKNAME, RevealField.INTERESTS}),
    RevealState.VERIFIED: frozenset(
        {RevealField.NICKNAME, RevealField.INTERESTS, RevealField.AGE, RevealField.PHOTO}
    ),
    RevealState.REVEALED: frozenset(RevealField),
}

# Visible before any match exists. Not configurable.
MINIMAL_FIELDS: FieldSet = frozenset({RevealField.NICKNAME})


def initial_stage(profile_a: ProfileDocument, profile_b: ProfileDocument) -> RevealState:
    """Stage granted at match time: the lower of the two levels, if both allow it."""
    settings_a = profile_a.anonymity_settings
    settings_b = profile_b.anonymity_settings
    if not (settings_a.reveal_conditions.after_match and settings_b.reveal_conditions.after_match):
        return RevealState.FULL
    return min(settings_a.level, settings_b.level, key=lambda stage: stage.rank)


def combined_conditions(profile_a: ProfileDocument, profile_b: ProfileDocument) -> RevealConditions:
    """The most restrictive combination of both profiles' reveal conditions."""
    a = profile_a.anonymity_settings.reveal_conditions
    b = profile_b.anonymity_settings.reveal_conditions
    return RevealConditions(
        after_match=a.after_match and b.after_match,
        after_chat_turns=max(a.after_chat_turns, b.after_chat_turns),
        mutual_consent=a.mutual_consent or b.mutual_consent,
        time_delay_seconds=max(a.time_delay_seconds, b.time_delay_seconds),
    )


def compute_stage(
    match: MatchDocument,
    profile_a: ProfileDocument,
    profile_b: ProfileDocument,
    *,
    chat_turns: int,
    now_ms: int,
    skew_ms: int,
) -> RevealState:
    """Pure stage derivation; callers fold the result into the stored high-water mark."""
    base = initial_stage(profile_a, profile_b)
    conditions = combined_conditions(profile_a, profile_b)
    if not conditions.after_match:
        return base

    elapsed_ms = now_ms - match.matched_at
    if elapsed_ms + skew_ms < conditions.time_delay_seconds * 1000:
        return base
    if chat_turns < conditions.after_chat_turns:
        return base
    if conditions.mutual_consent and not set(match.participants) <= set(match.consents):
        return base
    return RevealState.REVEALED


class AnonymityPolicy:
    def __init__(
        self,
        matches: MatchRepository,
        profile_store: ProfileStore,
        *,
        clock: Clock,
        skew_ms: int = 1000,
    ) -> None:
        self._matches = matches
        self._profile_store = profile_store
        self._clock = clock
        self._skew_ms = skew_ms

    async def reveal_stage(self, match_id: str, *, chat_turns: Optional[int] = None) -> RevealState:
        """Current disclosure stage of a match.

        ``chat_turns`` is the message count reported by the chat collaborator.
        Both the turn count and the resulting stage are stored as high-water
        marks, so a stage once reached is never taken back.
        """
        match = await self._matches.get(match_id)
        if not match:
            raise NotFound("match")
        if match.status is not MatchStatus.ACTIVE:
            return match.reveal_state

        profiles = await self._profile_store.load_many(match.participants)
        profile_a = profiles.get(match.profile_id_a)
        profile_b = profiles.get(match.profile_id_b)
        if not profile_a or not profile_b:
            return match.reveal_state

        turns = max(match.chat_turns, int(chat_turns or 0))
        candidate = compute_stage(
            match,
            profile_a,
            profile_b,
            chat_turns=turns,
            now_ms=self._clock(),
            skew_ms=self._skew_ms,
        )
        if candidate.rank <= match.reveal_rank and turns <= match.chat_turns:
            return match.reveal_state

        updated = await self._matches.raise_reveal(match_id, reveal_rank=candidate.rank, chat_turns=turns)
        stage = updated.reveal_state if updated else candidate
        if stage.rank > match.reveal_rank:
            LOGGER.info("Match %s reveal stage advanced %s -> %s", match_id, match.reveal_state.value, stage.value)
        return stage

    async def fields_visible_to(
        self,
        viewer_profile_id: str,
        subject_profile_id: str,
        match_id: Optional[str],
        *,
        chat_turns: Optional[int] = None,
    ) -> FieldSet:
        """Fields of ``subject`` that ``viewer`` may see.

        Without an active match joining exactly these two profiles only the
        minimal nickname set is visible, whatever the subject configured.
        """
        if not match_id or viewer_profile_id == subject_profile_id:
            return MINIMAL_FIELDS
        match = await self._matches.get(match_id)
        if (
            not match
            or match.status is not MatchStatus.ACTIVE
            or {viewer_profile_id, subject_profile_id} != set(match.participants)
        ):
            return MINIMAL_FIELDS

        stage = await self.reveal_stage(match_id, chat_turns=chat_turns)
        subject = (await self._profile_store.load_many([subject_profile_id])).get(subject_profile_id)
        if not subject:
            return MINIMAL_FIELDS
        return subject.anonymity_settings.field_set & UNLOCKED_FIELDS[stage]

    async def record_consent(self, match_id: str, profile_id: str) -> MatchDocument:
        match = await self._matches.get(match_id)
        if not match or match.status is not MatchStatus.ACTIVE or profile_id not in match.participants:
            raise NotFound("match")
        updated = await self._matches.add_consent(match_id, profile_id)
        if not updated:
            raise NotPermitted("match is no longer active")
        return updated


__all__ = [
    "AnonymityPolicy",
    "MINIMAL_FIELDS",
    "UNLOCKED_FIELDS",
    "combined_conditions",
    "compute_stage",
    "initial_stage",
]
