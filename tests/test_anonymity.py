from __future__ import annotations

import pytest

from glimpse.errors import NotFound
from glimpse.models.match import MatchDocument, MatchStatus
from glimpse.models.profile import (
    AnonymityLevel,
    AnonymitySettings,
    ContextType,
    ProfileDocument,
    ProfilePatch,
    RevealConditions,
    RevealField,
    RevealState,
)
from glimpse.services.anonymity import MINIMAL_FIELDS, UNLOCKED_FIELDS, compute_stage, initial_stage


async def _matched_pair(container, make_account, make_profile, context_id: str = "g1"):
    await make_account("acc-a")
    await make_account("acc-b")
    pa = await make_profile("acc-a", context_id)
    pb = await make_profile("acc-b", context_id)
    return pa, pb


async def _match(container, pa, pb, context_id: str = "g1") -> str:
    await container.matching.send_like(pa.profile_id, pb.profile_id, context_id)
    result = await container.matching.send_like(pb.profile_id, pa.profile_id, context_id)
    assert result.matched
    return result.match_id


def _profile(profile_id: str, settings: AnonymitySettings) -> ProfileDocument:
    return ProfileDocument(
        profile_id=profile_id,
        account_id=f"acc-{profile_id}",
        context_type=ContextType.CREATED,
        context_id="g1",
        context_key="g1",
        nickname=profile_id,
        anonymity_settings=settings,
        created_at=0,
        updated_at=0,
    )


def test_stage_ladder_unlocks_more_fields_each_step() -> None:
    ladder = [RevealState.FULL, RevealState.PARTIAL, RevealState.VERIFIED, RevealState.REVEALED]
    for lower, higher in zip(ladder, ladder[1:]):
        assert UNLOCKED_FIELDS[lower] < UNLOCKED_FIELDS[higher]
    assert MINIMAL_FIELDS == frozenset({RevealField.NICKNAME})


def test_initial_stage_takes_the_lower_level() -> None:
    verified = _profile("a", AnonymitySettings(level=AnonymityLevel.VERIFIED))
    partial = _profile("b", AnonymitySettings(level=AnonymityLevel.PARTIAL))
    no_reveal = _profile(
        "c", AnonymitySettings(level=AnonymityLevel.VERIFIED, reveal_conditions=RevealConditions(after_match=False))
    )
    assert initial_stage(verified, partial) is RevealState.PARTIAL
    assert initial_stage(verified, verified) is RevealState.VERIFIED
    assert initial_stage(verified, no_reveal) is RevealState.FULL


def test_compute_stage_honours_skew_window() -> None:
    a = _profile("a", AnonymitySettings())
    b = _profile("b", AnonymitySettings())
    match = MatchDocument(
        match_id="m1", profile_id_a="a", profile_id_b="b", context_id="g1", matched_at=0, reveal_rank=1
    )
    day_ms = 24 * 60 * 60 * 1000
    kwargs = dict(chat_turns=10, skew_ms=1000)
    assert compute_stage(match, a, b, now_ms=day_ms - 1500, **kwargs) is RevealState.PARTIAL
    assert compute_stage(match, a, b, now_ms=day_ms - 500, **kwargs) is RevealState.REVEALED
    assert compute_stage(match, a, b, now_ms=day_ms, chat_turns=9, skew_ms=1000) is RevealState.PARTIAL


@pytest.mark.asyncio
async def test_only_minimal_fields_without_match(container, make_account, make_profile) -> None:
    pa, pb = await _matched_pair(container, make_account, make_profile)
    anonymity = container.anonymity

    assert await anonymity.fields_visible_to(pa.profile_id, pb.profile_id, None) == MINIMAL_FIELDS
    assert await anonymity.fields_visible_to(pa.profile_id, pb.profile_id, "m_unknown") == MINIMAL_FIELDS


@pytest.mark.asyncio
async def test_default_created_match_starts_partial(container, make_account, make_profile) -> None:
    pa, pb = await _matched_pair(container, make_account, make_profile)
    match_id = await _match(container, pa, pb)

    assert await container.anonymity.reveal_stage(match_id) is RevealState.PARTIAL
    visible = await container.anonymity.fields_visible_to(pa.profile_id, pb.profile_id, match_id)
    assert visible == frozenset({RevealField.NICKNAME, RevealField.INTERESTS})


@pytest.mark.asyncio
async def test_reveal_after_delay_and_turns_and_never_regresses(container, make_account, make_profile, clock) -> None:
    pa, pb = await _matched_pair(container, make_account, make_profile)
    match_id = await _match(container, pa, pb)
    anonymity = container.anonymity

    clock.advance(hours=24)
    assert await anonymity.reveal_stage(match_id, chat_turns=9) is RevealState.PARTIAL
    assert await anonymity.reveal_stage(match_id, chat_turns=10) is RevealState.REVEALED
    # A lower turn count reported later does not take the reveal back
    assert await anonymity.reveal_stage(match_id, chat_turns=0) is RevealState.REVEALED
    assert await anonymity.reveal_stage(match_id) is RevealState.REVEALED

    stored = await container.database["matches"].find_one({"matchId": match_id})
    assert stored["revealRank"] == RevealState.REVEALED.rank
    assert stored["chatTurns"] == 10


@pytest.mark.asyncio
async def test_turns_alone_do_not_reveal_before_delay(container, make_account, make_profile, clock) -> None:
    pa, pb = await _matched_pair(container, make_account, make_profile)
    match_id = await _match(container, pa, pb)

    clock.advance(hours=23)
    assert await container.anonymity.reveal_stage(match_id, chat_turns=50) is RevealState.PARTIAL
    clock.advance(hours=1)
    # The stored turn count is a high-water mark
    assert await container.anonymity.reveal_stage(match_id) is RevealState.REVEALED


@pytest.mark.asyncio
async def test_mutual_consent_gates_reveal(container, make_account, make_profile, clock) -> None:
    pa, pb = await _matched_pair(container, make_account, make_profile)
    await container.profiles.update_profile(
        "acc-a",
        pa.profile_id,
        ProfilePatch(anonymity_settings=AnonymitySettings(reveal_conditions=RevealConditions(mutual_consent=True))),
    )
    match_id = await _match(container, pa, pb)
    anonymity = container.anonymity

    clock.advance(hours=25)
    assert await anonymity.reveal_stage(match_id, chat_turns=10) is RevealState.PARTIAL
    await anonymity.record_consent(match_id, pa.profile_id)
    assert await anonymity.reveal_stage(match_id) is RevealState.PARTIAL
    await anonymity.record_consent(match_id, pb.profile_id)
    assert await anonymity.reveal_stage(match_id) is RevealState.REVEALED


@pytest.mark.asyncio
async def test_consent_from_outsider_is_not_found(container, make_account, make_profile) -> None:
    pa, pb = await _matched_pair(container, make_account, make_profile)
    match_id = await _match(container, pa, pb)
    with pytest.raises(NotFound):
        await container.anonymity.record_consent(match_id, "p_stranger")


@pytest.mark.asyncio
async def test_revealed_fields_are_limited_by_subject_settings(container, make_account, make_profile, clock) -> None:
    pa, pb = await _matched_pair(container, make_account, make_profile)
    await container.profiles.update_profile(
        "acc-b",
        pb.profile_id,
        ProfilePatch(
            anonymity_settings=AnonymitySettings(
                revealable_fields=[RevealField.NICKNAME, RevealField.AGE],
            )
        ),
    )
    match_id = await _match(container, pa, pb)
    clock.advance(hours=24)
    await container.anonymity.reveal_stage(match_id, chat_turns=10)

    visible_b = await container.anonymity.fields_visible_to(pa.profile_id, pb.profile_id, match_id)
    visible_a = await container.anonymity.fields_visible_to(pb.profile_id, pa.profile_id, match_id)
    assert visible_b == frozenset({RevealField.NICKNAME, RevealField.AGE})
    assert visible_a == frozenset(RevealField)


@pytest.mark.asyncio
async def test_profile_opting_out_of_reveal_keeps_match_full(container, make_account, make_profile, clock) -> None:
    pa, pb = await _matched_pair(container, make_account, make_profile)
    await container.profiles.update_profile(
        "acc-a",
        pa.profile_id,
        ProfilePatch(anonymity_settings=AnonymitySettings(reveal_conditions=RevealConditions(after_match=False))),
    )
    match_id = await _match(container, pa, pb)
    assert await container.anonymity.reveal_stage(match_id) is RevealState.FULL


@pytest.mark.asyncio
async def test_closed_match_shows_minimal_fields(container, make_account, make_profile) -> None:
    pa, pb = await _matched_pair(container, make_account, make_profile)
    match_id = await _match(container, pa, pb)
    await container.matching.unmatch(match_id, pa.profile_id)

    stored = await container.database["matches"].find_one({"matchId": match_id})
    assert stored["status"] == MatchStatus.UNMATCHED.value
    assert await container.anonymity.fields_visible_to(pa.profile_id, pb.profile_id, match_id) == MINIMAL_FIELDS
    assert await container.anonymity.reveal_stage(match_id) is RevealState.PARTIAL


@pytest.mark.asyncio
async def test_unknown_match_is_not_found(container) -> None:
    with pytest.raises(NotFound):
        await container.anonymity.reveal_stage("m_missing")
