from __future__ import annotations

import asyncio

import pytest

from glimpse.errors import CooldownActive, InvalidContext, NotFound, NotPermitted, QuotaDenied, SelfLike
from glimpse.events import LIKE_RECEIVED, MATCH_CLOSED, MATCH_CREATED
from glimpse.models.likes import LikeOutcome, LikeState
from glimpse.models.match import MatchStatus
from glimpse.models.profile import ContextType
from glimpse.models.quota import DenialReason, QuotaAction, Tier
from glimpse.models.report import ReportReason
from glimpse.repositories.exceptions import TransientStorageError


@pytest.fixture
def pair(make_account, make_profile):
    async def _pair(context_id: str = "g1", tier_b: Tier = Tier.BASIC):
        await make_account("acc-a")
        await make_account("acc-b", tier_b)
        pa = await make_profile("acc-a", context_id, nickname="Alice")
        pb = await make_profile("acc-b", context_id, nickname="Mina")
        return pa, pb

    return _pair


async def _likes_used(container, account_id: str) -> int:
    usage = await container.quota.usage(account_id)
    return sum(c.used for c in usage.counters if c.action is QuotaAction.SEND_LIKE)


@pytest.mark.asyncio
async def test_one_sided_like_is_pending(container, pair) -> None:
    pa, pb = await pair()
    result = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")

    assert result.outcome is LikeOutcome.PENDING
    assert result.match_id is None
    stored = await container.database["likes"].find_one({"likeId": result.like_id})
    assert stored["state"] == LikeState.LIKED.value
    assert "accountId" not in stored


@pytest.mark.asyncio
@pytest.mark.parametrize("first", ["a", "b"])
async def test_reciprocal_like_matches_regardless_of_order(container, pair, first) -> None:
    pa, pb = await pair()
    sender, receiver = (pa, pb) if first == "a" else (pb, pa)

    await container.matching.send_like(sender.profile_id, receiver.profile_id, "g1")
    result = await container.matching.send_like(receiver.profile_id, sender.profile_id, "g1")

    assert result.matched
    match = await container.database["matches"].find_one({"matchId": result.match_id})
    assert (match["profileIdA"], match["profileIdB"]) == tuple(sorted((pa.profile_id, pb.profile_id)))
    assert match["status"] == MatchStatus.ACTIVE.value
    rows = await container.database["likes"].find({}).to_list(length=None)
    states = {doc["state"] for doc in rows}
    assert states == {LikeState.MATCHED.value}


@pytest.mark.asyncio
async def test_concurrent_reciprocal_likes_create_one_match(container, pair) -> None:
    pa, pb = await pair()
    results = await asyncio.gather(
        container.matching.send_like(pa.profile_id, pb.profile_id, "g1"),
        container.matching.send_like(pb.profile_id, pa.profile_id, "g1"),
    )

    matched = [r for r in results if r.matched]
    assert matched
    assert len({r.match_id for r in matched}) == 1
    assert await container.database["matches"].count_documents({}) == 1


@pytest.mark.asyncio
async def test_many_concurrent_likes_converge_on_one_match(container, pair) -> None:
    pa, pb = await pair()
    calls = []
    for _ in range(4):
        calls.append(container.matching.send_like(pa.profile_id, pb.profile_id, "g1"))
        calls.append(container.matching.send_like(pb.profile_id, pa.profile_id, "g1"))
    outcomes = await asyncio.gather(*calls, return_exceptions=True)

    assert await container.database["matches"].count_documents({}) == 1
    match = await container.database["matches"].find_one({})
    results = [o for o in outcomes if not isinstance(o, CooldownActive)]
    assert all(not isinstance(o, BaseException) for o in results)
    assert any(r.matched for r in results)
    for result in results:
        if result.matched:
            assert result.match_id == match["matchId"]
        else:
            assert result.outcome is LikeOutcome.PENDING
    assert await container.database["likes"].count_documents({}) == 2
    assert await _likes_used(container, "acc-a") == 1
    assert await _likes_used(container, "acc-b") == 1

    for sender, receiver in ((pa, pb), (pb, pa)):
        replay = await container.matching.send_like(sender.profile_id, receiver.profile_id, "g1")
        assert replay.match_id == match["matchId"]


@pytest.mark.asyncio
async def test_retry_after_transient_failure_completes_match(container, pair, monkeypatch) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")
    likes = container.matching._likes
    original = likes.find_active
    failures = []

    async def flaky_find_active(*args, **kwargs):
        if not failures:
            failures.append(args)
            raise TransientStorageError("connection reset")
        return await original(*args, **kwargs)

    monkeypatch.setattr(likes, "find_active", flaky_find_active)
    with pytest.raises(TransientStorageError):
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")

    retried = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    assert retried.matched
    again = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    assert again.match_id == retried.match_id
    assert await container.database["matches"].count_documents({}) == 1
    assert await container.database["likes"].count_documents({}) == 2
    assert await _likes_used(container, "acc-a") == 1


@pytest.mark.asyncio
async def test_retry_resumes_like_left_matched_without_match(container, pair, monkeypatch) -> None:
    pa, pb = await pair()
    reverse = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")
    likes = container.matching._likes
    original = likes.mark_matched
    failures = []

    async def fail_on_reverse(like_id, match_id, now_ms):
        if like_id == reverse.like_id and not failures:
            failures.append(like_id)
            raise TransientStorageError("connection reset")
        return await original(like_id, match_id, now_ms)

    monkeypatch.setattr(likes, "mark_matched", fail_on_reverse)
    with pytest.raises(TransientStorageError):
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    stuck = await likes.latest_for_direction(pa.profile_id, pb.profile_id, "g1")
    assert stuck.state is LikeState.MATCHED
    assert stuck.match_id is None

    retried = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    assert retried.matched
    assert retried.like_id == stuck.like_id
    assert (await likes.get(stuck.like_id)).match_id == retried.match_id
    assert (await likes.get(reverse.like_id)).match_id == retried.match_id


@pytest.mark.asyncio
async def test_retry_reverts_interrupted_match_when_counterpart_withdrew(container, pair, monkeypatch) -> None:
    pa, pb = await pair()
    reverse = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")
    likes = container.matching._likes
    original = likes.mark_matched

    async def fail_on_reverse(like_id, match_id, now_ms):
        if like_id == reverse.like_id:
            raise TransientStorageError("connection reset")
        return await original(like_id, match_id, now_ms)

    monkeypatch.setattr(likes, "mark_matched", fail_on_reverse)
    with pytest.raises(TransientStorageError):
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    monkeypatch.setattr(likes, "mark_matched", original)
    await container.matching.cancel_like(reverse.like_id, pb.profile_id)

    with pytest.raises(CooldownActive):
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    own = await likes.latest_for_direction(pa.profile_id, pb.profile_id, "g1")
    assert own.state is LikeState.LIKED
    assert own.matched_at is None
    assert await container.database["matches"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_repeated_like_after_match_returns_same_match(container, pair) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    first = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")

    again = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    assert again.matched
    assert again.match_id == first.match_id
    assert await _likes_used(container, "acc-a") == 1
    assert await container.database["matches"].count_documents({}) == 1


@pytest.mark.asyncio
async def test_duplicate_like_inside_cooldown_is_denied(container, pair) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    outcomes = await asyncio.gather(
        *(container.matching.send_like(pa.profile_id, pb.profile_id, "g1") for _ in range(5)),
        return_exceptions=True,
    )

    assert all(isinstance(o, CooldownActive) for o in outcomes)
    assert await container.database["likes"].count_documents({}) == 1
    assert await _likes_used(container, "acc-a") == 1


@pytest.mark.asyncio
async def test_self_like_is_rejected(container, pair) -> None:
    pa, _ = await pair()
    with pytest.raises(SelfLike):
        await container.matching.send_like(pa.profile_id, pa.profile_id, "g1")


@pytest.mark.asyncio
async def test_like_across_contexts_is_refused(container, make_account, make_profile) -> None:
    await make_account("acc-a")
    await make_account("acc-b")
    pa = await make_profile("acc-a", "g1")
    pb = await make_profile("acc-b", "g2")

    with pytest.raises(NotFound):
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    with pytest.raises(InvalidContext):
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g2")
    assert await container.database["likes"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_sender_must_belong_to_account(container, pair) -> None:
    pa, pb = await pair()
    with pytest.raises(NotFound):
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g1", account_id="acc-b")


@pytest.mark.asyncio
async def test_same_accounts_in_different_contexts_are_independent(container, make_account, make_profile) -> None:
    await make_account("acc-a")
    await make_account("acc-b")
    pa1 = await make_profile("acc-a", "g1")
    pb1 = await make_profile("acc-b", "g1")
    pa2 = await make_profile("acc-a", "g2")
    pb2 = await make_profile("acc-b", "g2")

    await container.matching.send_like(pa1.profile_id, pb1.profile_id, "g1")
    result = await container.matching.send_like(pb2.profile_id, pa2.profile_id, "g2")
    assert result.outcome is LikeOutcome.PENDING


@pytest.mark.asyncio
async def test_cancel_then_like_again_hits_cooldown(container, pair, clock) -> None:
    pa, pb = await pair()
    like = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    cancelled = await container.matching.cancel_like(like.like_id, pa.profile_id)
    assert cancelled.state is LikeState.CANCELLED

    with pytest.raises(CooldownActive) as denied:
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    assert denied.value.reason is DenialReason.COOLDOWN_ACTIVE
    assert denied.value.retry_after_ms == 24 * 3_600_000

    clock.advance(hours=24)
    again = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    assert again.outcome is LikeOutcome.PENDING
    assert again.like_id != like.like_id


@pytest.mark.asyncio
async def test_cancel_is_idempotent_and_sender_only(container, pair) -> None:
    pa, pb = await pair()
    like = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")

    with pytest.raises(NotFound):
        await container.matching.cancel_like(like.like_id, pb.profile_id)
    with pytest.raises(NotFound):
        await container.matching.cancel_like_for("acc-b", like.like_id)

    await container.matching.cancel_like_for("acc-a", like.like_id)
    repeat = await container.matching.cancel_like(like.like_id, pa.profile_id)
    assert repeat.state is LikeState.CANCELLED


@pytest.mark.asyncio
async def test_cancelled_like_never_completes_a_match(container, pair) -> None:
    pa, pb = await pair()
    like = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    await container.matching.cancel_like(like.like_id, pa.profile_id)

    result = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")
    assert result.outcome is LikeOutcome.PENDING
    assert await container.database["matches"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_matched_like_cannot_be_cancelled(container, pair) -> None:
    pa, pb = await pair()
    like = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")

    with pytest.raises(NotPermitted):
        await container.matching.cancel_like(like.like_id, pa.profile_id)


@pytest.mark.asyncio
async def test_reverse_like_lost_to_cancel_stays_pending(container, pair, monkeypatch) -> None:
    pa, pb = await pair()
    first = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    likes = container.matching._likes
    original = likes.mark_matched

    async def cancel_first_then_mark(like_id, match_id, now_ms):
        if like_id == first.like_id:
            await likes.cancel(first.like_id, pa.profile_id, now_ms)
        return await original(like_id, match_id, now_ms)

    monkeypatch.setattr(likes, "mark_matched", cancel_first_then_mark)
    result = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")

    assert result.outcome is LikeOutcome.PENDING
    reverse = await likes.get(result.like_id)
    assert reverse.state is LikeState.LIKED
    assert reverse.matched_at is None
    assert await container.database["matches"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_quota_denial_records_nothing(container, pair) -> None:
    pa, pb = await pair()
    with pytest.raises(QuotaDenied) as denied:
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g1", is_super=True)

    assert denied.value.reason is DenialReason.TIER_REQUIRED
    assert await container.database["likes"].count_documents({}) == 0


@pytest.mark.asyncio
async def test_daily_like_cap_is_enforced_on_send(container, make_account, make_profile) -> None:
    await make_account("acc-a")
    pa = await make_profile("acc-a", "g1")
    targets = []
    for index in range(11):
        await make_account(f"acc-t{index}")
        targets.append(await make_profile(f"acc-t{index}", "g1"))

    for target in targets[:10]:
        await container.matching.send_like(pa.profile_id, target.profile_id, "g1")
    with pytest.raises(QuotaDenied) as denied:
        await container.matching.send_like(pa.profile_id, targets[10].profile_id, "g1")

    assert denied.value.reason is DenialReason.LIMIT_EXCEEDED
    assert denied.value.limit == 10


@pytest.mark.asyncio
async def test_report_closes_match_without_refund(container, pair) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    matched = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")

    report = await container.matching.report_mismatch(
        matched.match_id, pa.profile_id, ReportReason.MISMATCH, "not who I expected", account_id="acc-a"
    )

    assert report.status == "PENDING"
    stored = await container.database["matches"].find_one({"matchId": matched.match_id})
    assert stored["status"] == MatchStatus.REPORTED.value
    assert "activePairKey" not in stored
    assert (await container.matching.list_matches("acc-a")).matches == []
    assert (await container.matching.list_matches("acc-b")).matches == []
    assert await container.database["reports"].count_documents({"matchId": matched.match_id}) == 1
    assert await _likes_used(container, "acc-a") == 1
    assert await _likes_used(container, "acc-b") == 1

    with pytest.raises(NotPermitted):
        await container.matching.report_mismatch(matched.match_id, pb.profile_id)


@pytest.mark.asyncio
async def test_report_requires_participant(container, pair, make_account, make_profile) -> None:
    pa, pb = await pair()
    await make_account("acc-c")
    pc = await make_profile("acc-c", "g1")
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    matched = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")

    with pytest.raises(NotFound):
        await container.matching.report_mismatch(matched.match_id, pc.profile_id)
    with pytest.raises(NotFound):
        await container.matching.report_mismatch(matched.match_id, pa.profile_id, account_id="acc-c")


@pytest.mark.asyncio
async def test_pair_can_match_again_after_unmatch(container, pair, clock) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    first = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")
    await container.matching.unmatch_for("acc-b", first.match_id)

    with pytest.raises(CooldownActive):
        await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")

    clock.advance(hours=25)
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    second = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")
    assert second.matched
    assert second.match_id != first.match_id


@pytest.mark.asyncio
async def test_received_likes_are_masked_for_basic(container, pair) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")

    received = await container.matching.list_received_likes("acc-b")
    assert received.masked is True
    assert len(received.liked_me) == 1
    assert received.liked_me[0].from_profile.nickname == "A*"
    assert received.liked_me[0].to_profile_id == pb.profile_id


@pytest.mark.asyncio
async def test_received_likes_are_visible_for_advanced(container, pair) -> None:
    pa, pb = await pair(tier_b=Tier.ADVANCED)
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1", is_super=False)

    received = await container.matching.list_received_likes("acc-b")
    assert received.masked is False
    view = received.liked_me[0].from_profile.model_dump(by_alias=True, exclude_none=True)
    assert view == {"profileId": pa.profile_id, "contextType": ContextType.CREATED.value, "nickname": "Alice"}


@pytest.mark.asyncio
async def test_unanswered_like_expires_lazily(container, pair, clock) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    clock.advance(hours=168)

    assert (await container.matching.list_received_likes("acc-b")).liked_me == []
    sent = await container.matching.list_sent_likes("acc-a")
    assert [like.state for like in sent.likes] == [LikeState.EXPIRED]

    result = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")
    assert result.outcome is LikeOutcome.PENDING
    renewed = await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    assert renewed.matched


@pytest.mark.asyncio
async def test_expire_stale_likes_sweeps_in_bulk(container, pair, clock) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    assert await container.matching.expire_stale_likes() == 0
    clock.advance(hours=169)
    assert await container.matching.expire_stale_likes() == 1


@pytest.mark.asyncio
async def test_events_follow_state_changes(container, pair, publisher) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    matched = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")
    await container.matching.unmatch(matched.match_id, pa.profile_id)
    await publisher.drain()

    assert publisher.topics() == [LIKE_RECEIVED, MATCH_CREATED, MATCH_CLOSED]
    created = dict(publisher.events)[MATCH_CREATED]
    assert created["matchId"] == matched.match_id
    assert all("accountId" not in event for _, event in publisher.events)


@pytest.mark.asyncio
async def test_reveal_for_shows_account_side_of_match(container, pair, clock) -> None:
    pa, pb = await pair()
    await container.matching.send_like(pa.profile_id, pb.profile_id, "g1")
    matched = await container.matching.send_like(pb.profile_id, pa.profile_id, "g1")

    view = await container.matching.reveal_for("acc-a", matched.match_id)
    assert view.counterpart.profile_id == pb.profile_id
    assert view.counterpart.real_name is None

    matches = await container.matching.list_matches("acc-b")
    assert [m.my_profile_id for m in matches.matches] == [pb.profile_id]

    with pytest.raises(NotFound):
        await container.matching.reveal_for("acc-stranger", matched.match_id)
