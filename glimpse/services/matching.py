"""Like edges, reciprocity detection and match lifecycle."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from ..clock import HOUR_MS, Clock
from ..errors import CooldownActive, InvalidContext, NotFound, NotPermitted, QuotaDenied, SelfLike
from ..events import LIKE_RECEIVED, MATCH_CLOSED, MATCH_CREATED, EventPublisher
from ..models.identifiers import directional_key, new_id, pair_key
from ..models.likes import (
    LikeDocument,
    LikeOutcome,
    LikeResult,
    LikesReceivedResponse,
    LikesSentResponse,
    LikeState,
    ReceivedLike,
    SentLike,
)
from ..models.match import MatchDocument, MatchesResponse, MatchStatus, MatchView, RevealResponse
from ..models.profile import ProfileDocument, PublicProfile, RevealField
from ..models.quota import Denied, QuotaAction
from ..models.report import ReportDocument, ReportReason
from ..repositories.accounts import AccountRepository
from ..repositories.exceptions import DuplicateKeyRepositoryError
from ..repositories.groups import ReportRepository
from ..repositories.likes import LikeRepository
from ..repositories.matches import MatchRepository
from .anonymity import MINIMAL_FIELDS, AnonymityPolicy, initial_stage
from .profile_store import ProfileStore
from .quota_policy import QuotaPolicy

LOGGER = logging.getLogger("uvicorn.error")


def _mask_nickname(nickname: Optional[str]) -> Optional[str]:
    if not nickname:
        return nickname
    return f"{nickname[0]}*"


class LikeMatchingEngine:
    """Records likes between profiles of one context and forms matches.

    Every invariant that must survive concurrent requests is carried by a
    unique index or a conditional update in the repositories; this class
    only sequences those steps.
    """

    def __init__(
        self,
        likes: LikeRepository,
        matches: MatchRepository,
        reports: ReportRepository,
        accounts: AccountRepository,
        profile_store: ProfileStore,
        quota: QuotaPolicy,
        anonymity: AnonymityPolicy,
        publisher: EventPublisher,
        *,
        clock: Clock,
        cooldown_hours: float,
        like_ttl_hours: float,
    ) -> None:
        self._likes = likes
        self._matches = matches
        self._reports = reports
        self._accounts = accounts
        self._profiles = profile_store
        self._quota = quota
        self._anonymity = anonymity
        self._publisher = publisher
        self._clock = clock
        self._cooldown_ms = int(cooldown_hours * HOUR_MS)
        self._like_ttl_ms = int(like_ttl_hours * HOUR_MS)

    async def send_like(
        self,
        from_profile_id: str,
        to_profile_id: str,
        context_id: str,
        is_super: bool = False,
        *,
        account_id: Optional[str] = None,
    ) -> LikeResult:
        """Record a like and match when the reverse like is already active.

        When ``account_id`` is given the sending profile must belong to it.
        Safe to retry: a like that already produced a match answers with the
        same match id instead of charging quota again.
        """
        if from_profile_id == to_profile_id:
            raise SelfLike()

        sender = await self._resolve_sender(from_profile_id, context_id, account_id)
        receiver = await self._profiles.get_profile(to_profile_id, context_id=context_id)
        now_ms = self._clock()

        latest = await self._latest_like(from_profile_id, to_profile_id, context_id, now_ms)
        if latest and latest.state is LikeState.MATCHED and latest.match_id:
            return LikeResult(
                outcome=LikeOutcome.MATCHED,
                like_id=latest.like_id,
                match_id=latest.match_id,
                matched_at=latest.matched_at,
            )
        if latest and latest.is_active(now_ms):
            # An earlier attempt may have stored the like and stopped before the reciprocity check
            resumed = await self._try_match(latest, sender, receiver, now_ms)
            if resumed.matched:
                return resumed
        if latest and now_ms - latest.created_at < self._cooldown_ms:
            raise CooldownActive(retry_after_ms=latest.created_at + self._cooldown_ms - now_ms)
        if latest and latest.is_active(now_ms):
            return LikeResult(outcome=LikeOutcome.PENDING, like_id=latest.like_id)

        action = QuotaAction.SEND_SUPER_LIKE if is_super else QuotaAction.SEND_LIKE
        decision = await self._quota.consume(sender.account_id, action, sender.context_type)
        if isinstance(decision, Denied):
            raise QuotaDenied(decision.reason, f"{action.value} not allowed", limit=decision.limit)

        like = LikeDocument(
            like_id=new_id("l"),
            from_profile_id=from_profile_id,
            to_profile_id=to_profile_id,
            context_id=context_id,
            is_super=is_super,
            state=LikeState.LIKED,
            active_key=directional_key(from_profile_id, to_profile_id, context_id),
            created_at=now_ms,
            expires_at=now_ms + self._like_ttl_ms,
        )
        try:
            await self._likes.insert(like)
        except DuplicateKeyRepositoryError:
            await self._quota.release(
                sender.account_id, action, sender.context_type, window_key=decision.window_key
            )
            LOGGER.debug("Concurrent duplicate like %s -> %s in %s", from_profile_id, to_profile_id, context_id)
            raise CooldownActive(retry_after_ms=self._cooldown_ms) from None

        result = await self._try_match(like, sender, receiver, now_ms)
        if not result.matched:
            self._publisher.publish_later(
                LIKE_RECEIVED,
                {"likeId": like.like_id, "toProfileId": to_profile_id, "contextId": context_id, "isSuper": is_super},
            )
        return result

    async def cancel_like(self, like_id: str, profile_id: str, *, account_id: Optional[str] = None) -> LikeDocument:
        """Withdraw an unreciprocated like. Only its sender may do this."""
        if account_id is not None:
            await self._profiles.get_owned_profile(account_id, profile_id)
        like = await self._likes.get(like_id)
        if not like or like.from_profile_id != profile_id:
            raise NotFound("like")

        now_ms = self._clock()
        cancelled = await self._likes.cancel(like_id, profile_id, now_ms)
        if cancelled:
            LOGGER.info("Like %s cancelled by profile %s", like_id, profile_id)
            return cancelled

        current = await self._likes.get(like_id)
        if current is None:
            raise NotFound("like")
        if current.state is LikeState.CANCELLED:
            return current
        if current.state is LikeState.LIKED and current.expires_at <= now_ms:
            await self._likes.expire(like_id, now_ms)
            raise NotPermitted("like has expired")
        raise NotPermitted(f"like is {current.state.value.lower()} and cannot be cancelled")

    async def cancel_like_for(self, account_id: str, like_id: str) -> LikeDocument:
        like = await self._likes.get(like_id)
        if not like:
            raise NotFound("like")
        return await self.cancel_like(like_id, like.from_profile_id, account_id=account_id)

    async def report_mismatch(
        self,
        match_id: str,
        reporter_profile_id: str,
        reason: ReportReason = ReportReason.MISMATCH,
        details: Optional[str] = None,
        *,
        account_id: Optional[str] = None,
    ) -> ReportDocument:
        """Close a match on report and file a PENDING report.

        The like units spent on the pair are not refunded.
        """
        match = await self._close_match(match_id, reporter_profile_id, MatchStatus.REPORTED, account_id)
        report = ReportDocument(
            report_id=new_id("r"),
            match_id=match.match_id,
            reporter_profile_id=reporter_profile_id,
            reason=reason,
            details=details,
            created_at=self._clock(),
        )
        await self._reports.insert(report)
        LOGGER.info("Match %s reported by profile %s (%s)", match_id, reporter_profile_id, reason.value)
        return report

    async def unmatch(self, match_id: str, profile_id: str, *, account_id: Optional[str] = None) -> MatchDocument:
        match = await self._close_match(match_id, profile_id, MatchStatus.UNMATCHED, account_id)
        LOGGER.info("Match %s closed by profile %s", match_id, profile_id)
        return match

    async def list_received_likes(self, account_id: str) -> LikesReceivedResponse:
        """Unanswered likes aimed at any of the account's profiles."""
        own = {p.profile_id: p for p in await self._profiles.list_account_profiles(account_id) if p.is_active}
        now_ms = self._clock()
        likes = await self._likes.list_received(list(own), now_ms)
        senders = await self._profiles.load_many({like.from_profile_id for like in likes})
        limits = await self._quota.limits(account_id)
        masked = not limits.sees_received_likes

        received: List[ReceivedLike] = []
        for like in likes:
            sender = senders.get(like.from_profile_id)
            if not sender or not sender.is_active:
                continue
            ProfileStore.assert_in_context(sender, like.context_id, "list_received_likes")
            public = ProfileStore.sanitize(sender, MINIMAL_FIELDS)
            if masked:
                public = public.model_copy(update={"nickname": _mask_nickname(public.nickname)})
            received.append(
                ReceivedLike(
                    like_id=like.like_id,
                    context_id=like.context_id,
                    to_profile_id=like.to_profile_id,
                    is_super=like.is_super,
                    liked_at=like.created_at,
                    from_profile=public,
                )
            )
        return LikesReceivedResponse(liked_me=received, masked=masked)

    async def list_sent_likes(self, account_id: str) -> LikesSentResponse:
        own = [p.profile_id for p in await self._profiles.list_account_profiles(account_id)]
        now_ms = self._clock()
        likes = await self._likes.list_sent(own)
        targets = await self._profiles.load_many({like.to_profile_id for like in likes})

        sent: List[SentLike] = []
        for like in likes:
            target = targets.get(like.to_profile_id)
            if not target:
                continue
            state = like.state
            if state is LikeState.LIKED and like.expires_at <= now_ms:
                await self._likes.expire(like.like_id, now_ms)
                state = LikeState.EXPIRED
            sent.append(
                SentLike(
                    like_id=like.like_id,
                    context_id=like.context_id,
                    from_profile_id=like.from_profile_id,
                    is_super=like.is_super,
                    state=state,
                    liked_at=like.created_at,
                    to_profile=ProfileStore.sanitize(target, MINIMAL_FIELDS),
                )
            )
        return LikesSentResponse(likes=sent)

    async def list_matches(self, account_id: str) -> MatchesResponse:
        own = {p.profile_id for p in await self._profiles.list_account_profiles(account_id) if p.is_active}
        views: List[MatchView] = []
        for match in await self._matches.list_active_for(sorted(own)):
            my_profile_id = match.profile_id_a if match.profile_id_a in own else match.profile_id_b
            counterpart_id = match.counterpart_of(my_profile_id)
            stage = await self._anonymity.reveal_stage(match.match_id)
            counterpart = await self._counterpart_view(my_profile_id, counterpart_id, match.match_id, None)
            if counterpart is None:
                continue
            views.append(
                MatchView(
                    match_id=match.match_id,
                    context_id=match.context_id,
                    my_profile_id=my_profile_id,
                    matched_at=match.matched_at,
                    reveal_state=stage,
                    counterpart=counterpart,
                )
            )
        return MatchesResponse(matches=views)

    async def reveal_for(self, account_id: str, match_id: str, *, chat_turns: Optional[int] = None) -> RevealResponse:
        """Current stage of a match as seen by whichever participant the account owns."""
        match, my_profile_id = await self._participant_match(account_id, match_id)
        counterpart_id = match.counterpart_of(my_profile_id)
        stage = await self._anonymity.reveal_stage(match_id, chat_turns=chat_turns)
        visible = await self._anonymity.fields_visible_to(my_profile_id, counterpart_id, match_id)
        counterpart = await self._counterpart_view(my_profile_id, counterpart_id, match_id, visible)
        if counterpart is None:
            raise NotFound("match")
        return RevealResponse(
            match_id=match_id,
            reveal_state=stage,
            visible_fields=sorted(visible, key=lambda field: field.value),
            counterpart=counterpart,
        )

    async def consent_reveal(self, account_id: str, match_id: str) -> RevealResponse:
        _, my_profile_id = await self._participant_match(account_id, match_id)
        await self._anonymity.record_consent(match_id, my_profile_id)
        return await self.reveal_for(account_id, match_id)

    async def unmatch_for(self, account_id: str, match_id: str) -> MatchDocument:
        _, my_profile_id = await self._participant_match(account_id, match_id)
        return await self.unmatch(match_id, my_profile_id)

    async def expire_stale_likes(self) -> int:
        return await self._likes.expire_stale(self._clock())

    async def _resolve_sender(
        self, profile_id: str, context_id: str, account_id: Optional[str]
    ) -> ProfileDocument:
        if account_id is not None:
            sender = await self._profiles.get_owned_profile(account_id, profile_id)
        else:
            sender = (await self._profiles.load_many([profile_id])).get(profile_id)
            if not sender:
                raise NotFound("profile")
        if sender.context_id != context_id:
            raise InvalidContext("the sending profile does not belong to this context")
        if not sender.is_active:
            raise NotFound("profile")
        return sender

    async def _latest_like(
        self, from_profile_id: str, to_profile_id: str, context_id: str, now_ms: int
    ) -> Optional[LikeDocument]:
        latest = await self._likes.latest_for_direction(from_profile_id, to_profile_id, context_id)
        if latest and latest.state is LikeState.LIKED and latest.expires_at <= now_ms:
            await self._likes.expire(latest.like_id, now_ms)
            latest = latest.model_copy(update={"state": LikeState.EXPIRED, "active_key": None})
        return latest

    async def _try_match(
        self,
        like: LikeDocument,
        sender: ProfileDocument,
        receiver: ProfileDocument,
        now_ms: int,
    ) -> LikeResult:
        pending = LikeResult(outcome=LikeOutcome.PENDING, like_id=like.like_id)
        reciprocal = await self._likes.find_active(like.to_profile_id, like.from_profile_id, like.context_id, now_ms)
        if not reciprocal:
            if like.state is LikeState.MATCHED:
                await self._likes.revert_to_liked(like.like_id)
            return pending

        # Either side may already be MATCHED without a match id when resuming
        if like.state is not LikeState.MATCHED and not await self._likes.mark_matched(like.like_id, None, now_ms):
            return pending
        if reciprocal.state is not LikeState.MATCHED and not await self._likes.mark_matched(
            reciprocal.like_id, None, now_ms
        ):
            # The counterpart withdrew first
            await self._likes.revert_to_liked(like.like_id)
            return pending

        low, high = sorted((like.from_profile_id, like.to_profile_id))
        candidate = MatchDocument(
            match_id=new_id("m"),
            profile_id_a=low,
            profile_id_b=high,
            context_id=like.context_id,
            matched_at=now_ms,
            status=MatchStatus.ACTIVE,
            active_pair_key=pair_key(low, high, like.context_id),
            reveal_rank=initial_stage(sender, receiver).rank,
        )
        match, created = await self._matches.create_once(candidate)
        await self._likes.attach_match([like.like_id, reciprocal.like_id], match.match_id)
        if created:
            LOGGER.info("Match %s formed in context %s", match.match_id, like.context_id)
            self._publisher.publish_later(
                MATCH_CREATED,
                {"matchId": match.match_id, "contextId": match.context_id, "profileIds": list(match.participants)},
            )
        return LikeResult(
            outcome=LikeOutcome.MATCHED,
            like_id=like.like_id,
            match_id=match.match_id,
            matched_at=match.matched_at,
        )

    async def _close_match(
        self,
        match_id: str,
        profile_id: str,
        status: MatchStatus,
        account_id: Optional[str],
    ) -> MatchDocument:
        if account_id is not None:
            await self._profiles.get_owned_profile(account_id, profile_id)
        match = await self._matches.get(match_id)
        if not match or profile_id not in match.participants:
            raise NotFound("match")
        now_ms = self._clock()
        closed = await self._matches.close(match_id, status, now_ms)
        if not closed:
            raise NotPermitted("match is no longer active")
        await self._likes.release_pair(match.context_id, match.profile_id_a, match.profile_id_b, now_ms)
        self._publisher.publish_later(
            MATCH_CLOSED,
            {"matchId": match_id, "contextId": match.context_id, "status": status.value},
        )
        return closed

    async def _participant_match(self, account_id: str, match_id: str) -> Tuple[MatchDocument, str]:
        match = await self._matches.get(match_id)
        if not match or match.status is not MatchStatus.ACTIVE:
            raise NotFound("match")
        own = {p.profile_id for p in await self._profiles.list_account_profiles(account_id) if p.is_active}
        mine = [pid for pid in match.participants if pid in own]
        if len(mine) != 1:
            raise NotFound("match")
        return match, mine[0]

    async def _counterpart_view(
        self,
        viewer_profile_id: str,
        counterpart_id: Optional[str],
        match_id: str,
        visible: Optional[frozenset],
    ) -> Optional[PublicProfile]:
        if not counterpart_id:
            return None
        profiles: Dict[str, ProfileDocument] = await self._profiles.load_many([counterpart_id])
        counterpart = profiles.get(counterpart_id)
        if not counterpart:
            return None
        if visible is None:
            visible = await self._anonymity.fields_visible_to(viewer_profile_id, counterpart_id, match_id)
        real_name = None
        if RevealField.REAL_NAME in visible:
            account = await self._accounts.get_by_account_id(counterpart.account_id)
            real_name = account.real_name if account else None
        return ProfileStore.sanitize(counterpart, visible, real_name=real_name)


__all__ = ["LikeMatchingEngine"]
