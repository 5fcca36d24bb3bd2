from fastapi import APIRouter, Depends, status

from ..container import ServiceContainer
from ..dependencies import get_container, require_account
from ..models.likes import (
    LikeCancelResponse,
    LikeRequest,
    LikeResponse,
    LikesReceivedResponse,
    LikesSentResponse,
    MatchSummary,
)

router = APIRouter(prefix="/likes", tags=["likes"])


@router.post("", response_model=LikeResponse, status_code=status.HTTP_201_CREATED)
async def create_like(
    payload: LikeRequest,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> LikeResponse:
    result = await container.matching.send_like(
        payload.from_profile_id,
        payload.to_profile_id,
        payload.context_id,
        payload.is_super,
        account_id=account_id,
    )
    match = None
    if result.matched and result.match_id:
        match = MatchSummary(match_id=result.match_id, matched_at=result.matched_at or container.clock())
    return LikeResponse(status=result.outcome.value, like_id=result.like_id, match=match)


@router.delete("/{like_id}", response_model=LikeCancelResponse)
async def cancel_like(
    like_id: str,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> LikeCancelResponse:
    like = await container.matching.cancel_like_for(account_id, like_id.strip())
    return LikeCancelResponse(state=like.state)


@router.get("/received", response_model=LikesReceivedResponse)
async def list_likes_received(
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> LikesReceivedResponse:
    return await container.matching.list_received_likes(account_id)


@router.get("/sent", response_model=LikesSentResponse)
async def list_likes_sent(
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> LikesSentResponse:
    return await container.matching.list_sent_likes(account_id)


__all__ = ["router"]
