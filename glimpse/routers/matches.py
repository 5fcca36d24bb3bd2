from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..container import ServiceContainer
from ..dependencies import get_container, require_account
from ..models.match import MatchesResponse, RevealResponse, UnmatchResponse

router = APIRouter(prefix="/matches", tags=["matches"])


@router.get("", response_model=MatchesResponse)
async def list_matches(
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> MatchesResponse:
    return await container.matching.list_matches(account_id)


@router.get("/{match_id}/reveal", response_model=RevealResponse)
async def get_reveal(
    match_id: str,
    chatTurns: Optional[int] = Query(None, ge=0, description="Messages exchanged so far, as counted by chat"),
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> RevealResponse:
    return await container.matching.reveal_for(account_id, match_id.strip(), chat_turns=chatTurns)


@router.post("/{match_id}/consent", response_model=RevealResponse)
async def consent_reveal(
    match_id: str,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> RevealResponse:
    return await container.matching.consent_reveal(account_id, match_id.strip())


@router.delete("/{match_id}", response_model=UnmatchResponse)
async def unmatch(
    match_id: str,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> UnmatchResponse:
    await container.matching.unmatch_for(account_id, match_id.strip())
    return UnmatchResponse()


__all__ = ["router"]
