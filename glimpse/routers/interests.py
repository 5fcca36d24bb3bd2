from fastapi import APIRouter, Depends, status

from ..container import ServiceContainer
from ..dependencies import get_container, require_account
from ..models.interest import (
    InterestDeleteResponse,
    InterestListResponse,
    InterestRegisterRequest,
    InterestRegistrationView,
)
from ..services.interests import registration_view

router = APIRouter(prefix="/interests", tags=["interests"])


@router.get("", response_model=InterestListResponse)
async def list_interests(
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> InterestListResponse:
    return await container.interests.list_active(account_id)


@router.post("", response_model=InterestRegistrationView, status_code=status.HTTP_201_CREATED)
async def register_interest(
    payload: InterestRegisterRequest,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> InterestRegistrationView:
    registration = await container.interests.register(account_id, payload.type, payload.value)
    return registration_view(registration)


@router.delete("/{registration_id}", response_model=InterestDeleteResponse)
async def delete_interest(
    registration_id: str,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> InterestDeleteResponse:
    return await container.interests.delete(account_id, registration_id.strip())


__all__ = ["router"]
