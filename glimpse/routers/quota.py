from fastapi import APIRouter, Depends

from ..container import ServiceContainer
from ..dependencies import get_container, require_account
from ..models.quota import QuotaUsageResponse

router = APIRouter(prefix="/quota", tags=["quota"])


@router.get("", response_model=QuotaUsageResponse)
async def get_quota_usage(
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> QuotaUsageResponse:
    return await container.quota.usage(account_id)


__all__ = ["router"]
