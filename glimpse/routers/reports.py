from fastapi import APIRouter, Depends, status

from ..container import ServiceContainer
from ..dependencies import get_container, require_account
from ..models.report import ReportRequest, ReportResponse

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def create_report(
    payload: ReportRequest,
    account_id: str = Depends(require_account),
    container: ServiceContainer = Depends(get_container),
) -> ReportResponse:
    report = await container.matching.report_mismatch(
        payload.match_id,
        payload.profile_id,
        payload.reason,
        payload.details,
        account_id=account_id,
    )
    return ReportResponse(report_id=report.report_id, status=report.status)


__all__ = ["router"]
