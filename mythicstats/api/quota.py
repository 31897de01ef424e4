"""
Quota status endpoint.
"""

from fastapi import APIRouter

from mythicstats.api.deps import SessionDep, require_user
from mythicstats.models.failure import ApiResponse, create_success
from mythicstats.services.quota_ledger import QuotaLedger, QuotaStatus

router = APIRouter(prefix="/users/{user_id}/quota", tags=["quota"])


@router.get("", response_model=ApiResponse[QuotaStatus])
async def get_quota_status(user_id: int, session: SessionDep) -> ApiResponse[QuotaStatus]:
    """Current pricing API budget for a user, with the next reset time."""
    user = await require_user(session, user_id)
    return create_success(QuotaLedger(session, user).status())
