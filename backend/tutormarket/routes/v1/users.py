# backend/tutormarket/routes/v1/users.py
import asyncio

from fastapi import APIRouter, Depends

from ...api.dependencies import get_appeal_service, get_current_user
from ...models.user import User
from ...schemas.user import PenaltyStatusResponse
from ...services.appeal_service import AppealService

router = APIRouter(tags=["users-v1"])


@router.get("/me/penalty-status", response_model=PenaltyStatusResponse)
async def get_penalty_status(
    current_user: User = Depends(get_current_user),
    appeal_service: AppealService = Depends(get_appeal_service),
) -> PenaltyStatusResponse:
    """Whether the caller is currently blocked by a late-cancellation penalty."""
    penalty = await asyncio.to_thread(appeal_service.penalty_status, current_user)
    return PenaltyStatusResponse(
        penalty_until=penalty.penalty_until, is_penalized=penalty.is_penalized
    )
