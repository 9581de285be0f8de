# backend/tutormarket/routes/v1/appeals.py
"""
Cancellation appeal routes - API v1

Students appeal an active late-cancellation penalty; admins review.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from ...api.dependencies import get_appeal_service, get_current_user
from ...core.constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from ...core.exceptions import BadRequestError, DomainException
from ...errors import handle_domain_exception
from ...models.appeal import AppealStatus
from ...models.user import User
from ...schemas.appeal import AppealCreate, AppealListResponse, AppealResponse, AppealReview
from ...services.appeal_service import REVIEW_DECISIONS, AppealService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["appeals-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def parse_decision(value: str) -> AppealStatus:
    try:
        decision = AppealStatus(value.strip().upper())
    except ValueError:
        decision = None
    if decision not in REVIEW_DECISIONS:
        raise BadRequestError("Status must be APPROVED or REJECTED", code="INVALID_DECISION")
    return decision


@router.post("", response_model=AppealResponse, status_code=status.HTTP_201_CREATED)
async def submit_appeal(
    appeal_data: AppealCreate = Body(...),
    current_user: User = Depends(get_current_user),
    appeal_service: AppealService = Depends(get_appeal_service),
) -> AppealResponse:
    try:
        appeal = await asyncio.to_thread(
            appeal_service.submit_appeal,
            current_user,
            appeal_data.reason,
            appeal_data.booking_id,
        )
        return AppealResponse.model_validate(appeal)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=AppealListResponse)
async def list_appeals(
    status_filter: Optional[AppealStatus] = Query(None, alias="status"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    appeal_service: AppealService = Depends(get_appeal_service),
) -> AppealListResponse:
    """Admins see every appeal; students see their own."""
    try:
        appeals = await asyncio.to_thread(
            appeal_service.list_appeals, current_user, status_filter, limit, offset
        )
        return AppealListResponse(
            items=[AppealResponse.model_validate(a) for a in appeals], total=len(appeals)
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get(
    "/{appeal_id}",
    response_model=AppealResponse,
    responses={404: {"description": "Appeal not found"}},
)
async def get_appeal(
    appeal_id: str = Path(..., description="Appeal ULID", pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    appeal_service: AppealService = Depends(get_appeal_service),
) -> AppealResponse:
    try:
        appeal = await asyncio.to_thread(appeal_service.get_appeal, appeal_id, current_user)
        return AppealResponse.model_validate(appeal)
    except DomainException as e:
        handle_domain_exception(e)


@router.patch(
    "/{appeal_id}",
    response_model=AppealResponse,
    responses={404: {"description": "Appeal not found"}},
)
async def review_appeal(
    appeal_id: str = Path(..., description="Appeal ULID", pattern=ULID_PATH_PATTERN),
    review: AppealReview = Body(...),
    current_user: User = Depends(get_current_user),
    appeal_service: AppealService = Depends(get_appeal_service),
) -> AppealResponse:
    """Approve (lifts the penalty) or reject a pending appeal. Admin only."""
    try:
        decision = parse_decision(review.status)
        appeal = await asyncio.to_thread(
            appeal_service.review, appeal_id, decision, current_user, review.admin_notes
        )
        return AppealResponse.model_validate(appeal)
    except DomainException as e:
        handle_domain_exception(e)
