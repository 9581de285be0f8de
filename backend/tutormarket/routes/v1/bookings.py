# backend/tutormarket/routes/v1/bookings.py
"""
Booking routes - API v1

Mounted under /api/v1/bookings. Services are synchronous; every call runs
in a worker thread via ``asyncio.to_thread`` so the event loop stays free.

Endpoints:
    GET    /                      List the caller's bookings
    POST   /                      Create a booking (students)
    GET    /{booking_id}          Booking details
    PATCH  /{booking_id}          Reschedule ({scheduledAt}) or change status ({status})
    DELETE /{booking_id}          Cancel
    POST   /{booking_id}/refund   Retry refund reconciliation (admins)
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from ...api.dependencies import get_booking_service, get_current_user
from ...core.constants import DEFAULT_QUERY_LIMIT, ERROR_NO_VALID_UPDATE, MAX_QUERY_LIMIT
from ...core.exceptions import BadRequestError, DomainException
from ...errors import handle_domain_exception
from ...models.booking import BookingStatus
from ...models.user import User
from ...schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingUpdate,
    RefundInfo,
    RefundRetryResponse,
)
from ...services.booking_service import BookingService
from ...services.status_transitions import (
    BookingUpdateRequest,
    RescheduleRequest,
    StatusChangeRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def to_update_request(update: BookingUpdate) -> BookingUpdateRequest:
    """Map a PATCH body to exactly one update kind."""
    has_time = update.scheduled_at is not None
    has_status = update.status is not None
    if has_time and has_status:
        raise BadRequestError(
            "Provide either scheduledAt or status, not both", code="AMBIGUOUS_UPDATE"
        )
    if has_time:
        return RescheduleRequest(scheduled_at=update.scheduled_at)
    if has_status:
        try:
            return StatusChangeRequest(status=BookingStatus(update.status.upper()))
        except ValueError:
            raise BadRequestError(
                f"Invalid booking status: {update.status}", code="INVALID_STATUS"
            ) from None
    raise BadRequestError(ERROR_NO_VALID_UPDATE, code="NO_UPDATE_FIELDS")


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    """Students see their bookings, tutors the bookings made with them, admins all."""
    try:
        bookings = await asyncio.to_thread(
            booking_service.list_bookings_for_user,
            current_user,
            status_filter,
            limit,
            offset,
        )
        return BookingListResponse(
            items=[BookingResponse.model_validate(b) for b in bookings], total=len(bookings)
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Tutor not found"},
        409: {"description": "Time slot conflicts with another booking"},
    },
)
async def create_booking(
    booking_data: BookingCreate = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Request a session with a tutor. The booking starts PENDING."""
    try:
        booking = await asyncio.to_thread(
            booking_service.create_booking,
            current_user,
            booking_data.tutor_id,
            booking_data.scheduled_at,
            booking_data.duration_minutes,
            booking_data.price,
            booking_data.payment_id,
            booking_data.notes,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}},
)
async def get_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.get_booking_for_user, booking_id, current_user
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={
        404: {"description": "Booking not found"},
        409: {"description": "New time conflicts with another booking"},
    },
)
async def update_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    update_data: BookingUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Reschedule (``{"scheduledAt": ...}``) or change status (``{"status": ...}``).

    Exactly one of the two keys must be present. A move to CANCELLED runs
    the full cancellation flow, including the refund for tutor/admin
    cancellations.
    """
    try:
        request = to_update_request(update_data)
        result = await asyncio.to_thread(
            booking_service.update_booking, booking_id, current_user, request
        )
        return BookingResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}},
)
async def cancel_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Cancel a booking. Late student cancellations count toward a penalty."""
    try:
        result = await asyncio.to_thread(
            booking_service.cancel_booking, booking_id, current_user
        )
        return BookingResponse.from_result(result)
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{booking_id}/refund",
    response_model=RefundRetryResponse,
    responses={404: {"description": "Booking not found"}},
)
async def retry_refund(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> RefundRetryResponse:
    """Re-run refund reconciliation for a cancelled booking (admin only)."""
    try:
        result = await asyncio.to_thread(
            booking_service.retry_refund, booking_id, current_user
        )
        return RefundRetryResponse(
            booking_id=booking_id, refund=RefundInfo.from_reconciliation(result)
        )
    except DomainException as e:
        handle_domain_exception(e)
