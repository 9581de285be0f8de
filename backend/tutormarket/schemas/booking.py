# backend/tutormarket/schemas/booking.py
"""
Booking request/response schemas.

PATCH /bookings/{id} carries exactly one of ``scheduledAt`` (reschedule)
or ``status`` (status change); the route maps the body to the matching
update request.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, ConfigDict, Field, field_validator

from ..core.constants import MAX_NOTES_LENGTH
from ._strict_base import StrictModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    tutor_id: str = Field(..., validation_alias=AliasChoices("tutorId", "tutor_id"))
    scheduled_at: datetime = Field(
        ..., validation_alias=AliasChoices("scheduledAt", "scheduled_at")
    )
    duration_minutes: int = Field(
        ..., gt=0, validation_alias=AliasChoices("durationMinutes", "duration_minutes", "duration")
    )
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    payment_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("paymentId", "payment_id")
    )
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)

    @field_validator("scheduled_at")
    @classmethod
    def _require_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("scheduledAt must include a timezone offset")
        return value


class BookingUpdate(StrictRequestModel):
    scheduled_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("scheduledAt", "scheduled_at")
    )
    status: Optional[str] = None

    @field_validator("scheduled_at")
    @classmethod
    def _require_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            raise ValueError("scheduledAt must include a timezone offset")
        return value


class CancellationInfo(StrictModel):
    is_late: bool
    penalty_applied: bool
    penalty_until: Optional[datetime] = None
    late_cancellation_count: int = 0


class RefundInfo(StrictModel):
    issued: bool
    already_refunded: bool = False
    refund_reference: Optional[str] = None
    amount: Optional[Decimal] = None
    error: Optional[str] = None

    @classmethod
    def from_reconciliation(cls, reconciliation: Any) -> "RefundInfo":
        return cls(
            issued=reconciliation.issued,
            already_refunded=reconciliation.already_refunded,
            refund_reference=reconciliation.refund_reference,
            amount=reconciliation.amount,
            error=reconciliation.error,
        )


class BookingResponse(StrictModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    student_id: str
    tutor_id: str
    scheduled_at: datetime
    duration_minutes: int
    status: str
    price: Decimal
    notes: Optional[str] = None
    payment_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[str] = None
    is_late_cancellation: Optional[bool] = None
    refund_reference: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refunded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    # Present only on responses to cancellation requests
    cancellation: Optional[CancellationInfo] = None
    refund: Optional[RefundInfo] = None

    @classmethod
    def from_result(cls, result: Any) -> "BookingResponse":
        """Build from a BookingActionResult (booking + optional cancellation/refund)."""
        response = cls.model_validate(result.booking)
        extras: Dict[str, Any] = {}
        if result.cancellation is not None:
            extras["cancellation"] = CancellationInfo(
                is_late=result.cancellation.is_late,
                penalty_applied=result.cancellation.penalty_applied,
                penalty_until=result.cancellation.penalty_until,
                late_cancellation_count=result.cancellation.late_cancellation_count,
            )
        if result.refund is not None:
            extras["refund"] = RefundInfo.from_reconciliation(result.refund)
        return response.model_copy(update=extras) if extras else response


class BookingListResponse(StrictModel):
    items: List[BookingResponse]
    total: int


class RefundRetryResponse(StrictModel):
    booking_id: str
    refund: RefundInfo


class ExpiredRefundSweepResponse(StrictModel):
    processed: int
    succeeded: int
    already_refunded: int
    failed: int
    skipped: int
    errors: List[Dict[str, str]] = Field(default_factory=list)
