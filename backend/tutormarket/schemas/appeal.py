# backend/tutormarket/schemas/appeal.py
"""Cancellation appeal schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, ConfigDict, Field

from ..core.constants import MAX_APPEAL_REASON_LENGTH
from ._strict_base import StrictModel, StrictRequestModel


class AppealCreate(StrictRequestModel):
    # Length bounds are enforced by the service so the error carries its code
    reason: str = Field(..., max_length=MAX_APPEAL_REASON_LENGTH * 2)
    booking_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("bookingId", "booking_id")
    )


class AppealReview(StrictRequestModel):
    status: str
    admin_notes: Optional[str] = Field(
        default=None,
        max_length=2000,
        validation_alias=AliasChoices("adminNotes", "admin_notes"),
    )


class AppealResponse(StrictModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    user_id: str
    booking_id: Optional[str] = None
    reason: str
    status: str
    admin_notes: Optional[str] = None
    reviewed_by_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AppealListResponse(StrictModel):
    items: List[AppealResponse]
    total: int
