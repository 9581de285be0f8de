# backend/tutormarket/schemas/__init__.py
"""Pydantic request and response models for the public API."""

from .appeal import AppealCreate, AppealListResponse, AppealResponse, AppealReview
from .booking import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingUpdate,
    CancellationInfo,
    ExpiredRefundSweepResponse,
    RefundInfo,
    RefundRetryResponse,
)
from .user import PenaltyStatusResponse

__all__ = [
    "AppealCreate",
    "AppealListResponse",
    "AppealResponse",
    "AppealReview",
    "BookingCreate",
    "BookingListResponse",
    "BookingResponse",
    "BookingUpdate",
    "CancellationInfo",
    "ExpiredRefundSweepResponse",
    "PenaltyStatusResponse",
    "RefundInfo",
    "RefundRetryResponse",
]
