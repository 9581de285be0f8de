# backend/tutormarket/models/booking.py
"""
Booking model for the TutorMarket platform.

A booking is one paid session between a student and a tutor occupying
the half-open interval ``[scheduled_at, scheduled_at + duration)``.

Lifecycle:
    PENDING -> CONFIRMED -> COMPLETED
    PENDING | CONFIRMED -> CANCELLED -> REFUNDED

Cancellation fields (``cancelled_at``, ``cancelled_by_id``,
``is_late_cancellation``) are written exactly once, on the transition
into CANCELLED. Refund markers record the single gateway refund issued
for the booking.
"""

from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "PENDING"  # Awaiting tutor confirmation
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"  # Only reachable from CANCELLED via refund settlement


# Statuses that no longer hold a tutor's time
INACTIVE_STATUSES = (BookingStatus.CANCELLED.value, BookingStatus.REFUNDED.value)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    student_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    tutor_id = Column(String(26), ForeignKey("tutor_profiles.id"), nullable=False)

    scheduled_at = Column(UTCDateTime(), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)

    # Gateway reference for the captured payment (checkout session or payment intent)
    payment_id = Column(String(255), nullable=True)

    # Cancellation tracking
    cancelled_at = Column(UTCDateTime(), nullable=True)
    cancelled_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    is_late_cancellation = Column(Boolean, nullable=True)

    # Refund settlement markers
    refund_reference = Column(String(255), nullable=True, unique=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refunded_at = Column(UTCDateTime(), nullable=True)
    refund_claimed_at = Column(UTCDateTime(), nullable=True)
    refund_failure_reason = Column(Text, nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now, server_default=func.now())
    updated_at = Column(UTCDateTime(), nullable=True, onupdate=utc_now)

    student = relationship("User", foreign_keys=[student_id])
    tutor = relationship("TutorProfile", foreign_keys=[tutor_id])
    cancelled_by = relationship("User", foreign_keys=[cancelled_by_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED', 'REFUNDED')",
            name="ck_bookings_status",
        ),
        CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        Index("ix_bookings_tutor_schedule", "tutor_id", "scheduled_at"),
        Index("ix_bookings_late_cancellations", "cancelled_by_id", "is_late_cancellation"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.PENDING.value

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: student={self.student_id}, tutor={self.tutor_id}, "
            f"at={self.scheduled_at}, {self.duration_minutes}min, status={self.status}>"
        )

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_paid(self) -> bool:
        return bool(self.payment_id)

    @property
    def is_refunded(self) -> bool:
        return self.status == BookingStatus.REFUNDED.value or bool(self.refund_reference)

    def mark_cancelled(self, *, cancelled_by_id: Optional[str], at: datetime, is_late: bool) -> None:
        """Record the one-time transition into CANCELLED."""
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = at
        self.cancelled_by_id = cancelled_by_id
        self.is_late_cancellation = is_late
        logger.info(f"Booking {self.id} cancelled by {cancelled_by_id or 'system'} (late={is_late})")
