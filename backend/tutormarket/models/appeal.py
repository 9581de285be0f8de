# backend/tutormarket/models/appeal.py
"""Cancellation penalty appeals reviewed by admins."""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime


class AppealStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class CancellationAppeal(Base):
    __tablename__ = "cancellation_appeals"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False)
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=True)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=AppealStatus.PENDING.value, index=True)
    admin_notes = Column(Text, nullable=True)
    reviewed_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utc_now, server_default=func.now())

    user = relationship("User", foreign_keys=[user_id])
    booking = relationship("Booking")
    reviewed_by = relationship("User", foreign_keys=[reviewed_by_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')", name="ck_cancellation_appeals_status"
        ),
        Index("ix_cancellation_appeals_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<CancellationAppeal {self.id}: user={self.user_id}, status={self.status}>"
