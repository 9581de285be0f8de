# backend/tutormarket/models/tutor.py
"""
Tutor profile and weekly availability.

``TutorProfile`` rows are also the lock target that serializes booking
writes for a single tutor (see BookingRepository.lock_tutor).
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime


class TutorProfile(Base):
    __tablename__ = "tutor_profiles"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, unique=True)
    bio = Column(String(1000), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utc_now, server_default=func.now())

    user = relationship("User", back_populates="tutor_profile")
    availability = relationship(
        "TutorAvailability", back_populates="tutor", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<TutorProfile {self.id}: user={self.user_id}>"


class TutorAvailability(Base):
    """
    A recurring weekly window in UTC.

    ``day_of_week`` runs 0=Sunday through 6=Saturday. A window never
    crosses midnight.
    """

    __tablename__ = "tutor_availability"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), ForeignKey("tutor_profiles.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    tutor = relationship("TutorProfile", back_populates="availability")

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_availability_day"),
        CheckConstraint("start_time < end_time", name="ck_availability_time_order"),
        Index("ix_tutor_availability_tutor_day", "tutor_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return (
            f"<TutorAvailability {self.tutor_id} day={self.day_of_week} "
            f"{self.start_time}-{self.end_time}>"
        )
