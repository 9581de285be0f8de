# backend/tutormarket/models/user.py
"""
User model.

A single account table for students, tutors and admins. Students carry
the penalty aspect: ``penalty_until`` blocks cancellations (and new
bookings) while it lies in the future.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import RoleName
from ..core.timezone_utils import ensure_utc, utc_now
from ..database import Base
from .types import UTCDateTime


class User(Base):
    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False, default="")
    role = Column(String(20), nullable=False, default=RoleName.STUDENT.value, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Penalty aspect (students); expiry is evaluated lazily against wall-clock time
    penalty_until = Column(UTCDateTime(), nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now, server_default=func.now())

    tutor_profile = relationship("TutorProfile", back_populates="user", uselist=False)

    __table_args__ = (
        CheckConstraint("role IN ('STUDENT', 'TUTOR', 'ADMIN')", name="ck_users_role"),
    )

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email} ({self.role})>"

    @property
    def is_student(self) -> bool:
        return self.role == RoleName.STUDENT.value

    @property
    def is_tutor(self) -> bool:
        return self.role == RoleName.TUTOR.value

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN.value

    def is_penalized(self, now: Optional[datetime] = None) -> bool:
        """True while ``penalty_until`` is still in the future."""
        if self.penalty_until is None:
            return False
        return ensure_utc(now or utc_now()) < ensure_utc(self.penalty_until)
