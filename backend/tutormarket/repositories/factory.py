# backend/tutormarket/repositories/factory.py
"""
Repository Factory for TutorMarket

Centralizes repository creation so services never construct data access
objects directly and tests can swap implementations in one place.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .appeal_repository import AppealRepository
    from .availability_repository import AvailabilityRepository
    from .booking_repository import BookingRepository
    from .user_repository import UserRepository


class RepositoryFactory:
    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking operations."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for tutor availability reads."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        from .user_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_appeal_repository(db: Session) -> "AppealRepository":
        from .appeal_repository import AppealRepository

        return AppealRepository(db)
