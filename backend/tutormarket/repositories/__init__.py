"""Repository layer for TutorMarket data access."""

from .appeal_repository import AppealRepository
from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .user_repository import UserRepository

__all__ = [
    "AppealRepository",
    "AvailabilityRepository",
    "BaseRepository",
    "BookingRepository",
    "RepositoryFactory",
    "UserRepository",
]
