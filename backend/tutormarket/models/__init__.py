"""
Database models for the TutorMarket platform.

- User accounts (students, tutors, admins) with the penalty aspect
- Tutor profiles and weekly availability windows
- Bookings and their settlement markers
- Cancellation penalty appeals
"""

from .appeal import AppealStatus, CancellationAppeal
from .booking import INACTIVE_STATUSES, Booking, BookingStatus
from .tutor import TutorAvailability, TutorProfile
from .user import User

__all__ = [
    "AppealStatus",
    "Booking",
    "BookingStatus",
    "CancellationAppeal",
    "INACTIVE_STATUSES",
    "TutorAvailability",
    "TutorProfile",
    "User",
]
