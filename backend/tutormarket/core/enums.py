# backend/tutormarket/core/enums.py
"""
Core enums for the TutorMarket platform.

Role names are stored on ``users.role`` and drive every authorization
predicate in the booking lifecycle.
"""

from enum import Enum


class RoleName(str, Enum):
    """Roles a marketplace account can hold."""

    STUDENT = "STUDENT"
    TUTOR = "TUTOR"
    ADMIN = "ADMIN"
