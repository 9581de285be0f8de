# backend/tutormarket/api/dependencies/__init__.py
"""
FastAPI dependencies, grouped by concern.
"""

from .auth import get_current_user, verify_cron_secret
from .database import get_db
from .services import (
    get_appeal_service,
    get_booking_service,
    get_event_publisher,
    get_payment_gateway,
    get_refund_orchestrator,
)

__all__ = [
    "get_appeal_service",
    "get_booking_service",
    "get_current_user",
    "get_db",
    "get_event_publisher",
    "get_payment_gateway",
    "get_refund_orchestrator",
    "verify_cron_secret",
]
