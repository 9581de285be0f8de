# backend/tutormarket/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected. Tests replace the
gateway and publisher through ``app.dependency_overrides``.
"""

from functools import lru_cache
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...database import SessionLocal
from ...events import EventPublisher
from ...events.handlers import build_dispatcher
from ...services.appeal_service import AppealService
from ...services.booking_service import BookingService
from ...services.notification_service import NotificationService, build_email_client
from ...services.payment_gateway import PaymentGateway, StripePaymentGateway
from ...services.refund_orchestrator import RefundOrchestrator
from .database import get_db

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    """Get singleton payment gateway instance."""
    return StripePaymentGateway()


@lru_cache(maxsize=1)
def get_notification_service() -> NotificationService:
    return NotificationService(build_email_client())


@lru_cache(maxsize=1)
def get_event_publisher() -> EventPublisher:
    """Get the process-wide event publisher; handlers open their own sessions."""
    return EventPublisher(build_dispatcher(SessionLocal, get_notification_service()))


def get_refund_orchestrator(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> RefundOrchestrator:
    return RefundOrchestrator(db, gateway, event_publisher=publisher)


def get_booking_service(
    db: Session = Depends(get_db),
    refund_orchestrator: RefundOrchestrator = Depends(get_refund_orchestrator),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> BookingService:
    """
    Get booking service instance.

    Args:
        db: Database session
        refund_orchestrator: Refund reconciliation bound to the same session
        publisher: Post-commit event publisher

    Returns:
        BookingService instance
    """
    return BookingService(db, refund_orchestrator, event_publisher=publisher)


def get_appeal_service(db: Session = Depends(get_db)) -> AppealService:
    return AppealService(db)
