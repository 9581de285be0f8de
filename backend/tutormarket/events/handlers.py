"""Event handlers - turn committed booking events into notifications."""
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from ..models.booking import Booking
from ..repositories import RepositoryFactory
from ..services.notification_service import NotificationService

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any], Session, NotificationService], None]


def _load_booking(db: Session, booking_id: str) -> Optional[Booking]:
    return RepositoryFactory.create_booking_repository(db).get_by_id(booking_id)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def handle_booking_created(payload: Dict[str, Any], db: Session, notifier: NotificationService) -> None:
    booking = _load_booking(db, payload["booking_id"])
    if not booking:
        logger.warning("Booking %s not found for request notice", payload["booking_id"])
        return
    notifier.send_booking_requested(booking)


def handle_booking_confirmed(
    payload: Dict[str, Any], db: Session, notifier: NotificationService
) -> None:
    booking = _load_booking(db, payload["booking_id"])
    if not booking:
        logger.warning("Booking %s not found for confirmation", payload["booking_id"])
        return
    notifier.send_booking_confirmation(booking)
    logger.info("Sent booking confirmation for %s", booking.id)


def handle_booking_rescheduled(
    payload: Dict[str, Any], db: Session, notifier: NotificationService
) -> None:
    booking = _load_booking(db, payload["booking_id"])
    if not booking:
        logger.warning("Booking %s not found for reschedule notice", payload["booking_id"])
        return
    notifier.send_booking_rescheduled(booking, _parse_dt(payload.get("previous_scheduled_at")))


def handle_booking_cancelled(
    payload: Dict[str, Any], db: Session, notifier: NotificationService
) -> None:
    booking = _load_booking(db, payload["booking_id"])
    if not booking:
        logger.warning("Booking %s not found for cancellation notice", payload["booking_id"])
        return
    refund_amount = payload.get("refund_amount")
    notifier.send_booking_cancellation(
        booking,
        payload.get("cancelled_by") or "system",
        is_late=bool(payload.get("is_late")),
        refund_amount=Decimal(refund_amount) if refund_amount is not None else None,
        refund_issued=bool(payload.get("refund_issued")),
        penalty_until=_parse_dt(payload.get("penalty_until")),
    )
    logger.info("Sent cancellation notification for %s", booking.id)


def handle_booking_refunded(
    payload: Dict[str, Any], db: Session, notifier: NotificationService
) -> None:
    booking = _load_booking(db, payload["booking_id"])
    if not booking:
        logger.warning("Booking %s not found for refund notice", payload["booking_id"])
        return
    notifier.send_refund_issued(booking, payload["refund_reference"])


# Registry of event type -> handler function
EVENT_HANDLERS: Dict[str, Handler] = {
    "event:BookingCreated": handle_booking_created,
    "event:BookingConfirmed": handle_booking_confirmed,
    "event:BookingRescheduled": handle_booking_rescheduled,
    "event:BookingCancelled": handle_booking_cancelled,
    "event:BookingRefunded": handle_booking_refunded,
}


def process_event(
    event_type: str, payload: Dict[str, Any], db: Session, notifier: NotificationService
) -> bool:
    """
    Process an event.

    Returns True if handled, False if no handler is registered.
    """
    handler = EVENT_HANDLERS.get(event_type)
    if not handler:
        logger.warning("No handler for event type: %s", event_type)
        return False
    handler(payload, db, notifier)
    return True


def build_dispatcher(
    session_factory: sessionmaker, notifier: NotificationService
) -> Callable[[str, Dict[str, Any]], None]:
    """Dispatcher for EventPublisher: each event gets its own short-lived session."""

    def dispatch(event_type: str, payload: Dict[str, Any]) -> None:
        db = session_factory()
        try:
            process_event(event_type, payload, db, notifier)
        finally:
            db.close()

    return dispatch
