# backend/tutormarket/services/conflict_checker.py
"""
Conflict Checker Service for TutorMarket

Detects overlap between a candidate session and the tutor's bookings that
still hold time (anything not CANCELLED or REFUNDED). Intervals are
half-open: a session ending at 11:00 does not collide with one starting
at 11:00.
"""

from datetime import datetime, timedelta
import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import ConflictError
from ..core.timezone_utils import ensure_utc
from ..models.booking import Booking
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from .base import BaseService

logger = logging.getLogger(__name__)

# No session is longer than a day, so earlier starts cannot reach the candidate
LOOKBACK = timedelta(days=1)


def intervals_overlap(
    a_start: datetime, a_minutes: int, b_start: datetime, b_minutes: int
) -> bool:
    """``[a, a+d)`` and ``[b, b+d')`` overlap iff a < b+d' and b < a+d."""
    a_start = ensure_utc(a_start)
    b_start = ensure_utc(b_start)
    return a_start < b_start + timedelta(minutes=b_minutes) and b_start < a_start + timedelta(
        minutes=a_minutes
    )


def find_conflict(
    bookings: Iterable[Booking],
    scheduled_at: datetime,
    duration_minutes: int,
    exclude_booking_id: Optional[str] = None,
) -> Optional[Booking]:
    for booking in bookings:
        if exclude_booking_id and booking.id == exclude_booking_id:
            continue
        if intervals_overlap(
            scheduled_at, duration_minutes, booking.scheduled_at, booking.duration_minutes
        ):
            return booking
    return None


class ConflictChecker(BaseService):
    """Centralizes booking overlap detection for create and reschedule."""

    def __init__(self, db: Session, repository: Optional[BookingRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("check_booking_conflicts")
    def ensure_no_conflict(
        self,
        tutor_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        """Raise ConflictError naming the first colliding booking."""
        scheduled_at = ensure_utc(scheduled_at)
        candidates = self.repository.get_active_bookings_for_tutor(
            tutor_id,
            starts_from=scheduled_at - LOOKBACK,
            starts_before=scheduled_at + timedelta(minutes=duration_minutes),
            exclude_booking_id=exclude_booking_id,
        )
        clash = find_conflict(candidates, scheduled_at, duration_minutes, exclude_booking_id)
        if clash is not None:
            self.logger.info(
                "Booking conflict for tutor %s at %s with booking %s",
                tutor_id,
                scheduled_at.isoformat(),
                clash.id,
            )
            raise ConflictError(
                conflicting_booking_id=clash.id,
                conflicting_start=ensure_utc(clash.scheduled_at),
            )
