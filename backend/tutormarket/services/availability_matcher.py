# backend/tutormarket/services/availability_matcher.py
"""
Availability Matcher for TutorMarket

Checks that a requested session lies entirely inside one of the tutor's
recurring weekly windows. Windows are stored in UTC with day_of_week
0=Sunday, and a session that would cross midnight never fits.
"""

from datetime import datetime, time, timedelta
import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..core.constants import DAYS_OF_WEEK
from ..core.exceptions import NotAvailableError
from ..core.timezone_utils import ensure_utc
from ..models.tutor import TutorAvailability
from ..repositories import RepositoryFactory
from ..repositories.availability_repository import AvailabilityRepository
from .base import BaseService

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def sunday_first_weekday(moment: datetime) -> int:
    """Map a UTC instant to 0=Sunday ... 6=Saturday."""
    return (moment.weekday() + 1) % 7


def _minutes(value: time) -> float:
    return value.hour * 60 + value.minute + value.second / 60


def find_covering_window(
    windows: Iterable[TutorAvailability], scheduled_at: datetime, duration_minutes: int
) -> Optional[TutorAvailability]:
    """Return the first active window containing the whole session, if any."""
    scheduled_at = ensure_utc(scheduled_at)
    day = sunday_first_weekday(scheduled_at)
    start = _minutes(scheduled_at.time())
    end = start + duration_minutes
    if end > MINUTES_PER_DAY:
        return None

    for window in windows:
        if not window.is_active or window.day_of_week != day:
            continue
        if _minutes(window.start_time) <= start and end <= _minutes(window.end_time):
            return window
    return None


class AvailabilityMatcher(BaseService):
    def __init__(self, db: Session, repository: Optional[AvailabilityRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_availability_repository(db)

    @BaseService.measure_operation("ensure_available")
    def ensure_available(
        self, tutor_id: str, scheduled_at: datetime, duration_minutes: int
    ) -> TutorAvailability:
        """
        Raise NotAvailableError unless the session fits an active window.

        Runs inside the caller's transaction after the tutor row is locked.
        """
        windows = self.repository.get_active_windows(tutor_id)
        if not windows:
            raise NotAvailableError("Tutor has no available time slots", tutor_id=tutor_id)

        window = find_covering_window(windows, scheduled_at, duration_minutes)
        if window is None:
            scheduled_at = ensure_utc(scheduled_at)
            ends_at = scheduled_at + timedelta(minutes=duration_minutes)
            day_name = DAYS_OF_WEEK[sunday_first_weekday(scheduled_at)]
            raise NotAvailableError(
                f"Tutor is not available on {day_name} "
                f"{scheduled_at:%H:%M}-{ends_at:%H:%M} UTC",
                tutor_id=tutor_id,
                day_of_week=sunday_first_weekday(scheduled_at),
            )
        return window
