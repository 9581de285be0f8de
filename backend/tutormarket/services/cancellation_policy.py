# backend/tutormarket/services/cancellation_policy.py
"""
Cancellation Policy Engine for TutorMarket

Applies the cancellation rules to a booking that the caller has already
row-locked, inside the caller's transaction:

1. Only PENDING or CONFIRMED bookings can be cancelled.
2. A student under an active penalty cannot cancel.
3. Cancelling with less than the cutoff (12h) of notice is a late cancellation.
4. The cancellation fields are written once.
5. A student whose late cancellations exceed the threshold is penalized
   for a fixed period, in the same transaction as the cancellation.

The student's user row is locked before the penalty is read, so two
concurrent cancellations by one student cannot both slip under the
threshold.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import Settings, settings
from ..core.exceptions import InvalidTransitionError, NotFoundError, PenalizedError
from ..core.timezone_utils import Clock, ensure_utc
from ..models.booking import Booking, BookingStatus
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from ..repositories.user_repository import UserRepository
from .base import BaseService
from .status_transitions import CANCELLABLE_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CancellationPolicy:
    late_cutoff: timedelta = timedelta(hours=12)
    late_threshold: int = 2
    counting_window: Optional[timedelta] = None  # None counts all-time
    penalty_duration: timedelta = timedelta(days=7)

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "CancellationPolicy":
        window_days = config.late_cancellation_window_days
        return cls(
            late_cutoff=timedelta(hours=config.late_cancellation_cutoff_hours),
            late_threshold=config.late_cancellation_threshold,
            counting_window=timedelta(days=window_days) if window_days else None,
            penalty_duration=timedelta(days=config.penalty_duration_days),
        )


@dataclass(frozen=True)
class CancellationOutcome:
    is_late: bool
    penalty_applied: bool = False
    penalty_until: Optional[datetime] = None
    late_cancellation_count: int = 0


def is_late_cancellation(scheduled_at: datetime, now: datetime, cutoff: timedelta) -> bool:
    return ensure_utc(scheduled_at) - ensure_utc(now) < cutoff


def ensure_not_penalized(user: User, now: datetime) -> None:
    """Raise PenalizedError while the user's penalty is still running."""
    if user.is_penalized(now):
        raise PenalizedError(ensure_utc(user.penalty_until))


class CancellationPolicyEngine(BaseService):
    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        user_repository: Optional[UserRepository] = None,
        policy: Optional[CancellationPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(
            db
        )
        self.user_repository = user_repository or RepositoryFactory.create_user_repository(db)
        self.policy = policy or CancellationPolicy.from_settings()

    @BaseService.measure_operation("apply_cancellation")
    def apply(
        self, booking: Booking, initiator: Optional[User], now: Optional[datetime] = None
    ) -> CancellationOutcome:
        """
        Cancel ``booking`` on behalf of ``initiator`` (None for system sweeps).

        Must run inside an open transaction with ``booking`` locked.
        """
        now = ensure_utc(now or self.now())

        current = BookingStatus(booking.status)
        if current not in CANCELLABLE_STATUSES:
            raise InvalidTransitionError(current.value, BookingStatus.CANCELLED.value)

        student: Optional[User] = None
        if initiator is not None and initiator.is_student and initiator.id == booking.student_id:
            student = self.user_repository.lock_user(initiator.id)
            if student is None:
                raise NotFoundError("User not found")
            ensure_not_penalized(student, now)

        is_late = is_late_cancellation(booking.scheduled_at, now, self.policy.late_cutoff)
        booking.mark_cancelled(
            cancelled_by_id=initiator.id if initiator is not None else None,
            at=now,
            is_late=is_late,
        )
        self.booking_repository.flush()

        if student is None or not is_late:
            return CancellationOutcome(is_late=is_late)

        since = now - self.policy.counting_window if self.policy.counting_window else None
        late_count = self.booking_repository.count_late_cancellations(student.id, since=since)
        if late_count <= self.policy.late_threshold:
            return CancellationOutcome(is_late=True, late_cancellation_count=late_count)

        penalty_until = now + self.policy.penalty_duration
        student.penalty_until = penalty_until
        self.user_repository.flush()
        prometheus_metrics.inc_penalty_applied()
        self.logger.warning(
            "Penalty applied to student %s until %s after %d late cancellations",
            student.id,
            penalty_until.isoformat(),
            late_count,
        )
        return CancellationOutcome(
            is_late=True,
            penalty_applied=True,
            penalty_until=penalty_until,
            late_cancellation_count=late_count,
        )
