from datetime import timedelta

import pytest

from tests.helpers import MONDAY_10AM
from tutormarket.core.exceptions import InvalidTransitionError, PenalizedError
from tutormarket.models import BookingStatus
from tutormarket.services.cancellation_policy import (
    CancellationPolicy,
    CancellationPolicyEngine,
    is_late_cancellation,
)

MONDAY_8PM = MONDAY_10AM.replace(hour=20)


@pytest.fixture
def policy_engine(db, clock) -> CancellationPolicyEngine:
    return CancellationPolicyEngine(db, clock=clock)


def _cancel(engine: CancellationPolicyEngine, booking, user):
    with engine.transaction():
        return engine.apply(booking, user)


@pytest.fixture
def prior_late_cancellations(make_booking, student, clock):
    """Create ``n`` late cancellations already on the student's record."""

    def _make(n: int, days_ago: int = 1):
        for i in range(n):
            make_booking(
                scheduled_at=MONDAY_10AM - timedelta(days=7 * (i + 1)),
                status=BookingStatus.CANCELLED.value,
                cancelled_by_id=student.id,
                cancelled_at=clock() - timedelta(days=days_ago),
                is_late_cancellation=True,
            )

    return _make


def test_is_late_cancellation_boundary():
    cutoff = timedelta(hours=12)
    assert is_late_cancellation(MONDAY_8PM, MONDAY_8PM - timedelta(hours=11, minutes=59), cutoff)
    assert not is_late_cancellation(MONDAY_8PM, MONDAY_8PM - timedelta(hours=12), cutoff)


class TestCancellationOutcome:
    def test_on_time_student_cancellation(self, policy_engine, make_booking, student, clock):
        booking = make_booking()
        outcome = _cancel(policy_engine, booking, student)

        assert outcome.is_late is False
        assert outcome.penalty_applied is False
        assert booking.status == BookingStatus.CANCELLED.value
        assert booking.cancelled_by_id == student.id
        assert booking.cancelled_at == clock()
        assert booking.is_late_cancellation is False

    def test_late_student_cancellation(self, policy_engine, make_booking, student, clock):
        # Booking at 20:00, cancelled at 10:00 the same day
        booking = make_booking(scheduled_at=MONDAY_8PM)
        clock.set(MONDAY_10AM)

        outcome = _cancel(policy_engine, booking, student)

        assert outcome.is_late is True
        assert outcome.late_cancellation_count == 1
        assert booking.is_late_cancellation is True
        assert student.penalty_until is None

    def test_confirmed_booking_can_be_cancelled(self, policy_engine, make_booking, student):
        booking = make_booking(status=BookingStatus.CONFIRMED.value)
        _cancel(policy_engine, booking, student)
        assert booking.status == BookingStatus.CANCELLED.value

    @pytest.mark.parametrize(
        "status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.REFUNDED]
    )
    def test_only_pending_or_confirmed_can_be_cancelled(
        self, policy_engine, make_booking, student, status
    ):
        booking = make_booking(status=status.value)
        with pytest.raises(InvalidTransitionError):
            _cancel(policy_engine, booking, student)
        assert booking.cancelled_at is None

    def test_system_cancellation_has_no_initiator(self, policy_engine, make_booking):
        booking = make_booking()
        outcome = _cancel(policy_engine, booking, None)
        assert booking.cancelled_by_id is None
        assert outcome.penalty_applied is False


class TestPenaltyEscalation:
    def test_third_late_cancellation_applies_penalty(
        self, policy_engine, make_booking, prior_late_cancellations, student, clock
    ):
        prior_late_cancellations(2)
        booking = make_booking(scheduled_at=MONDAY_8PM)
        clock.set(MONDAY_10AM)

        outcome = _cancel(policy_engine, booking, student)

        assert outcome.penalty_applied is True
        assert outcome.late_cancellation_count == 3
        assert outcome.penalty_until == MONDAY_10AM + timedelta(days=7)
        assert student.penalty_until == booking.cancelled_at + timedelta(days=7)

    def test_second_late_cancellation_does_not_penalize(
        self, policy_engine, make_booking, prior_late_cancellations, student, clock
    ):
        prior_late_cancellations(1)
        booking = make_booking(scheduled_at=MONDAY_8PM)
        clock.set(MONDAY_10AM)

        outcome = _cancel(policy_engine, booking, student)

        assert outcome.is_late is True
        assert outcome.penalty_applied is False
        assert student.penalty_until is None

    def test_penalized_student_cannot_cancel(
        self, policy_engine, make_booking, prior_late_cancellations, student, clock
    ):
        prior_late_cancellations(2)
        clock.set(MONDAY_10AM)
        _cancel(policy_engine, make_booking(scheduled_at=MONDAY_8PM), student)
        penalty_until = student.penalty_until

        # A fourth cancellation, on time, while the penalty runs
        fourth = make_booking(scheduled_at=MONDAY_10AM + timedelta(days=3))
        with pytest.raises(PenalizedError) as exc:
            _cancel(policy_engine, fourth, student)

        assert exc.value.code == "PENALTY_ACTIVE"
        assert fourth.status == BookingStatus.PENDING.value
        assert student.penalty_until == penalty_until

    def test_on_time_cancellation_after_expiry_does_not_extend_penalty(
        self, policy_engine, make_booking, prior_late_cancellations, student, clock
    ):
        prior_late_cancellations(2)
        clock.set(MONDAY_10AM)
        _cancel(policy_engine, make_booking(scheduled_at=MONDAY_8PM), student)
        penalty_until = student.penalty_until

        clock.set(penalty_until + timedelta(hours=1))
        on_time = make_booking(scheduled_at=clock() + timedelta(days=2))
        outcome = _cancel(policy_engine, on_time, student)

        assert outcome.is_late is False
        assert outcome.penalty_applied is False
        assert student.penalty_until == penalty_until

    def test_tutor_cancellations_never_penalize_the_student(
        self, policy_engine, make_booking, prior_late_cancellations, student, tutor_user, clock
    ):
        prior_late_cancellations(2)
        booking = make_booking(scheduled_at=MONDAY_8PM)
        clock.set(MONDAY_10AM)

        outcome = _cancel(policy_engine, booking, tutor_user)

        assert outcome.is_late is True
        assert outcome.penalty_applied is False
        assert booking.cancelled_by_id == tutor_user.id
        assert student.penalty_until is None

    def test_counting_window_ignores_old_late_cancellations(
        self, db, make_booking, prior_late_cancellations, student, clock
    ):
        engine = CancellationPolicyEngine(
            db, policy=CancellationPolicy(counting_window=timedelta(days=30)), clock=clock
        )
        prior_late_cancellations(2, days_ago=60)
        booking = make_booking(scheduled_at=MONDAY_8PM)
        clock.set(MONDAY_10AM)

        outcome = _cancel(engine, booking, student)

        assert outcome.late_cancellation_count == 1
        assert outcome.penalty_applied is False
