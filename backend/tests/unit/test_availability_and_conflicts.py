from datetime import datetime, time, timedelta, timezone

import pytest

from tests.helpers import MONDAY, MONDAY_10AM
from tutormarket.core.exceptions import ConflictError, NotAvailableError
from tutormarket.models import BookingStatus, TutorAvailability
from tutormarket.services.availability_matcher import (
    AvailabilityMatcher,
    find_covering_window,
    sunday_first_weekday,
)
from tutormarket.services.conflict_checker import ConflictChecker, intervals_overlap


def _window(day: int, start: time, end: time, active: bool = True) -> TutorAvailability:
    return TutorAvailability(
        tutor_id="t", day_of_week=day, start_time=start, end_time=end, is_active=active
    )


class TestWeekdayMapping:
    def test_sunday_is_zero(self):
        assert sunday_first_weekday(datetime(2024, 3, 3, 12, 0, tzinfo=timezone.utc)) == 0

    def test_monday_is_one(self):
        assert sunday_first_weekday(MONDAY_10AM) == 1

    def test_saturday_is_six(self):
        assert sunday_first_weekday(datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc)) == 6


class TestFindCoveringWindow:
    windows = [_window(MONDAY, time(9, 0), time(17, 0))]

    def test_session_inside_window(self):
        assert find_covering_window(self.windows, MONDAY_10AM, 60) is self.windows[0]

    def test_session_ending_at_window_end(self):
        start = MONDAY_10AM.replace(hour=16)
        assert find_covering_window(self.windows, start, 60) is not None

    def test_session_spilling_past_window_end(self):
        start = MONDAY_10AM.replace(hour=16, minute=30)
        assert find_covering_window(self.windows, start, 60) is None

    def test_session_starting_before_window(self):
        start = MONDAY_10AM.replace(hour=8, minute=30)
        assert find_covering_window(self.windows, start, 60) is None

    def test_wrong_day(self):
        tuesday = MONDAY_10AM + timedelta(days=1)
        assert find_covering_window(self.windows, tuesday, 60) is None

    def test_inactive_window_is_ignored(self):
        windows = [_window(MONDAY, time(9, 0), time(17, 0), active=False)]
        assert find_covering_window(windows, MONDAY_10AM, 60) is None

    def test_session_crossing_midnight_never_fits(self):
        windows = [_window(MONDAY, time(0, 0), time(23, 59, 59))]
        late = MONDAY_10AM.replace(hour=23, minute=30)
        assert find_covering_window(windows, late, 60) is None


class TestIntervalsOverlap:
    def test_back_to_back_sessions_do_not_overlap(self):
        assert not intervals_overlap(MONDAY_10AM, 60, MONDAY_10AM + timedelta(hours=1), 60)

    def test_partial_overlap(self):
        assert intervals_overlap(MONDAY_10AM, 60, MONDAY_10AM + timedelta(minutes=30), 60)

    def test_containment(self):
        assert intervals_overlap(MONDAY_10AM, 90, MONDAY_10AM + timedelta(minutes=30), 30)


class TestAvailabilityMatcher:
    def test_accepts_session_inside_window(self, db, tutor):
        window = AvailabilityMatcher(db).ensure_available(tutor.id, MONDAY_10AM, 60)
        assert window.day_of_week == MONDAY

    def test_rejects_session_outside_window(self, db, tutor):
        with pytest.raises(NotAvailableError) as exc:
            AvailabilityMatcher(db).ensure_available(
                tutor.id, MONDAY_10AM.replace(hour=17), 30
            )
        assert exc.value.code == "TUTOR_NOT_AVAILABLE"
        assert "Monday" in exc.value.message

    def test_tutor_without_windows(self, db, other_tutor):
        with pytest.raises(NotAvailableError) as exc:
            AvailabilityMatcher(db).ensure_available(other_tutor.id, MONDAY_10AM, 60)
        assert exc.value.message == "Tutor has no available time slots"


class TestConflictChecker:
    def test_overlapping_active_booking_conflicts(self, db, tutor, make_booking):
        existing = make_booking(status=BookingStatus.CONFIRMED.value)
        with pytest.raises(ConflictError) as exc:
            ConflictChecker(db).ensure_no_conflict(
                tutor.id, MONDAY_10AM + timedelta(minutes=30), 60
            )
        assert exc.value.details["conflicting_booking_id"] == existing.id
        assert exc.value.status_code == 409

    def test_booking_that_started_earlier_still_conflicts(self, db, tutor, make_booking):
        make_booking(scheduled_at=MONDAY_10AM - timedelta(minutes=60), duration_minutes=90)
        with pytest.raises(ConflictError):
            ConflictChecker(db).ensure_no_conflict(tutor.id, MONDAY_10AM, 30)

    @pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.REFUNDED])
    def test_inactive_bookings_never_block(self, db, tutor, make_booking, status):
        make_booking(status=status.value)
        ConflictChecker(db).ensure_no_conflict(tutor.id, MONDAY_10AM, 60)

    def test_adjacent_booking_does_not_conflict(self, db, tutor, make_booking):
        make_booking()
        ConflictChecker(db).ensure_no_conflict(tutor.id, MONDAY_10AM + timedelta(hours=1), 60)

    def test_excluded_booking_is_ignored(self, db, tutor, make_booking):
        existing = make_booking()
        ConflictChecker(db).ensure_no_conflict(
            tutor.id, MONDAY_10AM + timedelta(minutes=30), 60, exclude_booking_id=existing.id
        )

    def test_other_tutors_bookings_are_irrelevant(self, db, other_tutor, make_booking):
        make_booking()
        ConflictChecker(db).ensure_no_conflict(other_tutor.id, MONDAY_10AM, 60)
