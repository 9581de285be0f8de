from datetime import datetime, timedelta, timezone

import pytest

from tutormarket.core.config import Settings
from tutormarket.core.exceptions import InvalidTimeError
from tutormarket.services.time_window_validator import (
    RULE_DURATION,
    RULE_GRANULARITY,
    RULE_MAX_ADVANCE,
    RULE_MIN_LEAD_TIME,
    RULE_RESCHEDULE_NOTICE,
    TimeWindowPolicy,
    validate_booking_window,
    validate_duration,
    validate_reschedule_notice,
    validate_start,
)

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
POLICY = TimeWindowPolicy()


def _rule(exc_info) -> str:
    return exc_info.value.code


class TestLeadTime:
    def test_start_exactly_at_lead_time_is_rejected(self):
        with pytest.raises(InvalidTimeError) as exc:
            validate_start(NOW + timedelta(hours=24), NOW, POLICY)
        assert _rule(exc) == RULE_MIN_LEAD_TIME

    def test_start_inside_lead_time_is_rejected(self):
        with pytest.raises(InvalidTimeError) as exc:
            validate_start(NOW + timedelta(hours=3), NOW, POLICY)
        assert _rule(exc) == RULE_MIN_LEAD_TIME
        assert "earliest_allowed" in exc.value.details

    def test_first_aligned_slot_after_lead_time_is_accepted(self):
        validate_start(NOW + timedelta(hours=24, minutes=30), NOW, POLICY)

    def test_past_start_is_rejected(self):
        with pytest.raises(InvalidTimeError) as exc:
            validate_start(NOW - timedelta(days=1), NOW, POLICY)
        assert _rule(exc) == RULE_MIN_LEAD_TIME


class TestAdvanceHorizon:
    def test_start_at_horizon_is_accepted(self):
        validate_start(NOW + timedelta(days=90), NOW, POLICY)

    def test_start_beyond_horizon_is_rejected(self):
        with pytest.raises(InvalidTimeError) as exc:
            validate_start(NOW + timedelta(days=90, minutes=30), NOW, POLICY)
        assert _rule(exc) == RULE_MAX_ADVANCE


class TestGranularity:
    @pytest.mark.parametrize(
        "start",
        [
            datetime(2024, 3, 4, 10, 15, tzinfo=timezone.utc),
            datetime(2024, 3, 4, 10, 0, 30, tzinfo=timezone.utc),
            datetime(2024, 3, 4, 10, 0, 0, 5, tzinfo=timezone.utc),
        ],
    )
    def test_misaligned_start_is_rejected(self, start):
        with pytest.raises(InvalidTimeError) as exc:
            validate_start(start, NOW, POLICY)
        assert _rule(exc) == RULE_GRANULARITY

    def test_alignment_is_checked_in_utc(self):
        # 15:30 at +05:00 is 10:30 UTC
        start = datetime(2024, 3, 4, 15, 30, tzinfo=timezone(timedelta(hours=5)))
        validate_start(start, NOW, POLICY)

    def test_custom_granularity(self):
        policy = TimeWindowPolicy(granularity_minutes=15)
        validate_start(datetime(2024, 3, 4, 10, 15, tzinfo=timezone.utc), NOW, policy)


class TestDuration:
    @pytest.mark.parametrize("duration", [30, 60, 90])
    def test_allowed_durations(self, duration):
        validate_duration(duration, POLICY)

    @pytest.mark.parametrize("duration", [0, 45, 120])
    def test_other_durations_are_rejected(self, duration):
        with pytest.raises(InvalidTimeError) as exc:
            validate_duration(duration, POLICY)
        assert _rule(exc) == RULE_DURATION
        assert exc.value.details["allowed"] == [30, 60, 90]

    def test_window_checks_start_before_duration(self):
        with pytest.raises(InvalidTimeError) as exc:
            validate_booking_window(NOW + timedelta(hours=1), 45, NOW, POLICY)
        assert _rule(exc) == RULE_MIN_LEAD_TIME


class TestRescheduleNotice:
    def test_reschedule_with_enough_notice(self):
        validate_reschedule_notice(NOW + timedelta(hours=4), NOW, POLICY)

    def test_reschedule_too_close_to_start(self):
        with pytest.raises(InvalidTimeError) as exc:
            validate_reschedule_notice(NOW + timedelta(hours=3, minutes=59), NOW, POLICY)
        assert _rule(exc) == RULE_RESCHEDULE_NOTICE


def test_policy_from_settings():
    config = Settings(
        booking_min_lead_hours=48,
        booking_max_advance_days=30,
        booking_slot_granularity_minutes=15,
        booking_allowed_durations=[90, 30, 30],
        reschedule_min_notice_hours=2,
    )
    policy = TimeWindowPolicy.from_settings(config)
    assert policy.min_lead_time == timedelta(hours=48)
    assert policy.max_advance == timedelta(days=30)
    assert policy.granularity_minutes == 15
    assert policy.allowed_durations == (30, 90)
    assert policy.reschedule_min_notice == timedelta(hours=2)
