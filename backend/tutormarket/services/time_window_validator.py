# backend/tutormarket/services/time_window_validator.py
"""
Time-window rules for a candidate booking start.

Pure functions: no database access, no side effects. Each failure raises
``InvalidTimeError`` whose ``code`` names the rule that was broken.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Tuple

from ..core.config import Settings, settings
from ..core.exceptions import InvalidTimeError
from ..core.timezone_utils import ensure_utc

RULE_MIN_LEAD_TIME = "MIN_LEAD_TIME"
RULE_MAX_ADVANCE = "MAX_ADVANCE"
RULE_GRANULARITY = "GRANULARITY"
RULE_DURATION = "DURATION"
RULE_RESCHEDULE_NOTICE = "RESCHEDULE_NOTICE"


@dataclass(frozen=True)
class TimeWindowPolicy:
    min_lead_time: timedelta = timedelta(hours=24)
    max_advance: timedelta = timedelta(days=90)
    granularity_minutes: int = 30
    allowed_durations: Tuple[int, ...] = field(default=(30, 60, 90))
    reschedule_min_notice: timedelta = timedelta(hours=4)

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "TimeWindowPolicy":
        return cls(
            min_lead_time=timedelta(hours=config.booking_min_lead_hours),
            max_advance=timedelta(days=config.booking_max_advance_days),
            granularity_minutes=config.booking_slot_granularity_minutes,
            allowed_durations=tuple(config.booking_allowed_durations),
            reschedule_min_notice=timedelta(hours=config.reschedule_min_notice_hours),
        )


def validate_duration(duration_minutes: int, policy: TimeWindowPolicy) -> None:
    if duration_minutes not in policy.allowed_durations:
        allowed = ", ".join(str(d) for d in policy.allowed_durations)
        raise InvalidTimeError(
            f"Duration must be one of {allowed} minutes",
            RULE_DURATION,
            {"duration_minutes": duration_minutes, "allowed": list(policy.allowed_durations)},
        )


def validate_start(scheduled_at: datetime, now: datetime, policy: TimeWindowPolicy) -> None:
    """Lead time, advance horizon and slot alignment for a start instant."""
    scheduled_at = ensure_utc(scheduled_at)
    now = ensure_utc(now)

    earliest = now + policy.min_lead_time
    if scheduled_at <= earliest:
        hours = policy.min_lead_time.total_seconds() / 3600
        raise InvalidTimeError(
            f"Bookings must be made at least {hours:g} hours in advance",
            RULE_MIN_LEAD_TIME,
            {"earliest_allowed": earliest.isoformat()},
        )

    latest = now + policy.max_advance
    if scheduled_at > latest:
        raise InvalidTimeError(
            f"Bookings cannot be made more than {policy.max_advance.days} days in advance",
            RULE_MAX_ADVANCE,
            {"latest_allowed": latest.isoformat()},
        )

    minutes_of_day = scheduled_at.hour * 60 + scheduled_at.minute
    if (
        scheduled_at.second
        or scheduled_at.microsecond
        or minutes_of_day % policy.granularity_minutes
    ):
        raise InvalidTimeError(
            f"Start time must align to {policy.granularity_minutes}-minute slots",
            RULE_GRANULARITY,
            {"granularity_minutes": policy.granularity_minutes},
        )


def validate_booking_window(
    scheduled_at: datetime,
    duration_minutes: int,
    now: datetime,
    policy: TimeWindowPolicy,
) -> None:
    validate_start(scheduled_at, now, policy)
    validate_duration(duration_minutes, policy)


def validate_reschedule_notice(
    current_start: datetime, now: datetime, policy: TimeWindowPolicy
) -> None:
    """A booking can only be moved while its current start is far enough away."""
    if ensure_utc(current_start) - ensure_utc(now) < policy.reschedule_min_notice:
        hours = policy.reschedule_min_notice.total_seconds() / 3600
        raise InvalidTimeError(
            f"Bookings can only be rescheduled at least {hours:g} hours before the session",
            RULE_RESCHEDULE_NOTICE,
        )
