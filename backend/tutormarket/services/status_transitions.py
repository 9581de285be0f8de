# backend/tutormarket/services/status_transitions.py
"""
Booking state machine and the role gates for the three update paths.

A PATCH/DELETE against a booking is one of three request kinds, each with
its own authorization predicate:

    RescheduleRequest    student who owns the booking
    StatusChangeRequest  the booking's tutor, or an admin
    CancelRequest        the student, the tutor, or an admin
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Union

from ..core.exceptions import ForbiddenError, InvalidTransitionError
from ..models.booking import Booking, BookingStatus
from ..models.user import User

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    # Refund settlement only; never requestable through the status path
    BookingStatus.CANCELLED: frozenset({BookingStatus.REFUNDED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.REFUNDED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


def is_allowed_transition(from_status: BookingStatus, to_status: BookingStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def validate_transition(from_status: str, to_status: str) -> None:
    """Raise unless ``from_status -> to_status`` is an edge of the state machine."""
    source = BookingStatus(from_status)
    target = BookingStatus(to_status)
    if not is_allowed_transition(source, target):
        raise InvalidTransitionError(source.value, target.value)


def validate_requested_transition(from_status: str, to_status: str) -> None:
    """Status-path variant: REFUNDED is reachable only through refund settlement."""
    if BookingStatus(to_status) is BookingStatus.REFUNDED:
        raise InvalidTransitionError(
            BookingStatus(from_status).value,
            BookingStatus.REFUNDED.value,
            "REFUNDED can only be reached through refund settlement",
        )
    validate_transition(from_status, to_status)


@dataclass(frozen=True)
class RescheduleRequest:
    scheduled_at: datetime


@dataclass(frozen=True)
class StatusChangeRequest:
    status: BookingStatus


@dataclass(frozen=True)
class CancelRequest:
    reason: Optional[str] = None


BookingUpdateRequest = Union[RescheduleRequest, StatusChangeRequest, CancelRequest]


def is_booking_student(user: User, booking: Booking) -> bool:
    return user.id == booking.student_id


def is_booking_tutor(user: User, booking: Booking) -> bool:
    profile = user.tutor_profile
    return user.is_tutor and profile is not None and profile.id == booking.tutor_id


def can_view(user: User, booking: Booking) -> bool:
    return user.is_admin or is_booking_student(user, booking) or is_booking_tutor(user, booking)


def authorize(user: User, booking: Booking, request: BookingUpdateRequest) -> None:
    """Raise ForbiddenError unless ``user`` may issue ``request`` against ``booking``."""
    if isinstance(request, RescheduleRequest):
        if not (user.is_student and is_booking_student(user, booking)):
            raise ForbiddenError("Only the booking's student can reschedule")
    elif isinstance(request, StatusChangeRequest):
        if not (user.is_admin or is_booking_tutor(user, booking)):
            raise ForbiddenError("Only the booking's tutor or an admin can change its status")
    elif isinstance(request, CancelRequest):
        if not can_view(user, booking):
            raise ForbiddenError("You do not have permission to cancel this booking")
    else:  # pragma: no cover
        raise TypeError(f"Unknown booking update request: {request!r}")
