"""Booking domain events and their post-commit delivery."""

from .booking_events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    BookingRefunded,
    BookingRescheduled,
)
from .publisher import EventPublisher

__all__ = [
    "BookingCancelled",
    "BookingConfirmed",
    "BookingCreated",
    "BookingRefunded",
    "BookingRescheduled",
    "EventPublisher",
]
