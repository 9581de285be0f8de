"""Booking domain events, emitted only after the owning transaction commits."""
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass
class BookingCreated:
    """Fired after a booking request is stored as PENDING."""

    booking_id: str
    student_id: str
    tutor_id: str
    scheduled_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingConfirmed:
    """Fired after the tutor accepts a PENDING booking."""

    booking_id: str
    confirmed_by: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingRescheduled:
    booking_id: str
    previous_scheduled_at: datetime
    scheduled_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a booking is cancelled."""

    booking_id: str
    cancelled_by: str  # 'student', 'tutor', 'admin' or 'system'
    cancelled_at: datetime
    is_late: bool
    # Informational only for student cancellations; no refund is issued for them
    refund_amount: Optional[Decimal] = None
    refund_issued: bool = False
    penalty_until: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingRefunded:
    booking_id: str
    refund_reference: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
