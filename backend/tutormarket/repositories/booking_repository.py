# backend/tutormarket/repositories/booking_repository.py
"""
Booking Repository for TutorMarket

Data access for bookings: role-scoped listing, the conflict window query,
late-cancellation counting and the expired-pending sweep.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import INACTIVE_STATUSES, Booking, BookingStatus
from ..models.tutor import TutorProfile
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def lock_tutor(self, tutor_id: str) -> Optional[TutorProfile]:
        """
        Lock the tutor profile row for the rest of the transaction.

        Every booking write for a tutor takes this lock first, so the
        availability check, conflict check and insert behave as one
        serialized step per tutor.
        """
        try:
            return (
                self.db.query(TutorProfile)
                .filter(TutorProfile.id == tutor_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock tutor: {str(e)}")

    def get_active_bookings_for_tutor(
        self,
        tutor_id: str,
        starts_from: datetime,
        starts_before: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Bookings still holding the tutor's time that start inside a window.

        CANCELLED and REFUNDED bookings never block a slot.
        """
        try:
            query = self.db.query(Booking).filter(
                Booking.tutor_id == tutor_id,
                Booking.status.notin_(INACTIVE_STATUSES),
                Booking.scheduled_at >= starts_from,
                Booking.scheduled_at < starts_before,
            )
            if exclude_booking_id:
                query = query.filter(Booking.id != exclude_booking_id)
            return query.order_by(Booking.scheduled_at).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting bookings for conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get conflict bookings: {str(e)}")

    def count_late_cancellations(
        self, student_id: str, since: Optional[datetime] = None
    ) -> int:
        """
        Count late cancellations initiated by the student.

        Refunded bookings still count; the refund does not undo the
        cancellation that preceded it.
        """
        query = self.db.query(func.count(Booking.id)).filter(
            Booking.cancelled_by_id == student_id,
            Booking.is_late_cancellation.is_(True),
            Booking.status.in_(INACTIVE_STATUSES),
        )
        if since is not None:
            query = query.filter(Booking.cancelled_at >= since)
        return int(self._execute_scalar(query) or 0)

    def list_for_student(self, student_id: str, **filters) -> List[Booking]:
        return self._list(Booking.student_id == student_id, **filters)

    def list_for_tutor(self, tutor_id: str, **filters) -> List[Booking]:
        return self._list(Booking.tutor_id == tutor_id, **filters)

    def list_all(self, **filters) -> List[Booking]:
        return self._list(None, **filters)

    def _list(
        self,
        scope,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Booking]:
        query = self._build_query()
        if scope is not None:
            query = query.filter(scope)
        if status:
            query = query.filter(Booking.status == status)
        query = query.order_by(Booking.scheduled_at.desc()).offset(offset).limit(limit)
        return self._execute_query(query)

    def get_expired_pending_paid(self, now: datetime, limit: int) -> List[Booking]:
        """PENDING bookings with a payment whose start time has passed, oldest first."""
        try:
            return (
                self.db.query(Booking)
                .filter(
                    Booking.status == BookingStatus.PENDING.value,
                    Booking.scheduled_at < now,
                    Booking.payment_id.isnot(None),
                )
                .order_by(Booking.scheduled_at.asc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading expired pending bookings: {str(e)}")
            raise RepositoryException(f"Failed to load expired bookings: {str(e)}")
