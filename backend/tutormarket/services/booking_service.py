# backend/tutormarket/services/booking_service.py
"""
Booking Service for TutorMarket

Orchestrates the booking lifecycle. Each use case keeps its
correctness-critical sequence inside one short transaction:

- create / reschedule: lock tutor row -> availability -> conflicts -> write
- cancel: lock booking (+ student row) -> penalty check -> late count -> write
- refunds run afterwards through the RefundOrchestrator, which never
  holds a transaction across the payment gateway call

Notifications are published only after the transaction commits, and
their failures never reach the caller.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    ERROR_BOOKING_NOT_FOUND,
    ERROR_TUTOR_NOT_FOUND,
    REFUND_REASON_ADMIN_CANCELLED,
    REFUND_REASON_ADMIN_RETRY,
    REFUND_REASON_TUTOR_CANCELLED,
    REFUND_REASON_TUTOR_REJECTED,
)
from ..core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PenalizedError,
)
from ..core.timezone_utils import Clock, ensure_utc
from ..events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    BookingRescheduled,
    EventPublisher,
)
from ..models.booking import Booking, BookingStatus
from ..models.user import User
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from .availability_matcher import AvailabilityMatcher
from .base import BaseService
from .cancellation_policy import CancellationOutcome, CancellationPolicyEngine
from .conflict_checker import ConflictChecker
from .refund_orchestrator import (
    ERROR_BOOKING_NOT_FOUND as REFUND_BOOKING_MISSING,
    ERROR_RECONCILE_FAILED,
    RefundOrchestrator,
    RefundReconciliation,
)
from .status_transitions import (
    CANCELLABLE_STATUSES,
    BookingUpdateRequest,
    CancelRequest,
    RescheduleRequest,
    StatusChangeRequest,
    authorize,
    can_view,
    is_booking_student,
    is_booking_tutor,
    validate_requested_transition,
)
from .time_window_validator import (
    TimeWindowPolicy,
    validate_booking_window,
    validate_reschedule_notice,
)

logger = logging.getLogger(__name__)


@dataclass
class BookingActionResult:
    booking: Booking
    cancellation: Optional[CancellationOutcome] = None
    refund: Optional[RefundReconciliation] = None


def initiator_role(user: User, booking: Booking) -> str:
    if is_booking_student(user, booking):
        return "student"
    if is_booking_tutor(user, booking):
        return "tutor"
    return "admin"


class BookingService(BaseService):
    def __init__(
        self,
        db: Session,
        refund_orchestrator: RefundOrchestrator,
        event_publisher: Optional[EventPublisher] = None,
        repository: Optional[BookingRepository] = None,
        availability_matcher: Optional[AvailabilityMatcher] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        cancellation_engine: Optional[CancellationPolicyEngine] = None,
        time_policy: Optional[TimeWindowPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock)
        self.repository = repository or RepositoryFactory.create_booking_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.availability_matcher = availability_matcher or AvailabilityMatcher(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db, self.repository)
        self.cancellation_engine = cancellation_engine or CancellationPolicyEngine(
            db,
            booking_repository=self.repository,
            user_repository=self.user_repository,
            clock=self.clock,
        )
        self.refund_orchestrator = refund_orchestrator
        self.event_publisher = event_publisher
        self.time_policy = time_policy or TimeWindowPolicy.from_settings()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_booking_for_user(self, booking_id: str, user: User) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundError(ERROR_BOOKING_NOT_FOUND)
        if not can_view(user, booking):
            raise ForbiddenError("You do not have permission to view this booking")
        return booking

    def list_bookings_for_user(
        self,
        user: User,
        status: Optional[BookingStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Booking]:
        filters = {"status": status.value if status else None, "limit": limit, "offset": offset}
        if user.is_admin:
            return self.repository.list_all(**filters)
        if user.is_tutor:
            profile = self.availability_repository.get_tutor_by_user(user.id)
            return self.repository.list_for_tutor(profile.id, **filters) if profile else []
        return self.repository.list_for_student(user.id, **filters)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        student: User,
        tutor_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        price: Decimal,
        payment_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        if not student.is_student:
            raise ForbiddenError("Only students can create bookings")

        scheduled_at = ensure_utc(scheduled_at)
        validate_booking_window(scheduled_at, duration_minutes, self.now(), self.time_policy)

        def write() -> Booking:
            with self.transaction():
                current = self.user_repository.get_by_id(student.id)
                penalty_until = ensure_utc(current.penalty_until) if current else None
                if penalty_until is not None and self.now() < penalty_until:
                    raise PenalizedError(
                        penalty_until,
                        "You cannot create new bookings while a cancellation penalty is active "
                        f"(until {penalty_until.isoformat()}). You can submit an appeal for review.",
                    )

                tutor = self.repository.lock_tutor(tutor_id)
                if tutor is None or not tutor.is_active:
                    raise NotFoundError(ERROR_TUTOR_NOT_FOUND)

                self.availability_matcher.ensure_available(tutor_id, scheduled_at, duration_minutes)
                self.conflict_checker.ensure_no_conflict(tutor_id, scheduled_at, duration_minutes)

                return self.repository.create(
                    student_id=student.id,
                    tutor_id=tutor_id,
                    scheduled_at=scheduled_at,
                    duration_minutes=duration_minutes,
                    price=price,
                    payment_id=payment_id,
                    notes=notes,
                    status=BookingStatus.PENDING.value,
                    created_at=self.now(),
                )

        booking = self.run_with_retry("create_booking", write, settings.db_serialization_retries)
        self.log_operation("booking_created", booking_id=booking.id, tutor_id=tutor_id)
        self._publish(
            BookingCreated(
                booking_id=booking.id,
                student_id=student.id,
                tutor_id=tutor_id,
                scheduled_at=booking.scheduled_at,
            )
        )
        return booking

    # ------------------------------------------------------------------
    # Update paths
    # ------------------------------------------------------------------

    def update_booking(
        self, booking_id: str, user: User, request: BookingUpdateRequest
    ) -> BookingActionResult:
        """Dispatch one of the three update kinds to its handler."""
        if isinstance(request, RescheduleRequest):
            return BookingActionResult(
                booking=self.reschedule_booking(booking_id, user, request.scheduled_at)
            )
        if isinstance(request, StatusChangeRequest):
            return self.change_status(booking_id, user, request.status)
        if isinstance(request, CancelRequest):
            return self.cancel_booking(booking_id, user)
        raise TypeError(f"Unknown booking update request: {request!r}")  # pragma: no cover

    @BaseService.measure_operation("reschedule_booking")
    def reschedule_booking(self, booking_id: str, user: User, scheduled_at: datetime) -> Booking:
        """Move the booking to a new start; it goes back to PENDING for the tutor."""
        scheduled_at = ensure_utc(scheduled_at)

        def write():
            with self.transaction():
                booking = self._lock_booking(booking_id)
                authorize(user, booking, RescheduleRequest(scheduled_at))

                if BookingStatus(booking.status) not in CANCELLABLE_STATUSES:
                    raise InvalidTransitionError(
                        booking.status,
                        BookingStatus.PENDING.value,
                        f"Cannot reschedule a booking with status {booking.status}",
                    )

                now = self.now()
                validate_reschedule_notice(booking.scheduled_at, now, self.time_policy)
                validate_booking_window(
                    scheduled_at, booking.duration_minutes, now, self.time_policy
                )

                self.repository.lock_tutor(booking.tutor_id)
                self.availability_matcher.ensure_available(
                    booking.tutor_id, scheduled_at, booking.duration_minutes
                )
                self.conflict_checker.ensure_no_conflict(
                    booking.tutor_id,
                    scheduled_at,
                    booking.duration_minutes,
                    exclude_booking_id=booking.id,
                )

                previous = booking.scheduled_at
                booking.scheduled_at = scheduled_at
                booking.status = BookingStatus.PENDING.value
                self.repository.flush()
                return booking, previous

        booking, previous = self.run_with_retry(
            "reschedule_booking", write, settings.db_serialization_retries
        )
        self.log_operation("booking_rescheduled", booking_id=booking.id)
        self._publish(
            BookingRescheduled(
                booking_id=booking.id,
                previous_scheduled_at=previous,
                scheduled_at=booking.scheduled_at,
            )
        )
        return booking

    @BaseService.measure_operation("change_booking_status")
    def change_status(
        self, booking_id: str, user: User, new_status: BookingStatus
    ) -> BookingActionResult:
        """
        Tutor/admin status path. A move to CANCELLED is a cancellation (and
        refund) by the tutor or admin; REFUNDED is never requestable.
        """
        target = BookingStatus(new_status)
        if target is BookingStatus.CANCELLED:
            return self._cancel(booking_id, user, StatusChangeRequest(target))

        def write() -> Booking:
            with self.transaction():
                booking = self._lock_booking(booking_id)
                authorize(user, booking, StatusChangeRequest(target))
                validate_requested_transition(booking.status, target.value)
                booking.status = target.value
                self.repository.flush()
                return booking

        booking = self.run_with_retry(
            "change_booking_status", write, settings.db_serialization_retries
        )
        self.log_operation("booking_status_changed", booking_id=booking.id, status=target.value)
        if target is BookingStatus.CONFIRMED:
            self._publish(BookingConfirmed(booking_id=booking.id, confirmed_by=user.id))
        return BookingActionResult(booking=booking)

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, booking_id: str, user: User) -> BookingActionResult:
        return self._cancel(booking_id, user, CancelRequest())

    def _cancel(
        self, booking_id: str, user: User, request: BookingUpdateRequest
    ) -> BookingActionResult:
        with self.transaction():
            booking = self._lock_booking(booking_id)
            authorize(user, booking, request)
            if isinstance(request, StatusChangeRequest):
                validate_requested_transition(booking.status, BookingStatus.CANCELLED.value)
            previous_status = booking.status
            role = initiator_role(user, booking)
            outcome = self.cancellation_engine.apply(booking, user)

        self.log_operation(
            "booking_cancelled",
            booking_id=booking.id,
            cancelled_by=role,
            is_late=outcome.is_late,
            penalty_applied=outcome.penalty_applied,
        )

        refund: Optional[RefundReconciliation] = None
        if role != "student" and booking.is_paid:
            try:
                refund = self.refund_orchestrator.reconcile(
                    booking.id, self._refund_reason(role, previous_status)
                )
            except Exception:
                # The cancellation has committed and stands; settlement is left for a retry
                self.logger.exception(
                    "Booking %s cancelled but refund reconciliation failed",
                    booking.id,
                    extra={"booking_id": booking.id, "payment_id": booking.payment_id},
                )
                refund = RefundReconciliation(booking_id=booking.id, error=ERROR_RECONCILE_FAILED)
            if refund.error and refund.error != ERROR_RECONCILE_FAILED:
                self.logger.error(
                    "Booking %s cancelled but refund not issued: %s",
                    booking.id,
                    refund.error,
                    extra={"booking_id": booking.id, "payment_id": booking.payment_id},
                )

        self._publish(
            BookingCancelled(
                booking_id=booking.id,
                cancelled_by=role,
                cancelled_at=booking.cancelled_at,
                is_late=outcome.is_late,
                refund_amount=(refund.amount if refund and refund.issued else booking.price),
                refund_issued=bool(refund and refund.issued),
                penalty_until=outcome.penalty_until,
            )
        )
        return BookingActionResult(booking=booking, cancellation=outcome, refund=refund)

    @staticmethod
    def _refund_reason(role: str, previous_status: str) -> str:
        if role == "admin":
            return REFUND_REASON_ADMIN_CANCELLED
        if previous_status == BookingStatus.PENDING.value:
            return REFUND_REASON_TUTOR_REJECTED
        return REFUND_REASON_TUTOR_CANCELLED

    # ------------------------------------------------------------------
    # Admin settlement
    # ------------------------------------------------------------------

    @BaseService.measure_operation("retry_refund")
    def retry_refund(self, booking_id: str, admin: User) -> RefundReconciliation:
        if not admin.is_admin:
            raise ForbiddenError("Only admins can retry refunds")
        result = self.refund_orchestrator.reconcile(
            booking_id, REFUND_REASON_ADMIN_RETRY, notify=True
        )
        if result.error == REFUND_BOOKING_MISSING:
            raise NotFoundError(ERROR_BOOKING_NOT_FOUND)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_booking(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id_for_update(booking_id)
        if booking is None:
            raise NotFoundError(ERROR_BOOKING_NOT_FOUND)
        return booking

    def _publish(self, event) -> None:
        """Post-commit notification; failures are logged, never raised."""
        if self.event_publisher is None:
            return
        try:
            self.event_publisher.publish(event)
        except Exception as e:
            self.logger.error(
                "Failed to publish %s for booking %s: %s",
                type(event).__name__,
                getattr(event, "booking_id", None),
                e,
            )
