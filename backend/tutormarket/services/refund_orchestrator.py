# backend/tutormarket/services/refund_orchestrator.py
"""
Refund Orchestrator for TutorMarket

Settles the refund for a cancelled, paid booking exactly once, no matter
how often or how concurrently reconciliation is requested.

Three phases, so no database transaction is held open across the network
call to the payment gateway:

    Phase 1 (short transaction, booking row locked):
        skip if already refunded, refuse if another reconciliation holds a
        fresh claim, otherwise stamp ``refund_claimed_at``.
    Phase 2 (no transaction):
        call the gateway with the stable idempotency key
        ``refund-<booking_id>``, so a retried claim can never produce a
        second refund at the gateway either.
    Phase 3 (short transaction):
        record REFUNDED + refund reference, or release the claim and keep
        the failure reason. A failed refund leaves the booking CANCELLED.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import REFUND_REASON_EXPIRED_PENDING
from ..core.exceptions import DomainException, GatewayError
from ..core.timezone_utils import Clock, ensure_utc
from ..events import BookingCancelled, BookingRefunded, EventPublisher
from ..models.booking import Booking, BookingStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from .base import BaseService
from .payment_gateway import PaymentGateway
from .status_transitions import validate_transition

if TYPE_CHECKING:
    from .cancellation_policy import CancellationOutcome, CancellationPolicyEngine

logger = logging.getLogger(__name__)

ERROR_BOOKING_NOT_FOUND = "booking_not_found"
ERROR_NO_PAYMENT = "no_payment"
ERROR_NOT_CANCELLED = "not_cancelled"
ERROR_IN_PROGRESS = "refund_in_progress"
ERROR_RECONCILE_FAILED = "reconciliation_failed"


def refund_idempotency_key(booking_id: str) -> str:
    return f"refund-{booking_id}"


@dataclass(frozen=True)
class RefundReconciliation:
    booking_id: str
    issued: bool = False
    refund_reference: Optional[str] = None
    already_refunded: bool = False
    error: Optional[str] = None
    amount: Optional[Decimal] = None


@dataclass
class ExpiredRefundSummary:
    processed: int = 0
    succeeded: int = 0
    already_refunded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)


class RefundOrchestrator(BaseService):
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        booking_repository: Optional[BookingRepository] = None,
        event_publisher: Optional[EventPublisher] = None,
        cancellation_engine: Optional["CancellationPolicyEngine"] = None,
        claim_ttl: Optional[timedelta] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock)
        self.gateway = gateway
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(
            db
        )
        self.event_publisher = event_publisher
        self._cancellation_engine = cancellation_engine
        self.claim_ttl = claim_ttl or timedelta(seconds=settings.refund_claim_ttl_seconds)

    @property
    def cancellation_engine(self) -> "CancellationPolicyEngine":
        if self._cancellation_engine is None:
            from .cancellation_policy import CancellationPolicyEngine

            self._cancellation_engine = CancellationPolicyEngine(
                self.db, booking_repository=self.booking_repository, clock=self.clock
            )
        return self._cancellation_engine

    @BaseService.measure_operation("reconcile_refund")
    def reconcile(self, booking_id: str, reason: str, *, notify: bool = False) -> RefundReconciliation:
        """
        Ensure the booking's payment has been refunded exactly once.

        Never raises for gateway problems; the outcome is in the result.
        """
        # Phase 1: claim
        with self.transaction():
            booking = self.booking_repository.get_by_id_for_update(booking_id)
            claim = self._claim(booking, booking_id)
            if isinstance(claim, RefundReconciliation):
                return claim
            payment_id, amount = claim

        # Phase 2: gateway call, no transaction held
        try:
            gateway_refund = self.gateway.refund(
                payment_id,
                reason,
                amount=amount,
                idempotency_key=refund_idempotency_key(booking_id),
                metadata={"booking_id": booking_id},
            )
        except GatewayError as e:
            self._release_claim(booking_id, e.message)
            prometheus_metrics.inc_refund_outcome("failed")
            self.logger.error(
                "Refund failed for booking %s (payment %s, reason %s): %s",
                booking_id,
                payment_id,
                reason,
                e.message,
                extra={"booking_id": booking_id, "payment_id": payment_id},
            )
            return RefundReconciliation(booking_id=booking_id, error=e.message)

        # Phase 3: record outcome
        refunded_amount = gateway_refund.amount if gateway_refund.amount is not None else amount
        with self.transaction():
            booking = self.booking_repository.get_by_id_for_update(booking_id)
            if booking.is_refunded:
                # A reconciler that took over our stale claim settled it first
                self.logger.info("Refund for booking %s already recorded", booking_id)
                prometheus_metrics.inc_refund_outcome("already_refunded")
                return RefundReconciliation(
                    booking_id=booking_id,
                    refund_reference=booking.refund_reference,
                    already_refunded=True,
                    amount=booking.refund_amount,
                )
            validate_transition(booking.status, BookingStatus.REFUNDED.value)
            booking.status = BookingStatus.REFUNDED.value
            booking.refund_reference = gateway_refund.refund_reference
            booking.refund_amount = refunded_amount
            booking.refunded_at = self.now()
            booking.refund_claimed_at = None
            booking.refund_failure_reason = None

        self.log_operation(
            "refund_recorded",
            booking_id=booking_id,
            refund_reference=gateway_refund.refund_reference,
        )
        if gateway_refund.already_refunded:
            prometheus_metrics.inc_refund_outcome("already_refunded")
            return RefundReconciliation(
                booking_id=booking_id,
                refund_reference=gateway_refund.refund_reference,
                already_refunded=True,
                amount=refunded_amount,
            )

        prometheus_metrics.inc_refund_outcome("issued")
        if notify and self.event_publisher is not None:
            self.event_publisher.publish(
                BookingRefunded(
                    booking_id=booking_id,
                    refund_reference=gateway_refund.refund_reference,
                    reason=reason,
                )
            )
        return RefundReconciliation(
            booking_id=booking_id,
            issued=True,
            refund_reference=gateway_refund.refund_reference,
            amount=refunded_amount,
        )

    def _claim(self, booking: Optional[Booking], booking_id: str):
        if booking is None:
            return RefundReconciliation(booking_id=booking_id, error=ERROR_BOOKING_NOT_FOUND)
        if booking.is_refunded:
            prometheus_metrics.inc_refund_outcome("already_refunded")
            return RefundReconciliation(
                booking_id=booking_id,
                refund_reference=booking.refund_reference,
                already_refunded=True,
                amount=booking.refund_amount,
            )
        if not booking.is_paid:
            prometheus_metrics.inc_refund_outcome("skipped")
            return RefundReconciliation(booking_id=booking_id, error=ERROR_NO_PAYMENT)
        if booking.status != BookingStatus.CANCELLED.value:
            return RefundReconciliation(booking_id=booking_id, error=ERROR_NOT_CANCELLED)

        now = self.now()
        claimed_at = ensure_utc(booking.refund_claimed_at)
        if claimed_at is not None and now - claimed_at < self.claim_ttl:
            self.logger.info("Refund for booking %s already in progress", booking_id)
            return RefundReconciliation(booking_id=booking_id, error=ERROR_IN_PROGRESS)

        booking.refund_claimed_at = now
        return booking.payment_id, booking.price

    def _release_claim(self, booking_id: str, failure_reason: str) -> None:
        with self.transaction():
            booking = self.booking_repository.get_by_id_for_update(booking_id)
            if booking is not None:
                booking.refund_claimed_at = None
                booking.refund_failure_reason = failure_reason[:1000]

    @BaseService.measure_operation("refund_expired_pending")
    def refund_expired_pending(self, now: Optional[datetime] = None) -> ExpiredRefundSummary:
        """
        Cancel and refund paid bookings the tutor never confirmed before
        their start time. Processes at most one batch, oldest first.
        """
        now = ensure_utc(now or self.now())
        with self.transaction():
            expired = self.booking_repository.get_expired_pending_paid(
                now, settings.expired_refund_batch_size
            )
            booking_ids = [booking.id for booking in expired]

        summary = ExpiredRefundSummary()
        for booking_id in booking_ids:
            summary.processed += 1
            try:
                cancelled = self._cancel_expired(booking_id, now)
            except DomainException as e:
                summary.failed += 1
                summary.errors.append({"booking_id": booking_id, "error": e.message})
                self.logger.error("Could not cancel expired booking %s: %s", booking_id, e.message)
                continue
            if cancelled is None:
                summary.skipped += 1
                continue

            try:
                result = self.reconcile(booking_id, REFUND_REASON_EXPIRED_PENDING)
            except Exception:
                # The cancellation is committed; the claim expires and a later sweep or admin retries
                self.logger.exception(
                    "Refund reconciliation failed for expired booking %s",
                    booking_id,
                    extra={"booking_id": booking_id},
                )
                result = RefundReconciliation(booking_id=booking_id, error=ERROR_RECONCILE_FAILED)
            if result.issued:
                summary.succeeded += 1
            elif result.already_refunded:
                summary.already_refunded += 1
            else:
                summary.failed += 1
                summary.errors.append({"booking_id": booking_id, "error": result.error or ""})

            if self.event_publisher is not None:
                self.event_publisher.publish(
                    BookingCancelled(
                        booking_id=booking_id,
                        cancelled_by="system",
                        cancelled_at=now,
                        is_late=cancelled.is_late,
                        refund_amount=result.amount if result.issued else None,
                        refund_issued=result.issued,
                    )
                )

        self.logger.info(
            "Expired pending sweep: processed=%d succeeded=%d already_refunded=%d "
            "failed=%d skipped=%d",
            summary.processed,
            summary.succeeded,
            summary.already_refunded,
            summary.failed,
            summary.skipped,
        )
        return summary

    def _cancel_expired(self, booking_id: str, now: datetime) -> Optional["CancellationOutcome"]:
        with self.transaction():
            booking = self.booking_repository.get_by_id_for_update(booking_id)
            # Re-check under the lock: the tutor may have acted since the batch was read
            if (
                booking is None
                or booking.status != BookingStatus.PENDING.value
                or not booking.is_paid
                or ensure_utc(booking.scheduled_at) >= now
            ):
                return None
            return self.cancellation_engine.apply(booking, None, now)
