# backend/tutormarket/services/appeal_service.py
"""
Appeal Workflow for TutorMarket

Students under a cancellation penalty may appeal it once at a time; an
admin approves (penalty lifted in the same transaction) or rejects. An
appeal is reviewed at most once.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.constants import (
    ERROR_APPEAL_NOT_FOUND,
    MAX_APPEAL_REASON_LENGTH,
    MIN_APPEAL_REASON_LENGTH,
)
from ..core.exceptions import (
    AlreadyReviewedError,
    BadRequestError,
    ForbiddenError,
    NotFoundError,
)
from ..core.timezone_utils import Clock, ensure_utc
from ..models.appeal import AppealStatus, CancellationAppeal
from ..models.user import User
from ..repositories import RepositoryFactory
from ..repositories.appeal_repository import AppealRepository
from ..repositories.booking_repository import BookingRepository
from ..repositories.user_repository import UserRepository
from .base import BaseService

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = (AppealStatus.APPROVED, AppealStatus.REJECTED)


@dataclass(frozen=True)
class PenaltyStatus:
    penalty_until: Optional[datetime]
    is_penalized: bool


class AppealService(BaseService):
    def __init__(
        self,
        db: Session,
        appeal_repository: Optional[AppealRepository] = None,
        user_repository: Optional[UserRepository] = None,
        booking_repository: Optional[BookingRepository] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock)
        self.appeal_repository = appeal_repository or RepositoryFactory.create_appeal_repository(db)
        self.user_repository = user_repository or RepositoryFactory.create_user_repository(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(
            db
        )

    def penalty_status(self, user: User) -> PenaltyStatus:
        return PenaltyStatus(
            penalty_until=ensure_utc(user.penalty_until),
            is_penalized=user.is_penalized(self.now()),
        )

    @BaseService.measure_operation("submit_appeal")
    def submit_appeal(
        self, user: User, reason: str, booking_id: Optional[str] = None
    ) -> CancellationAppeal:
        """Open an appeal against the student's active penalty."""
        if not user.is_student:
            raise ForbiddenError("Only students can submit appeals")

        reason = (reason or "").strip()
        if not MIN_APPEAL_REASON_LENGTH <= len(reason) <= MAX_APPEAL_REASON_LENGTH:
            raise BadRequestError(
                f"Reason must be between {MIN_APPEAL_REASON_LENGTH} and "
                f"{MAX_APPEAL_REASON_LENGTH} characters",
                code="INVALID_APPEAL_REASON",
            )

        with self.transaction():
            student = self.user_repository.lock_user(user.id)
            if student is None:
                raise NotFoundError("User not found")
            if not self.penalty_status(student).is_penalized:
                raise BadRequestError(
                    "You do not have an active penalty to appeal", code="NO_ACTIVE_PENALTY"
                )
            if self.appeal_repository.get_pending_for_user(student.id) is not None:
                raise BadRequestError(
                    "You already have a pending appeal", code="APPEAL_ALREADY_PENDING"
                )
            if booking_id is not None:
                booking = self.booking_repository.get_by_id(booking_id)
                if booking is None or booking.student_id != student.id:
                    raise BadRequestError(
                        "Booking not found or does not belong to you", code="INVALID_BOOKING"
                    )

            appeal = self.appeal_repository.create(
                user_id=student.id,
                booking_id=booking_id,
                reason=reason,
                status=AppealStatus.PENDING.value,
                created_at=self.now(),
            )

        self.log_operation("appeal_submitted", appeal_id=appeal.id, user_id=user.id)
        return appeal

    def list_appeals(
        self, user: User, status: Optional[AppealStatus] = None, limit: int = 50, offset: int = 0
    ) -> List[CancellationAppeal]:
        """Admins see every appeal; everyone else sees only their own."""
        return self.appeal_repository.list_appeals(
            user_id=None if user.is_admin else user.id,
            status=status.value if status else None,
            limit=limit,
            offset=offset,
        )

    def get_appeal(self, appeal_id: str, user: User) -> CancellationAppeal:
        appeal = self.appeal_repository.get_by_id(appeal_id)
        if appeal is None:
            raise NotFoundError(ERROR_APPEAL_NOT_FOUND)
        if not (user.is_admin or appeal.user_id == user.id):
            raise ForbiddenError("You do not have permission to view this appeal")
        return appeal

    @BaseService.measure_operation("review_appeal")
    def review(
        self,
        appeal_id: str,
        decision: AppealStatus,
        admin: User,
        admin_notes: Optional[str] = None,
    ) -> CancellationAppeal:
        """
        Approve or reject a PENDING appeal.

        Approval clears the student's penalty in the same transaction as the
        status change, so the two can never be observed apart.
        """
        if not admin.is_admin:
            raise ForbiddenError("Only admins can review appeals")
        decision = AppealStatus(decision)
        if decision not in REVIEW_DECISIONS:
            raise BadRequestError("Decision must be APPROVED or REJECTED", code="INVALID_DECISION")

        with self.transaction():
            appeal = self.appeal_repository.get_by_id_for_update(appeal_id)
            if appeal is None:
                raise NotFoundError(ERROR_APPEAL_NOT_FOUND)
            if appeal.status != AppealStatus.PENDING.value:
                raise AlreadyReviewedError(appeal.id, appeal.status)

            appeal.status = decision.value
            appeal.admin_notes = admin_notes
            appeal.reviewed_by_id = admin.id
            appeal.reviewed_at = self.now()

            if decision is AppealStatus.APPROVED:
                student = self.user_repository.lock_user(appeal.user_id)
                if student is not None:
                    student.penalty_until = None
            self.appeal_repository.flush()

        self.logger.info(
            "Appeal %s %s by admin %s", appeal.id, decision.value.lower(), admin.id
        )
        return appeal
