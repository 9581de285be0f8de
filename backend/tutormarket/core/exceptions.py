# backend/tutormarket/core/exceptions.py
"""
Domain-specific exceptions for the TutorMarket booking engine.

Every rejection in the booking lifecycle is one of these. The API layer
converts them with ``to_http_exception()``; nothing here is retried.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class BadRequestError(DomainException):
    """Malformed or contradictory request."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(DomainException):
    """Raised when the caller is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(DomainException):
    """Raised when the caller's role or ownership does not permit the action."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainException):
    """Raised when a slot overlaps an existing booking of the same tutor."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        conflicting_booking_id: Optional[str] = None,
        conflicting_start: Optional[datetime] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if conflicting_booking_id:
            details["conflicting_booking_id"] = conflicting_booking_id
        if conflicting_start:
            details["conflicting_start"] = conflicting_start.isoformat()
        if message is None:
            message = "This time slot conflicts with an existing booking"
            if conflicting_start:
                message = f"{message} at {conflicting_start.isoformat()}"
        super().__init__(message, code="BOOKING_CONFLICT", details=details)


class InvalidTimeError(BadRequestError):
    """Candidate start time or duration violates a time-window rule."""

    def __init__(self, message: str, rule: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=rule, details=details)
        self.rule = rule


class NotAvailableError(BadRequestError):
    """Requested interval is not inside any of the tutor's availability windows."""

    def __init__(self, message: str = "Tutor is not available at the requested time", **details):
        super().__init__(message, code="TUTOR_NOT_AVAILABLE", details=details)


class InvalidTransitionError(BadRequestError):
    """Requested status change is not an edge of the booking state machine."""

    def __init__(self, from_status: str, to_status: str, message: Optional[str] = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Invalid status transition from {from_status} to {to_status}",
            code="INVALID_TRANSITION",
            details={"from": from_status, "to": to_status},
        )


class PenalizedError(BadRequestError):
    """Student is under an active cancellation penalty."""

    def __init__(self, penalty_until: datetime, message: Optional[str] = None):
        self.penalty_until = penalty_until
        super().__init__(
            message
            or (
                "You are temporarily restricted from this action due to repeated late "
                f"cancellations until {penalty_until.isoformat()}. "
                "You can submit an appeal for review."
            ),
            code="PENALTY_ACTIVE",
            details={"penalty_until": penalty_until.isoformat(), "appeal_path": "/api/v1/appeals"},
        )


class AlreadyReviewedError(BadRequestError):
    """Appeal has already been approved or rejected."""

    def __init__(self, appeal_id: str, current_status: str):
        super().__init__(
            "Appeal has already been reviewed",
            code="APPEAL_ALREADY_REVIEWED",
            details={"appeal_id": appeal_id, "status": current_status},
        )


class GatewayError(DomainException):
    """Payment gateway call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, *, retryable: bool = False, provider_code: Optional[str] = None):
        details: Dict[str, Any] = {"retryable": retryable}
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, code="PAYMENT_GATEWAY_ERROR", details=details)
        self.retryable = retryable


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues,
    query failures, or constraint violations.
    """
