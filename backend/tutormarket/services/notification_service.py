# backend/tutormarket/services/notification_service.py
"""
Booking notification emails.

``NotificationService`` renders the booking emails and hands them to an
email client: ``ResendEmailClient`` in deployed environments,
``ConsoleEmailClient`` (log only) everywhere else. Notifications run after
commit from the event handlers; a failure here never affects a booking.
"""

from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, Optional, Protocol

import resend

from ..core.config import Settings, settings
from ..core.constants import BRAND_NAME
from ..core.exceptions import ServiceException
from ..models.booking import Booking

logger = logging.getLogger(__name__)


class EmailClient(Protocol):
    def send_email(self, to_email: str, subject: str, html_content: str, text_content: str) -> Any:
        ...


class ResendEmailClient:
    """Sends email through the Resend API."""

    def __init__(self, api_key: Optional[str], from_email: str):
        if not api_key:
            raise ServiceException("Resend API key not configured")
        resend.api_key = api_key
        self.from_email = from_email

    def send_email(
        self, to_email: str, subject: str, html_content: str, text_content: str
    ) -> Dict[str, Any]:
        response = resend.Emails.send(
            {
                "from": self.from_email,
                "to": to_email,
                "subject": subject,
                "html": html_content,
                "text": text_content,
            }
        )
        logger.info(f"Email sent successfully to {to_email} - Subject: {subject}")
        return response


class ConsoleEmailClient:
    """Logs emails instead of sending them (development and tests)."""

    def send_email(self, to_email: str, subject: str, html_content: str, text_content: str) -> bool:
        logger.info("[console-email] to=%s subject=%s\n%s", to_email, subject, text_content)
        return True


def build_email_client(config: Settings = settings) -> EmailClient:
    if config.email_provider == "resend":
        return ResendEmailClient(config.resend_api_key, config.from_email)
    return ConsoleEmailClient()


def _fmt(moment: Optional[datetime]) -> str:
    return moment.strftime("%A %d %B %Y, %H:%M UTC") if moment else "-"


def _paragraphs(*lines: str) -> str:
    return "".join(f"<p>{line}</p>" for line in lines)


class NotificationService:
    def __init__(self, email_client: EmailClient):
        self.email_client = email_client

    def _send(self, to_email: str, subject: str, *lines: str) -> None:
        self.email_client.send_email(
            to_email=to_email,
            subject=f"{BRAND_NAME}: {subject}",
            html_content=_paragraphs(*lines),
            text_content="\n\n".join(lines),
        )

    def send_booking_requested(self, booking: Booking) -> None:
        tutor_user = booking.tutor.user
        self._send(
            tutor_user.email,
            "New booking request",
            f"Hi {tutor_user.full_name},",
            f"{booking.student.full_name} requested a {booking.duration_minutes}-minute session "
            f"on {_fmt(booking.scheduled_at)}.",
            "Please confirm or decline the request.",
        )

    def send_booking_confirmation(self, booking: Booking) -> None:
        student = booking.student
        self._send(
            student.email,
            "Your booking is confirmed",
            f"Hi {student.full_name},",
            f"{booking.tutor.user.full_name} confirmed your session on "
            f"{_fmt(booking.scheduled_at)} ({booking.duration_minutes} minutes).",
        )

    def send_booking_rescheduled(self, booking: Booking, previous: Optional[datetime]) -> None:
        tutor_user = booking.tutor.user
        self._send(
            tutor_user.email,
            "Booking rescheduled",
            f"Hi {tutor_user.full_name},",
            f"{booking.student.full_name} moved their session from {_fmt(previous)} "
            f"to {_fmt(booking.scheduled_at)}. It is awaiting your confirmation again.",
        )

    def send_booking_cancellation(
        self,
        booking: Booking,
        cancelled_by: str,
        *,
        is_late: bool = False,
        refund_amount: Optional[Decimal] = None,
        refund_issued: bool = False,
        penalty_until: Optional[datetime] = None,
    ) -> None:
        """Tell the party that did not cancel (both parties for admin/system)."""
        student = booking.student
        tutor_user = booking.tutor.user
        when = _fmt(booking.scheduled_at)

        if cancelled_by != "student":
            lines = [f"Hi {student.full_name},", f"Your session on {when} was cancelled."]
            if refund_issued and refund_amount is not None:
                lines.append(f"A refund of ${refund_amount} has been issued to your payment method.")
            self._send(student.email, "Booking cancelled", *lines)

        if cancelled_by != "tutor":
            lines = [
                f"Hi {tutor_user.full_name},",
                f"The session with {student.full_name} on {when} was cancelled by {cancelled_by}.",
            ]
            if is_late and cancelled_by == "student":
                lines.append(
                    f"The cancellation was made less than "
                    f"{settings.late_cancellation_cutoff_hours} hours before the session."
                )
            self._send(tutor_user.email, "Booking cancelled", *lines)

        if cancelled_by == "student":
            lines = [f"Hi {student.full_name},", f"You cancelled your session on {when}."]
            if refund_amount is not None:
                lines.append(f"Session price: ${refund_amount}.")
            if penalty_until is not None:
                lines.append(
                    "Because of repeated late cancellations you cannot cancel or book sessions "
                    f"until {_fmt(penalty_until)}. You can appeal this restriction."
                )
            self._send(student.email, "Cancellation received", *lines)

    def send_refund_issued(self, booking: Booking, refund_reference: str) -> None:
        student = booking.student
        self._send(
            student.email,
            "Refund issued",
            f"Hi {student.full_name},",
            f"We refunded ${booking.refund_amount or booking.price} for your session on "
            f"{_fmt(booking.scheduled_at)} (reference {refund_reference}).",
        )
