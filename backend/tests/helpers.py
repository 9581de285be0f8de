# backend/tests/helpers.py
"""Test doubles and reference instants shared by unit and route tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from tutormarket.services.payment_gateway import GatewayRefund

# Friday 2024-03-01 09:00 UTC; the reference Monday session is three days later
FRIDAY_MORNING = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
MONDAY_10AM = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)
MONDAY = 1  # 0=Sunday


class MutableClock:
    """Callable UTC clock that tests move explicitly."""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


class FakePaymentGateway:
    """
    In-memory gateway honouring idempotency keys like Stripe does: a repeated
    key returns the refund created the first time.
    """

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.refunds: Dict[str, GatewayRefund] = {}
        self.fail_with: Optional[Exception] = None

    def refund(
        self,
        payment_id: str,
        reason: str,
        *,
        amount: Optional[Decimal] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> GatewayRefund:
        self.calls.append(
            {
                "payment_id": payment_id,
                "reason": reason,
                "amount": amount,
                "idempotency_key": idempotency_key,
                "metadata": metadata,
            }
        )
        if self.fail_with is not None:
            raise self.fail_with
        key = idempotency_key or payment_id
        if key in self.refunds:
            return self.refunds[key]
        refund = GatewayRefund(refund_reference=f"re_{key}", amount=amount)
        self.refunds[key] = refund
        return refund


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: List[Any] = []

    def publish(self, event: Any) -> None:
        self.events.append(event)
        return None

    def publish_all(self, events: List[Any]) -> None:
        for event in events:
            self.publish(event)

    def of_type(self, event_cls: type) -> List[Any]:
        return [e for e in self.events if isinstance(e, event_cls)]

