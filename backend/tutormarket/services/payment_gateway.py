# backend/tutormarket/services/payment_gateway.py
"""
Payment gateway adapter.

The booking engine only ever asks the gateway for one thing: refund a
captured payment. ``PaymentGateway`` is that contract; ``StripePaymentGateway``
implements it with the Stripe SDK. Every failure surfaces as GatewayError.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import logging
import time
from typing import Any, Dict, Optional, Protocol

import stripe

from ..core.config import settings
from ..core.exceptions import GatewayError

logger = logging.getLogger(__name__)

MAX_GATEWAY_ATTEMPTS = 3


@dataclass(frozen=True)
class GatewayRefund:
    refund_reference: str
    amount: Optional[Decimal] = None
    already_refunded: bool = False


class PaymentGateway(Protocol):
    def refund(
        self,
        payment_id: str,
        reason: str,
        *,
        amount: Optional[Decimal] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> GatewayRefund:
        ...


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


class StripePaymentGateway:
    """
    Refunds through Stripe.

    ``payment_id`` is either a Checkout Session id (``cs_...``), resolved to
    its PaymentIntent first, or a PaymentIntent id (``pi_...``).
    """

    _retryable_errors = (stripe.RateLimitError, stripe.APIConnectionError, stripe.APIError)

    def __init__(self, api_key: Optional[str] = None, *, retry_delay: float = 0.5):
        key = api_key
        if key is None and settings.stripe_secret_key:
            key = settings.stripe_secret_key.get_secret_value()
        self.stripe_configured = bool(key)
        self.retry_delay = retry_delay
        if self.stripe_configured:
            stripe.api_key = key
            stripe.max_network_retries = 1
            logger.info("Stripe payment gateway configured")
        else:
            logger.warning("Stripe secret key not configured; refunds will fail")

    def refund(
        self,
        payment_id: str,
        reason: str,
        *,
        amount: Optional[Decimal] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> GatewayRefund:
        if not self.stripe_configured:
            raise GatewayError("Payment service not available")

        payment_intent = self._call(self._resolve_payment_intent, payment_id)
        payment_intent_id = _get(payment_intent, "id")

        charge = _get(payment_intent, "latest_charge")
        if _get(charge, "amount_refunded", 0):
            existing = self._call(self._latest_refund, payment_intent_id)
            if existing is not None:
                logger.info(
                    "Payment %s already refunded at gateway (refund %s)",
                    payment_intent_id,
                    _get(existing, "id"),
                )
                return GatewayRefund(
                    refund_reference=_get(existing, "id"),
                    amount=Decimal(_get(existing, "amount", 0)) / 100,
                    already_refunded=True,
                )

        params: Dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "reason": "requested_by_customer",
            "metadata": {"refund_reason": reason, **(metadata or {})},
        }
        if amount is not None:
            cents = to_cents(amount)
            received = _get(payment_intent, "amount_received") or _get(payment_intent, "amount")
            if cents <= 0 or (received is not None and cents > received):
                raise GatewayError(
                    f"Invalid refund amount {cents} cents for payment {payment_intent_id}",
                    provider_code="invalid_amount",
                )
            params["amount"] = cents

        refund = self._call(self._create_refund, params, idempotency_key)
        return GatewayRefund(
            refund_reference=_get(refund, "id"),
            amount=Decimal(_get(refund, "amount", 0)) / 100,
        )

    def _resolve_payment_intent(self, payment_id: str) -> Any:
        intent_id = payment_id
        if payment_id.startswith("cs_"):
            session = stripe.checkout.Session.retrieve(payment_id)
            intent_id = _get(session, "payment_intent")
            if isinstance(intent_id, dict) or hasattr(intent_id, "id"):
                intent_id = _get(intent_id, "id")
            if not intent_id:
                raise GatewayError(
                    f"Checkout session {payment_id} has no payment intent",
                    provider_code="missing_payment_intent",
                )
        return stripe.PaymentIntent.retrieve(intent_id, expand=["latest_charge"])

    def _latest_refund(self, payment_intent_id: str) -> Any:
        refunds = stripe.Refund.list(payment_intent=payment_intent_id, limit=1)
        data = _get(refunds, "data") or []
        return data[0] if data else None

    def _create_refund(self, params: Dict[str, Any], idempotency_key: Optional[str]) -> Any:
        return stripe.Refund.create(**params, idempotency_key=idempotency_key)

    def _call(self, func, *args):
        """Run a Stripe call, retrying transient errors and mapping failures to GatewayError."""
        for attempt in range(1, MAX_GATEWAY_ATTEMPTS + 1):
            try:
                return func(*args)
            except GatewayError:
                raise
            except self._retryable_errors as e:
                if attempt == MAX_GATEWAY_ATTEMPTS:
                    logger.error(f"Stripe error after {attempt} attempts: {str(e)}")
                    raise GatewayError(
                        f"Payment gateway unavailable: {str(e)}",
                        retryable=True,
                        provider_code=getattr(e, "code", None),
                    ) from e
                logger.warning(f"Transient Stripe error (attempt {attempt}): {str(e)}")
                time.sleep(self.retry_delay * attempt)
            except stripe.StripeError as e:
                logger.error(f"Stripe error processing refund: {str(e)}")
                raise GatewayError(
                    f"Refund failed: {str(e)}", provider_code=getattr(e, "code", None)
                ) from e
        raise GatewayError("Refund failed")  # pragma: no cover
