"""Event publisher - hands committed domain events to background delivery."""
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..core.config import settings

logger = logging.getLogger(__name__)

Dispatcher = Callable[[str, Dict[str, Any]], None]


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


def serialize_payload(event: Event) -> Dict[str, Any]:
    payload = event.to_dict()
    for key, value in payload.items():
        if isinstance(value, datetime):
            payload[key] = value.isoformat()
        elif isinstance(value, Decimal):
            payload[key] = str(value)
    return payload


class EventPublisher:
    """
    Publishes domain events for asynchronous processing.

    Delivery is fire-and-forget: the caller's request never waits on it
    and never sees its failures, which are logged here instead.
    """

    def __init__(self, dispatcher: Dispatcher, executor: Optional[Executor] = None):
        self.dispatcher = dispatcher
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.notification_workers, thread_name_prefix="notify_"
        )

    def publish(self, event: Event) -> Optional[Future]:
        event_type = f"event:{type(event).__name__}"
        payload = serialize_payload(event)
        try:
            future = self.executor.submit(self._deliver, event_type, payload)
        except RuntimeError as e:
            # Executor already shut down (process exiting)
            logger.error("Could not queue %s for %s: %s", event_type, payload.get("booking_id"), e)
            return None
        return future

    def publish_all(self, events: List[Event]) -> None:
        for event in events:
            self.publish(event)

    def _deliver(self, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            self.dispatcher(event_type, payload)
        except Exception:
            logger.exception(
                "Event handler failed for %s (booking %s)", event_type, payload.get("booking_id")
            )
