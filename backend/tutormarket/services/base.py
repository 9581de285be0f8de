# backend/tutormarket/services/base.py
"""
Base Service Pattern for TutorMarket

Provides common functionality for all service classes:
- Transaction management
- Retry of transient serialization failures and deadlocks
- Logging
- Performance monitoring
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ServiceException
from ..core.timezone_utils import Clock, utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# SQLSTATE codes a booking write may safely retry
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
_RETRYABLE_SQLSTATES = {SERIALIZATION_FAILURE, DEADLOCK_DETECTED}


def is_transient_db_error(exc: BaseException) -> bool:
    """
    True when ``exc`` (or anything in its cause chain) is a serialization
    failure or deadlock reported by the database driver.
    """
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        orig = getattr(current, "orig", None)
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if code in _RETRYABLE_SQLSTATES:
            return True
        message = str(current).lower()
        if "deadlock detected" in message or "could not serialize access" in message:
            return True
        current = current.__cause__ or current.__context__
    return False


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Database session management
    - Logging
    - Transaction handling
    - Performance monitoring
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        """
        Initialize base service.

        Args:
            db: Database session
            clock: Source of "now"; defaults to wall-clock UTC
        """
        self.db = db
        self.clock: Clock = clock or utc_now
        self.logger = logging.getLogger(self.__class__.__name__)

    def now(self):
        return self.clock()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Usage:
            with self.transaction():
                self.db.add(entity)
                # commit is handled automatically
        """
        try:
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            if is_transient_db_error(e):
                raise
            raise ServiceException(f"Database operation failed: {str(e)}") from e
        except Exception as e:
            self.logger.debug(f"Transaction rolled back: {type(e).__name__}")
            self.db.rollback()
            raise

    def run_with_retry(self, operation: str, func: Callable[[], Any], attempts: int) -> Any:
        """
        Run ``func`` (which opens its own transaction) and retry it when the
        database aborts it with a serialization failure or deadlock.
        """
        for attempt in range(1, attempts + 1):
            try:
                return func()
            except Exception as exc:
                if not is_transient_db_error(exc) or attempt == attempts:
                    if is_transient_db_error(exc):
                        raise ServiceException(
                            f"{operation} could not be serialized after {attempts} attempts",
                            code="SERIALIZATION_RETRY_EXHAUSTED",
                        ) from exc
                    raise
                self.logger.warning(
                    "Retrying %s after transient database error (attempt %d/%d): %s",
                    operation,
                    attempt,
                    attempts,
                    exc,
                )
                prometheus_metrics.inc_booking_write_retry(operation)
                time.sleep(0.05 * attempt)
        raise ServiceException(f"{operation} failed")  # pragma: no cover

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("cancel_booking")
            def cancel_booking(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time
                    if elapsed > 1.0 and hasattr(self, "logger"):
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="success" if success else "error",
                        error_type=error_type,
                    )

            wrapper._operation_name = operation_name  # type: ignore[attr-defined]
            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log an operation with structured context."""
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})

