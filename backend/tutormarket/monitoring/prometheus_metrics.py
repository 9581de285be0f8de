"""
Prometheus metrics for TutorMarket.

Service operation timings are fed by ``@BaseService.measure_operation``;
the domain counters track booking outcomes that matter operationally
(refund settlement results and penalties applied).
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry to avoid conflicts with default process metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "tutormarket_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "tutormarket_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "tutormarket_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

refund_outcomes_total = Counter(
    "tutormarket_refund_outcomes_total",
    "Refund reconciliation outcomes",
    ["outcome"],  # issued | already_refunded | failed | skipped
    registry=REGISTRY,
)

penalties_applied_total = Counter(
    "tutormarket_penalties_applied_total",
    "Cancellation penalties applied to students",
    registry=REGISTRY,
)

booking_write_retries_total = Counter(
    "tutormarket_booking_write_retries_total",
    "Booking writes retried after a serialization failure or deadlock",
    ["operation"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'cancel_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def inc_refund_outcome(outcome: str) -> None:
        refund_outcomes_total.labels(outcome=outcome).inc()

    @staticmethod
    def inc_penalty_applied() -> None:
        penalties_applied_total.inc()

    @staticmethod
    def inc_booking_write_retry(operation: str) -> None:
        booking_write_retries_total.labels(operation=operation).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


# Singleton instance
prometheus_metrics = PrometheusMetrics()
