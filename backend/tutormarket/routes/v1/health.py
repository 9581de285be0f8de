# backend/tutormarket/routes/v1/health.py
"""
Health check and Prometheus scrape endpoints.
"""

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Response

from ...core.config import settings
from ...core.constants import API_VERSION, BRAND_NAME
from ...monitoring.prometheus_metrics import prometheus_metrics
from ...schemas._strict_base import StrictModel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(StrictModel):
    status: str
    service: str
    version: str
    environment: str
    timestamp: str


@router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Liveness check for load balancers and monitoring."""
    return HealthResponse(
        status="ok",
        service=f"{BRAND_NAME.lower()}-api",
        version=API_VERSION,
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )


@router.get("/metrics", include_in_schema=False, response_class=Response, response_model=None)
def get_prometheus_metrics() -> Response:
    """Expose Prometheus metrics for scraping (text exposition format)."""
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
