# backend/tutormarket/routes/v1/internal.py
"""
Scheduler-only endpoints, authenticated with ``Authorization: Bearer <CRON_SECRET>``.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from ...api.dependencies import get_refund_orchestrator, verify_cron_secret
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...schemas.booking import ExpiredRefundSweepResponse
from ...services.refund_orchestrator import RefundOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["internal"], include_in_schema=False, dependencies=[Depends(verify_cron_secret)]
)


@router.post("/refund-expired-bookings", response_model=ExpiredRefundSweepResponse)
async def refund_expired_bookings(
    orchestrator: RefundOrchestrator = Depends(get_refund_orchestrator),
) -> ExpiredRefundSweepResponse:
    """Cancel and refund paid bookings whose tutor never confirmed before the start."""
    try:
        summary = await asyncio.to_thread(orchestrator.refund_expired_pending)
    except DomainException as e:
        handle_domain_exception(e)
    logger.info("Expired booking sweep finished: %d processed", summary.processed)
    return ExpiredRefundSweepResponse(
        processed=summary.processed,
        succeeded=summary.succeeded,
        already_refunded=summary.already_refunded,
        failed=summary.failed,
        skipped=summary.skipped,
        errors=summary.errors,
    )
