"""Operator endpoint to run the settlement sweep outside its schedule."""

import logging
from dataclasses import asdict

from fastapi import APIRouter

from app.core.config import settings
from app.core.database import SessionLocal
from app.schemas.payment_schedule import SettlementRunResponse
from app.services.payment_provider import get_payment_provider
from app.services.settlement_service import SettlementService
from app.tasks import enqueue_settlement_run

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/run",
    response_model=SettlementRunResponse,
    status_code=202,
    summary="Run settlement now",
)
async def run_settlement() -> SettlementRunResponse:
    """Charge every cycle due today or earlier.

    Queued on the worker, or run inline when settlement runs in-process.
    """
    if settings.in_process_settlement:
        summary = await SettlementService(SessionLocal, get_payment_provider()).run()
        return SettlementRunResponse(status="completed", summary=asdict(summary))

    job = await enqueue_settlement_run()
    logger.info("Queued settlement run %s", job.job_id if job is not None else "(duplicate)")
    return SettlementRunResponse(
        status="queued" if job is not None else "already_queued",
        job_id=job.job_id if job is not None else None,
    )
