import logging
from dataclasses import asdict
from typing import Any

from arq import cron

from app.core.config import settings
from app.core.database import SessionLocal
from app.services.billing_calendar import billing_timezone
from app.services.payment_provider import get_payment_provider
from app.services.settlement_service import SettlementService
from app.tasks import redis_settings

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    ctx["provider"] = get_payment_provider()


async def settle_due_schedules_task(ctx: dict[str, Any]) -> dict[str, int]:
    """Background task: request charges for every billing cycle due today or earlier.

    Runs daily at the settlement hour in the billing timezone, and once when
    the worker starts so a run missed during downtime is caught up.
    """
    service = SettlementService(SessionLocal, provider=ctx.get("provider"))
    summary = await service.run()
    if summary.errored:
        logger.warning("Settlement finished with %d errored charges", summary.errored)
    return asdict(summary)


class WorkerSettings:
    functions = [settle_due_schedules_task]
    cron_jobs = [
        cron(
            settle_due_schedules_task,
            hour=settings.SETTLEMENT_HOUR,
            minute=0,
            run_at_startup=True,
        ),
    ]
    on_startup = startup
    timezone = billing_timezone()
    redis_settings = redis_settings
