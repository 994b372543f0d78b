"""Daily settlement sweep: request charges for every cycle that is due."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.exceptions import NoDefaultMethodError, PaymentRequestError, ValidationError
from app.repositories.payment_schedule_repository import PaymentScheduleRepository
from app.services.billing_calendar import BillingCalendar
from app.services.payment_executor import (
    AcknowledgmentStatus,
    ChargeRequest,
    PaymentExecutor,
)
from app.services.payment_provider import PaymentProviderBase, get_payment_provider
from app.services.schedule_state_machine import ScheduleEvent

logger = logging.getLogger(__name__)

REQUESTED = "requested"
PENDING = "pending"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class SettlementSummary:
    due: int = 0
    requested: int = 0
    pending: int = 0
    failed: int = 0
    skipped: int = 0
    errored: int = 0


class SettlementService:
    """Fans out one charge per due cycle, each on its own database session."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        provider: PaymentProviderBase | None = None,
        calendar: BillingCalendar | None = None,
    ):
        self.session_factory = session_factory
        self.provider = provider or get_payment_provider()
        self.calendar = calendar or BillingCalendar()

    def _due_requests(self, now: datetime) -> list[ChargeRequest]:
        today = self.calendar.today(now)
        db = self.session_factory()
        try:
            repo = PaymentScheduleRepository(db)
            due = repo.get_due(
                today, processed_before=self.calendar.to_utc(self.calendar.midnight(today))
            )
            return [ChargeRequest.for_schedule(schedule) for schedule in due]
        finally:
            db.close()

    async def run(self, now: datetime | None = None) -> SettlementSummary:
        now = now or self.calendar.now()
        requests = self._due_requests(now)
        summary = SettlementSummary(due=len(requests))
        if not requests:
            logger.info("No billing cycles due on %s", self.calendar.today(now))
            return summary

        results = await asyncio.gather(
            *(self._settle(request, now) for request in requests),
            return_exceptions=True,
        )
        for request, result in zip(requests, results, strict=True):
            if isinstance(result, BaseException):
                summary.errored += 1
                logger.error(
                    "Settling %s for %s raised: %s",
                    request.merchant_uid,
                    request.business_id,
                    result,
                    exc_info=result,
                )
            elif result == REQUESTED:
                summary.requested += 1
            elif result == PENDING:
                summary.pending += 1
            elif result == FAILED:
                summary.failed += 1
            else:
                summary.skipped += 1

        logger.info(
            "Settlement for %s: %d due, %d requested, %d pending, %d failed, %d skipped, "
            "%d errored",
            self.calendar.today(now),
            summary.due,
            summary.requested,
            summary.pending,
            summary.failed,
            summary.skipped,
            summary.errored,
        )
        return summary

    async def _settle(self, request: ChargeRequest, now: datetime) -> str:
        db = self.session_factory()
        try:
            repo = PaymentScheduleRepository(db)
            if not repo.mark_processed(request.merchant_uid, self.calendar.to_utc(now)):
                # Paused, cancelled or settled since the sweep read it
                return SKIPPED

            try:
                acknowledgment = await PaymentExecutor(db, self.provider).charge(request)
            except (PaymentRequestError, NoDefaultMethodError, ValidationError) as e:
                logger.warning(
                    "Charge %s for %s failed: %s %s",
                    request.merchant_uid,
                    request.business_id,
                    e.message,
                    e.params,
                )
                repo.transition(
                    request.merchant_uid,
                    ScheduleEvent.CHARGE_FAILED,
                    failure={
                        "reason": e.message,
                        "timestamp": self.calendar.to_utc(now).isoformat(),
                        "external_reference": None,
                    },
                )
                return FAILED
            return (
                REQUESTED
                if acknowledgment.status == AcknowledgmentStatus.ACCEPTED
                else PENDING
            )
        finally:
            db.close()
