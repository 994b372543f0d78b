"""Subscription operations on a business's billing cycles."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.exceptions import (
    DuplicateScheduleError,
    NothingToRefundError,
    PaymentRequestError,
    ProviderTimeoutError,
    ScheduleNotFoundError,
    SubscriptionExistsError,
)
from app.models.payment_schedule import PaymentSchedule, ScheduleStatus
from app.models.payment_transaction import PaymentTransaction
from app.models.shared import BillingPlan, PaymentType
from app.repositories.payment_schedule_repository import PaymentScheduleRepository
from app.repositories.payment_transaction_repository import PaymentTransactionRepository
from app.services.billing_calendar import BillingCalendar
from app.services.billing_identifiers import format_merchant_uid, parse_plan, validate_business_id
from app.services.payment_executor import ChargeAcknowledgment, ChargeRequest, PaymentExecutor
from app.services.payment_provider import PaymentProviderBase, get_payment_provider
from app.services.proration import compute_refund
from app.services.schedule_state_machine import ScheduleEvent

logger = logging.getLogger(__name__)

REFUNDABLE_STATUSES = (ScheduleStatus.SCHEDULED, ScheduleStatus.PAUSED)


@dataclass
class RefundOutcome:
    cancelled_merchant_uid: str
    refunded_merchant_uid: str
    refund_amount: int
    fee_waived: bool
    provider_status: str | None = None


class ScheduleService:
    def __init__(
        self,
        db: Session,
        provider: PaymentProviderBase | None = None,
        calendar: BillingCalendar | None = None,
    ):
        self.db = db
        self.provider = provider or get_payment_provider()
        self.calendar = calendar or BillingCalendar()
        self.schedule_repo = PaymentScheduleRepository(db)
        self.transaction_repo = PaymentTransactionRepository(db)
        self.executor = PaymentExecutor(db, self.provider)

    def get_active(self, business_id: str) -> PaymentSchedule:
        schedule = self.schedule_repo.get_open(business_id)
        if schedule is None:
            raise ScheduleNotFoundError(
                f"Business {business_id} has no active billing cycle",
                {"business_id": business_id},
            )
        return schedule

    def history(
        self, business_id: str
    ) -> tuple[list[PaymentSchedule], list[PaymentTransaction]]:
        return (
            self.schedule_repo.get_by_business_id(business_id),
            self.transaction_repo.get_by_business_id(business_id),
        )

    async def subscribe(
        self,
        business_id: str,
        billing_plan: BillingPlan | str,
        amount: int,
        vat: int = 0,
        now: datetime | None = None,
    ) -> ChargeAcknowledgment:
        """Request the initial charge of a new subscription, starting today.

        The first cycle row is written when the charge is reported paid.
        """
        validate_business_id(business_id)
        plan = billing_plan if isinstance(billing_plan, BillingPlan) else parse_plan(billing_plan)

        if self.schedule_repo.get_open(business_id) or self.schedule_repo.count_open(business_id):
            raise SubscriptionExistsError(
                f"Business {business_id} already has an active subscription",
                {"business_id": business_id},
            )

        sequence = self.schedule_repo.next_sequence(business_id)
        request = ChargeRequest(
            business_id=business_id,
            merchant_uid=format_merchant_uid(business_id, sequence),
            amount=amount,
            vat=vat,
            billing_plan=plan,
            cycle_start_date=self.calendar.today(now),
            payment_type=PaymentType.INITIAL,
        )
        return await self.executor.charge(request)

    def pause(self, business_id: str) -> PaymentSchedule:
        """Pause the upcoming cycle; refused while its charge awaits an outcome."""
        active = self.get_active(business_id)
        schedule, _ = self.schedule_repo.transition(
            str(active.merchant_uid), ScheduleEvent.PAUSE, refuse_pending_charge=True
        )
        logger.info("Paused %s for %s", schedule.merchant_uid, business_id)
        return schedule

    async def resume(
        self, business_id: str, now: datetime | None = None
    ) -> tuple[PaymentSchedule, ChargeAcknowledgment | None]:
        """Resume a paused cycle, charging at once if its due date has passed."""
        now = now or self.calendar.now()
        active = self.get_active(business_id)
        merchant_uid = str(active.merchant_uid)

        if not self.calendar.is_past_due(active.scheduled_date, now):
            schedule, _ = self.schedule_repo.transition(merchant_uid, ScheduleEvent.RESUME)
            logger.info(
                "Resumed %s for %s, due %s", merchant_uid, business_id, schedule.scheduled_date
            )
            return schedule, None

        today = self.calendar.today(now)
        schedule, _ = self.schedule_repo.transition(
            merchant_uid,
            ScheduleEvent.RESUME,
            changes={"scheduled_date": today, "time_processed": self.calendar.to_utc(now)},
        )
        logger.info("Resumed late cycle %s for %s, charging now", merchant_uid, business_id)
        acknowledgment = await self.executor.charge(
            ChargeRequest.for_schedule(schedule, today)
        )
        return schedule, acknowledgment

    def change_plan(
        self,
        business_id: str,
        billing_plan: BillingPlan | str,
        amount: int,
        vat: int = 0,
    ) -> PaymentSchedule:
        """Replace plan and price on the upcoming cycle; takes effect at its charge."""
        plan = billing_plan if isinstance(billing_plan, BillingPlan) else parse_plan(billing_plan)
        active = self.get_active(business_id)
        schedule, _ = self.schedule_repo.transition(
            str(active.merchant_uid),
            ScheduleEvent.CHANGE_PLAN,
            changes={"billing_plan": plan.value, "amount": amount, "vat": vat},
        )
        logger.info("Changed plan of %s to %s (%d)", schedule.merchant_uid, plan.value, amount)
        return schedule

    async def cancel_and_refund(
        self, business_id: str, now: datetime | None = None
    ) -> RefundOutcome:
        """Cancel the upcoming cycle and refund the unserved part of the paid one.

        The refund is only requested here; the ledger entry and the REFUNDED
        status are written when the provider reports the cancellation.
        """
        now = now or self.calendar.now()
        latest = self.schedule_repo.get_latest(business_id, limit=2)
        if not latest or ScheduleStatus(latest[0].status) not in REFUNDABLE_STATUSES:
            raise NothingToRefundError(
                f"Business {business_id} has no upcoming cycle to cancel",
                {
                    "business_id": business_id,
                    "status": latest[0].status if latest else None,
                },
            )

        upcoming = latest[0]
        pointer = self.schedule_repo.get_pointer(business_id)
        paid = latest[1] if len(latest) > 1 else None
        if (
            pointer is None
            or pointer.merchant_uid != upcoming.merchant_uid
            or paid is None
            or paid.status != ScheduleStatus.PAID.value
        ):
            params = {
                "business_id": business_id,
                "latest": [(s.merchant_uid, s.status) for s in latest],
                "active_cycle": pointer.merchant_uid if pointer is not None else None,
            }
            logger.error("Inconsistent billing cycles for %s: %s", business_id, params)
            raise DuplicateScheduleError(
                f"Billing cycles of business {business_id} are inconsistent", params
            )

        proration = compute_refund(
            cycle_start_date=paid.scheduled_date,
            billing_plan=BillingPlan(paid.billing_plan),
            amount=int(paid.amount),
            now=now,
            tz=self.calendar.tz,
        )

        self.schedule_repo.transition(
            str(upcoming.merchant_uid), ScheduleEvent.CANCEL, refuse_pending_charge=True
        )
        logger.info(
            "Cancelled %s for %s; refunding %d of %s",
            upcoming.merchant_uid,
            business_id,
            proration.refund_amount,
            paid.merchant_uid,
        )

        outcome = RefundOutcome(
            cancelled_merchant_uid=str(upcoming.merchant_uid),
            refunded_merchant_uid=str(paid.merchant_uid),
            refund_amount=proration.refund_amount,
            fee_waived=proration.fee_waived,
        )
        if proration.refund_amount <= 0:
            return outcome

        try:
            result = await self.provider.refund(
                str(paid.merchant_uid),
                proration.refund_amount,
                reason="Subscription cancelled",
            )
        except ProviderTimeoutError:
            logger.warning("Refund of %s timed out; awaiting notification", paid.merchant_uid)
            outcome.provider_status = "pending"
            return outcome
        except PaymentRequestError as e:
            logger.error(
                "Refund of %d on %s failed after cancelling %s: %s %s",
                proration.refund_amount,
                paid.merchant_uid,
                upcoming.merchant_uid,
                e.code,
                e.message,
            )
            raise
        outcome.provider_status = result.status
        return outcome
