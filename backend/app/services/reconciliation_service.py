"""Applies provider payment notifications to the schedule and the ledger.

Notifications may be redelivered, reordered or raced by a second delivery of
the same event. Every write here is therefore either insert-or-ignore (ledger,
initial cycle) or a conditional update keyed by merchant_uid, and a replay
that finds its effect already stored is reported as a duplicate.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.models.payment_schedule import OPEN_STATUSES, PaymentSchedule, ScheduleStatus
from app.models.payment_transaction import TransactionStatus
from app.models.shared import PaymentType, utc_now
from app.repositories.payment_schedule_repository import PaymentScheduleRepository
from app.repositories.payment_transaction_repository import PaymentTransactionRepository
from app.schemas.charge_payload import ChargePayload
from app.services.billing_calendar import BillingCalendar
from app.services.billing_identifiers import next_merchant_uid, parse_merchant_uid
from app.services.payment_provider import (
    PaymentProviderBase,
    ProviderPayment,
    WebhookResult,
    get_payment_provider,
)
from app.services.schedule_state_machine import ScheduleEvent

logger = logging.getLogger(__name__)

PAID = "paid"
FAILED = "failed"
CANCELLED = "cancelled"
READY = "ready"

SETTLED_STATUSES = (PAID, FAILED, CANCELLED)


def settled_status(payment: ProviderPayment) -> str | None:
    """The terminal status of a fetched payment, or None while it is unsettled.

    A partial refund leaves the provider status at ``paid`` with a non-zero
    ``cancel_amount``; that payment counts as cancelled.
    """
    if payment.cancel_amount > 0:
        return CANCELLED
    if payment.status in SETTLED_STATUSES:
        return payment.status
    return None


class ReconciliationOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass
class ReconciliationResult:
    outcome: ReconciliationOutcome
    status: str
    merchant_uid: str | None = None
    next_merchant_uid: str | None = None


class ReconciliationService:
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

    async def handle(self, notification: WebhookResult) -> ReconciliationResult:
        status = notification.status
        if status == READY:
            logger.info(
                "Payment %s (%s) is ready; nothing to reconcile",
                notification.merchant_uid,
                notification.external_reference,
            )
            return ReconciliationResult(
                ReconciliationOutcome.IGNORED, status, notification.merchant_uid
            )
        if status not in SETTLED_STATUSES:
            logger.warning(
                "Ignoring payment notification with unknown status %r for %s",
                status,
                notification.merchant_uid,
            )
            return ReconciliationResult(
                ReconciliationOutcome.IGNORED, status, notification.merchant_uid
            )
        if not notification.external_reference:
            raise ValidationError(
                "Payment notification has no external reference",
                {"merchant_uid": notification.merchant_uid, "status": status},
            )

        payment = await self.provider.get_payment(notification.external_reference)
        payload = ChargePayload.decode(payment.custom_data)
        reported = settled_status(payment)
        if reported is not None and reported != status:
            # A refunded payment was captured first, so it answers a paid or
            # failed notification as paid; its refund has a notification of its own
            if reported == CANCELLED:
                reported = PAID
            if reported != status:
                logger.info(
                    "Notification for %s said %s, provider reports %s",
                    payload.merchant_uid,
                    status,
                    reported,
                )
                status = reported

        if status == PAID:
            return self._handle_paid(payment, payload)
        if status == FAILED:
            return self._handle_failed(payment, payload)
        if status == CANCELLED:
            return self._handle_cancelled(payment, payload)

        logger.warning("Provider reports status %r for %s", status, payload.merchant_uid)
        return ReconciliationResult(ReconciliationOutcome.IGNORED, status, payload.merchant_uid)

    def _handle_paid(
        self, payment: ProviderPayment, payload: ChargePayload
    ) -> ReconciliationResult:
        _, recorded = self.transaction_repo.record(
            external_reference=payment.external_reference,
            merchant_uid=payload.merchant_uid,
            business_id=payload.business_id,
            payment_type=payload.payment_type,
            status=TransactionStatus.PAID,
            amount=payment.amount or payload.amount,
            provider_payload=payment.raw,
            time_settled=payment.paid_at or utc_now(),
        )

        if payload.payment_type == PaymentType.INITIAL:
            _, sequence = parse_merchant_uid(payload.merchant_uid)
            _, changed = self.schedule_repo.insert_paid(
                merchant_uid=payload.merchant_uid,
                business_id=payload.business_id,
                sequence=sequence,
                billing_plan=payload.billing_plan,
                amount=payload.amount,
                vat=payload.vat,
                scheduled_date=payload.cycle_start_date,
            )
        else:
            _, changed = self.schedule_repo.transition(
                payload.merchant_uid, ScheduleEvent.CHARGE_SUCCEEDED
            )

        forward = self._open_next_cycle(payload)
        outcome = (
            ReconciliationOutcome.APPLIED
            if (recorded or changed or forward is not None)
            else ReconciliationOutcome.DUPLICATE
        )
        logger.info(
            "Paid %s for %s: %s (next cycle %s)",
            payload.merchant_uid,
            payload.business_id,
            outcome.value,
            forward.merchant_uid if forward is not None else "unchanged",
        )
        return ReconciliationResult(
            outcome,
            PAID,
            payload.merchant_uid,
            forward.merchant_uid if forward is not None else None,
        )

    def _open_next_cycle(self, payload: ChargePayload) -> PaymentSchedule | None:
        """Open the cycle after the one just paid, unless something already moved on."""
        business_id = payload.business_id
        paid_uid = payload.merchant_uid
        upcoming_uid = next_merchant_uid(paid_uid)
        _, paid_sequence = parse_merchant_uid(paid_uid)

        pointer = self.schedule_repo.get_pointer(business_id)
        expected = str(pointer.merchant_uid) if pointer is not None else None
        if expected is not None and expected != paid_uid:
            _, pointer_sequence = parse_merchant_uid(expected)
            if pointer_sequence > paid_sequence:
                return None
            current = self.schedule_repo.get_by_merchant_uid(expected)
            if current is not None and ScheduleStatus(current.status) in OPEN_STATUSES:
                logger.warning(
                    "Business %s already has open cycle %s; not opening %s",
                    business_id,
                    expected,
                    upcoming_uid,
                )
                return None

        return self.schedule_repo.open_cycle(
            expected_pointer=expected,
            merchant_uid=upcoming_uid,
            business_id=business_id,
            sequence=paid_sequence + 1,
            billing_plan=payload.billing_plan,
            amount=payload.amount,
            vat=payload.vat,
            scheduled_date=self.calendar.next_cycle_date(
                payload.cycle_start_date, payload.billing_plan
            ),
        )

    def _handle_failed(
        self, payment: ProviderPayment, payload: ChargePayload
    ) -> ReconciliationResult:
        reason = payment.failure_reason or "Payment failed"
        _, recorded = self.transaction_repo.record(
            external_reference=payment.external_reference,
            merchant_uid=payload.merchant_uid,
            business_id=payload.business_id,
            payment_type=payload.payment_type,
            status=TransactionStatus.FAILED,
            amount=payment.amount or payload.amount,
            failure_reason=reason,
            provider_payload=payment.raw,
            time_settled=utc_now(),
        )

        changed = False
        if payload.payment_type == PaymentType.INITIAL:
            # No cycle row exists until the first charge succeeds
            logger.info(
                "Initial charge %s for %s failed: %s",
                payload.merchant_uid,
                payload.business_id,
                reason,
            )
        else:
            schedule, changed = self.schedule_repo.transition(
                payload.merchant_uid,
                ScheduleEvent.CHARGE_FAILED,
                failure={
                    "reason": reason,
                    "timestamp": utc_now().isoformat(),
                    "external_reference": payment.external_reference,
                },
            )
            logger.warning(
                "Charge %s for %s failed (%d failures): %s",
                payload.merchant_uid,
                payload.business_id,
                len(schedule.failures or []),
                reason,
            )

        outcome = (
            ReconciliationOutcome.APPLIED
            if (recorded or changed)
            else ReconciliationOutcome.DUPLICATE
        )
        return ReconciliationResult(outcome, FAILED, payload.merchant_uid)

    def _handle_cancelled(
        self, payment: ProviderPayment, payload: ChargePayload
    ) -> ReconciliationResult:
        _, recorded = self.transaction_repo.record(
            external_reference=payment.external_reference,
            merchant_uid=payload.merchant_uid,
            business_id=payload.business_id,
            payment_type=PaymentType.REFUND,
            status=TransactionStatus.REFUNDED,
            amount=-abs(payment.cancel_amount),
            provider_payload=payment.raw,
            time_settled=payment.cancelled_at or utc_now(),
        )
        _, changed = self.schedule_repo.transition(
            payload.merchant_uid, ScheduleEvent.REFUND_CONFIRMED
        )
        logger.info(
            "Refund of %d on %s for %s confirmed",
            payment.cancel_amount,
            payload.merchant_uid,
            payload.business_id,
        )
        outcome = (
            ReconciliationOutcome.APPLIED
            if (recorded or changed)
            else ReconciliationOutcome.DUPLICATE
        )
        return ReconciliationResult(outcome, CANCELLED, payload.merchant_uid)
