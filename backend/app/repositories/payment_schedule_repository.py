"""Repository for billing cycles and the per-business active cycle pointer.

Writes are single-record and conditional:

* status changes are an UPDATE guarded by the row's current status and
  ``version``, so a writer acting on a stale read matches zero rows;
* a forward cycle is inserted in the same transaction as a compare-and-swap
  of the ``active_cycles`` pointer, so two writers can never both open a
  cycle for one business.
"""

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    ChargePendingError,
    InvalidTransitionError,
    ScheduleNotFoundError,
)
from app.models.active_cycle import ActiveCycle
from app.models.payment_schedule import OPEN_STATUSES, PaymentSchedule, ScheduleStatus
from app.models.shared import BillingPlan, PaymentType, utc_now
from app.services.schedule_state_machine import ScheduleEvent, is_settled, next_status

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 3


class PaymentScheduleRepository:
    def __init__(self, db: Session):
        self.db = db

    # ── Reads ──────────────────────────────────────────────────────────

    def get_by_merchant_uid(self, merchant_uid: str) -> PaymentSchedule | None:
        return (
            self.db.query(PaymentSchedule)
            .filter(PaymentSchedule.merchant_uid == merchant_uid)
            .first()
        )

    def get_pointer(self, business_id: str) -> ActiveCycle | None:
        return self.db.query(ActiveCycle).filter(ActiveCycle.business_id == business_id).first()

    def get_current(self, business_id: str) -> PaymentSchedule | None:
        """The cycle the active pointer refers to, whatever its status."""
        pointer = self.get_pointer(business_id)
        if pointer is None:
            return None
        return self.get_by_merchant_uid(str(pointer.merchant_uid))

    def get_open(self, business_id: str) -> PaymentSchedule | None:
        """The business's next due cycle, if it is SCHEDULED, FAILED or PAUSED."""
        current = self.get_current(business_id)
        if current is None or ScheduleStatus(current.status) not in OPEN_STATUSES:
            return None
        return current

    def get_latest(self, business_id: str, limit: int = 2) -> list[PaymentSchedule]:
        return (
            self.db.query(PaymentSchedule)
            .filter(PaymentSchedule.business_id == business_id)
            .order_by(PaymentSchedule.time_scheduled.desc(), PaymentSchedule.sequence.desc())
            .limit(limit)
            .all()
        )

    def get_by_business_id(
        self, business_id: str, skip: int = 0, limit: int = 100
    ) -> list[PaymentSchedule]:
        return (
            self.db.query(PaymentSchedule)
            .filter(PaymentSchedule.business_id == business_id)
            .order_by(PaymentSchedule.sequence.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_due(
        self, today: date, processed_before: datetime | None = None
    ) -> list[PaymentSchedule]:
        """SCHEDULED cycles due today or earlier; late cycles are never skipped.

        ``processed_before`` leaves out cycles whose charge was already
        requested at or after that instant and is still awaiting its outcome.
        """
        query = self.db.query(PaymentSchedule).filter(
            PaymentSchedule.status == ScheduleStatus.SCHEDULED.value,
            PaymentSchedule.scheduled_date <= today,
        )
        if processed_before is not None:
            query = query.filter(
                or_(
                    PaymentSchedule.time_processed.is_(None),
                    PaymentSchedule.time_processed < processed_before,
                )
            )
        return query.order_by(
            PaymentSchedule.scheduled_date.asc(), PaymentSchedule.business_id.asc()
        ).all()

    def count_open(self, business_id: str) -> int:
        return (
            self.db.query(func.count(PaymentSchedule.id))
            .filter(
                PaymentSchedule.business_id == business_id,
                PaymentSchedule.status.in_([s.value for s in OPEN_STATUSES]),
            )
            .scalar()
        )

    def next_sequence(self, business_id: str) -> int:
        highest = (
            self.db.query(func.max(PaymentSchedule.sequence))
            .filter(PaymentSchedule.business_id == business_id)
            .scalar()
        )
        return 0 if highest is None else int(highest) + 1

    # ── Inserts ────────────────────────────────────────────────────────

    def insert_paid(
        self,
        *,
        merchant_uid: str,
        business_id: str,
        sequence: int,
        billing_plan: BillingPlan,
        amount: int,
        vat: int,
        scheduled_date: date,
        now: datetime | None = None,
    ) -> tuple[PaymentSchedule, bool]:
        """Record an initial cycle that was paid before any row existed for it.

        Returns ``(schedule, created)``; a replay returns the stored row.
        """
        now = now or utc_now()
        schedule = PaymentSchedule(
            merchant_uid=merchant_uid,
            business_id=business_id,
            sequence=sequence,
            payment_type=PaymentType.INITIAL.value,
            billing_plan=billing_plan.value,
            amount=amount,
            vat=vat,
            scheduled_date=scheduled_date,
            status=ScheduleStatus.PAID.value,
            failures=[],
            time_scheduled=now,
            time_processed=now,
        )
        self.db.add(schedule)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_by_merchant_uid(merchant_uid)
            if existing is None:
                raise
            return existing, False
        self.db.refresh(schedule)
        return schedule, True

    def open_cycle(
        self,
        *,
        expected_pointer: str | None,
        merchant_uid: str,
        business_id: str,
        sequence: int,
        billing_plan: BillingPlan,
        amount: int,
        vat: int,
        scheduled_date: date,
        now: datetime | None = None,
    ) -> PaymentSchedule | None:
        """Insert a SCHEDULED cycle and move the active pointer onto it.

        ``expected_pointer`` is the merchant_uid the pointer must currently
        hold (None: the business has no pointer yet). Returns None when
        another writer moved the pointer first or the cycle already exists.
        """
        if expected_pointer is None:
            self.db.add(ActiveCycle(business_id=business_id, merchant_uid=merchant_uid))
        else:
            moved = self.db.execute(
                update(ActiveCycle)
                .where(
                    ActiveCycle.business_id == business_id,
                    ActiveCycle.merchant_uid == expected_pointer,
                )
                .values(merchant_uid=merchant_uid, updated_at=now or utc_now())
                .execution_options(synchronize_session=False)
            ).rowcount
            if moved == 0:
                self.db.rollback()
                logger.info(
                    "Active cycle for %s moved past %s; not opening %s",
                    business_id,
                    expected_pointer,
                    merchant_uid,
                )
                return None

        schedule = PaymentSchedule(
            merchant_uid=merchant_uid,
            business_id=business_id,
            sequence=sequence,
            payment_type=PaymentType.SCHEDULED.value,
            billing_plan=billing_plan.value,
            amount=amount,
            vat=vat,
            scheduled_date=scheduled_date,
            status=ScheduleStatus.SCHEDULED.value,
            failures=[],
            time_scheduled=now or utc_now(),
        )
        self.db.add(schedule)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Cycle %s already opened for %s", merchant_uid, business_id)
            return None
        self.db.refresh(schedule)
        return schedule

    # ── Conditional updates ────────────────────────────────────────────

    def transition(
        self,
        merchant_uid: str,
        event: ScheduleEvent,
        changes: dict[str, Any] | None = None,
        failure: dict[str, Any] | None = None,
        refuse_pending_charge: bool = False,
    ) -> tuple[PaymentSchedule, bool]:
        """Apply ``event`` to a cycle with compare-and-swap on status and version.

        Returns ``(schedule, changed)``. A replayed event whose effect is
        already stored returns ``changed=False``; an event the transition
        table rejects raises ``InvalidTransitionError``.

        With ``refuse_pending_charge`` a SCHEDULED cycle whose charge was
        already requested (``time_processed`` set) raises
        ``ChargePendingError``. The check is part of the UPDATE, so a sweep
        stamping the row concurrently wins.
        """
        for _ in range(MAX_CAS_ATTEMPTS):
            schedule = self.get_by_merchant_uid(merchant_uid)
            if schedule is None:
                raise ScheduleNotFoundError(
                    f"No schedule for merchant_uid {merchant_uid}",
                    {"merchant_uid": merchant_uid},
                )
            current = ScheduleStatus(schedule.status)
            target = next_status(current, event)
            if target is None:
                if is_settled(current, event):
                    return schedule, False
                raise InvalidTransitionError(merchant_uid, current.value, event.value)

            guard_pending = refuse_pending_charge and current == ScheduleStatus.SCHEDULED
            if guard_pending and schedule.time_processed is not None:
                raise ChargePendingError(
                    f"Charge for {merchant_uid} is awaiting the provider's outcome",
                    {
                        "merchant_uid": merchant_uid,
                        "event": event.value,
                        "time_processed": schedule.time_processed.isoformat(),
                    },
                )

            values: dict[str, Any] = dict(changes or {})
            if failure is not None:
                existing = list(schedule.failures or [])
                reference = failure.get("external_reference")
                if reference and any(
                    f.get("external_reference") == reference for f in existing
                ):
                    return schedule, False
                values["failures"] = [failure, *existing]
            values["status"] = target.value
            values["version"] = int(schedule.version) + 1

            conditions = [
                PaymentSchedule.id == schedule.id,
                PaymentSchedule.status == current.value,
                PaymentSchedule.version == schedule.version,
            ]
            if guard_pending:
                conditions.append(PaymentSchedule.time_processed.is_(None))
            matched = self.db.execute(
                update(PaymentSchedule)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            ).rowcount
            self.db.commit()
            self.db.expire_all()
            if matched:
                refreshed = self.get_by_merchant_uid(merchant_uid)
                assert refreshed is not None
                return refreshed, True
            logger.debug("Lost update race on %s (%s), retrying", merchant_uid, event.value)

        raise InvalidTransitionError(merchant_uid, None, event.value)

    def mark_processed(self, merchant_uid: str, now: datetime | None = None) -> bool:
        """Stamp the time a charge was requested, if the cycle is still SCHEDULED."""
        matched = self.db.execute(
            update(PaymentSchedule)
            .where(
                PaymentSchedule.merchant_uid == merchant_uid,
                PaymentSchedule.status == ScheduleStatus.SCHEDULED.value,
            )
            .values(time_processed=now or utc_now())
            .execution_options(synchronize_session=False)
        ).rowcount
        self.db.commit()
        return bool(matched)
