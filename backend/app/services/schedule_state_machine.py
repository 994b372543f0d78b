"""Transition table for billing cycle statuses.

All status changes of a ``PaymentSchedule`` go through ``next_status``; the
repository applies the result as a conditional UPDATE on status and version
so a stale writer matches zero rows instead of overwriting.
"""

from enum import Enum

from app.models.payment_schedule import ScheduleStatus


class ScheduleEvent(str, Enum):
    CHARGE_SUCCEEDED = "charge_succeeded"
    CHARGE_FAILED = "charge_failed"
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"
    REFUND_CONFIRMED = "refund_confirmed"
    CHANGE_PLAN = "change_plan"


TRANSITIONS: dict[tuple[ScheduleStatus, ScheduleEvent], ScheduleStatus] = {
    (ScheduleStatus.SCHEDULED, ScheduleEvent.CHARGE_SUCCEEDED): ScheduleStatus.PAID,
    # A failed cycle is retried on the same merchant_uid once a new default
    # payment method is selected.
    (ScheduleStatus.FAILED, ScheduleEvent.CHARGE_SUCCEEDED): ScheduleStatus.PAID,
    (ScheduleStatus.SCHEDULED, ScheduleEvent.CHARGE_FAILED): ScheduleStatus.FAILED,
    (ScheduleStatus.FAILED, ScheduleEvent.CHARGE_FAILED): ScheduleStatus.FAILED,
    (ScheduleStatus.SCHEDULED, ScheduleEvent.PAUSE): ScheduleStatus.PAUSED,
    (ScheduleStatus.PAUSED, ScheduleEvent.RESUME): ScheduleStatus.SCHEDULED,
    (ScheduleStatus.SCHEDULED, ScheduleEvent.CANCEL): ScheduleStatus.CANCELLED,
    (ScheduleStatus.PAUSED, ScheduleEvent.CANCEL): ScheduleStatus.CANCELLED,
    (ScheduleStatus.PAID, ScheduleEvent.REFUND_CONFIRMED): ScheduleStatus.REFUNDED,
    (ScheduleStatus.SCHEDULED, ScheduleEvent.CHANGE_PLAN): ScheduleStatus.SCHEDULED,
    (ScheduleStatus.PAUSED, ScheduleEvent.CHANGE_PLAN): ScheduleStatus.PAUSED,
}


def next_status(current: ScheduleStatus | str, event: ScheduleEvent) -> ScheduleStatus | None:
    """Return the status after ``event``, or None if the event is not allowed."""
    return TRANSITIONS.get((ScheduleStatus(current), event))


def is_settled(current: ScheduleStatus | str, event: ScheduleEvent) -> bool:
    """True if a replayed ``event`` has already taken effect on a row in ``current``.

    Used to make redelivered provider notifications a no-op instead of an error.
    """
    status = ScheduleStatus(current)
    if event == ScheduleEvent.CHARGE_SUCCEEDED:
        return status in (ScheduleStatus.PAID, ScheduleStatus.REFUNDED)
    if event == ScheduleEvent.CHARGE_FAILED:
        # An earlier attempt reported failed after a later one already paid
        return status in (ScheduleStatus.PAID, ScheduleStatus.REFUNDED)
    if event == ScheduleEvent.REFUND_CONFIRMED:
        return status == ScheduleStatus.REFUNDED
    if event == ScheduleEvent.PAUSE:
        return status == ScheduleStatus.PAUSED
    if event == ScheduleEvent.CANCEL:
        return status == ScheduleStatus.CANCELLED
    return False
