"""Prorated refund calculation for cancelled cycles."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.models.shared import BillingPlan
from app.services.billing_calendar import BillingCalendar

GRACE_PERIOD = timedelta(days=1)


@dataclass(frozen=True)
class Proration:
    refund_amount: int
    fee_waived: bool
    fraction_served: Decimal


def compute_refund(
    cycle_start_date: date,
    billing_plan: BillingPlan,
    amount: int,
    now: datetime,
    tz: ZoneInfo | None = None,
    refund_fee_percent: float | None = None,
) -> Proration:
    """Compute the refund for cancelling a paid cycle at ``now``.

    Time served counts whole local days up to and including today. Cancelling
    within the first day refunds everything and waives the fee; otherwise the
    unserved share is refunded minus the cancellation fee, rounded to a whole
    currency unit.
    """
    calendar = BillingCalendar(tz)
    fee_percent = Decimal(
        str(settings.REFUND_FEE_PERCENT if refund_fee_percent is None else refund_fee_percent)
    )

    plan_duration = timedelta(days=billing_plan.days)
    time_served = calendar.tomorrow_midnight(now) - calendar.midnight(cycle_start_date)

    if time_served <= GRACE_PERIOD:
        return Proration(refund_amount=amount, fee_waived=True, fraction_served=Decimal("0"))

    fraction = Decimal(time_served.total_seconds()) / Decimal(plan_duration.total_seconds())
    fraction = min(fraction, Decimal("1"))
    value_unserved = Decimal(amount) * (Decimal("1") - fraction)
    refund = (value_unserved * (Decimal("1") - fee_percent)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return Proration(refund_amount=int(refund), fee_waived=False, fraction_served=fraction)
