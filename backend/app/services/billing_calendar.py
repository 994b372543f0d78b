"""Local-calendar date logic for billing cycles.

Cycles start and end on local calendar days in the billing timezone, which do
not line up with UTC days, so every conversion goes through ``zoneinfo``.
"""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.models.shared import BillingPlan


def billing_timezone() -> ZoneInfo:
    return ZoneInfo(settings.BILLING_TIMEZONE)


class BillingCalendar:
    """Maps instants to local billing days."""

    def __init__(self, tz: ZoneInfo | None = None):
        self.tz = tz or billing_timezone()

    def now(self) -> datetime:
        return datetime.now(UTC)

    def to_local(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            # Naive instants (e.g. read back from SQLite) are UTC.
            moment = moment.replace(tzinfo=UTC)
        return moment.astimezone(self.tz)

    def to_utc(self, moment: datetime) -> datetime:
        return self.to_local(moment).astimezone(UTC)

    def today(self, now: datetime | None = None) -> date:
        """Local calendar date at ``now``."""
        return self.to_local(now or self.now()).date()

    def midnight(self, day: date) -> datetime:
        """Start of ``day`` in the billing timezone."""
        return datetime.combine(day, time.min, tzinfo=self.tz)

    def tomorrow_midnight(self, now: datetime | None = None) -> datetime:
        return self.midnight(self.today(now) + timedelta(days=1))

    def next_cycle_date(self, cycle_start: date, plan: BillingPlan) -> date:
        """Due date of the cycle after the one starting on ``cycle_start``."""
        return cycle_start + timedelta(weeks=plan.weeks)

    def is_past_due(self, scheduled_date: date, now: datetime | None = None) -> bool:
        """True once local midnight of ``scheduled_date`` has passed."""
        return self.midnight(scheduled_date) <= self.to_local(now or self.now())
