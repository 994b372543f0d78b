"""Runs the settlement sweep once per local day at the settlement hour.

The in-process ticker is one long-lived asyncio task. It never sleeps more
than a day at a time and re-reads the clock on every wake, so a suspended
host, a clock step or a DST change only delays a run until the next check.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.services.billing_calendar import billing_timezone

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


def next_run_at(
    now: datetime, hour: int | None = None, tz: ZoneInfo | None = None
) -> datetime:
    """Next occurrence of ``hour``:00 local time strictly after ``now``."""
    tz = tz or billing_timezone()
    hour = settings.SETTLEMENT_HOUR if hour is None else hour
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    local_now = now.astimezone(tz)
    candidate = datetime.combine(local_now.date(), time(hour), tzinfo=tz)
    if candidate.astimezone(UTC) <= now.astimezone(UTC):
        candidate = datetime.combine(local_now.date() + timedelta(days=1), time(hour), tzinfo=tz)
    return candidate


def seconds_until_next_run(
    now: datetime, hour: int | None = None, tz: ZoneInfo | None = None
) -> float:
    """Seconds to sleep before the next run, always within (0, 1 day]."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    target = next_run_at(now, hour, tz)
    remaining = (target.astimezone(UTC) - now.astimezone(UTC)).total_seconds()
    return min(max(remaining, 1.0), float(DAY_SECONDS))


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SettlementScheduler:
    def __init__(
        self,
        run_settlement: Callable[[], Awaitable[Any]],
        hour: int | None = None,
        tz: ZoneInfo | None = None,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        run_at_startup: bool = False,
    ):
        self.run_settlement = run_settlement
        self.hour = settings.SETTLEMENT_HOUR if hour is None else hour
        self.tz = tz or billing_timezone()
        self.clock = clock
        self.sleep = sleep
        self.run_at_startup = run_at_startup
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="settlement-scheduler")
        logger.info(
            "Settlement scheduler started: daily at %02d:00 %s", self.hour, self.tz.key
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Settlement scheduler stopped")

    async def _sleep_until(self, target: datetime) -> None:
        while True:
            remaining = (target - self.clock()).total_seconds()
            if remaining <= 0:
                return
            await self.sleep(min(remaining, float(DAY_SECONDS)))

    async def run_once(self) -> None:
        try:
            await self.run_settlement()
        except Exception:
            logger.exception("Settlement run failed")

    async def _loop(self) -> None:
        if self.run_at_startup:
            # Catch up on a run missed while the process was down
            await self.run_once()
        while True:
            target = next_run_at(self.clock(), self.hour, self.tz)
            logger.debug("Next settlement run at %s", target.isoformat())
            await self._sleep_until(target)
            await self.run_once()
