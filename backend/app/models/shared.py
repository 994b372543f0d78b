"""Shared model utilities and enums used across all models."""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import String, TypeDecorator
from sqlalchemy.engine import Dialect


class BillingPlan(str, Enum):
    """Subscription plan lengths, in weeks."""

    FOUR_WEEK = "4_WEEK"
    TWENTY_SIX_WEEK = "26_WEEK"
    FIFTY_TWO_WEEK = "52_WEEK"

    @property
    def weeks(self) -> int:
        return _PLAN_WEEKS[self]

    @property
    def days(self) -> int:
        return self.weeks * 7


_PLAN_WEEKS = {
    BillingPlan.FOUR_WEEK: 4,
    BillingPlan.TWENTY_SIX_WEEK: 26,
    BillingPlan.FIFTY_TWO_WEEK: 52,
}


class PaymentType(str, Enum):
    """What a charge or ledger entry was for."""

    INITIAL = "INITIAL"
    SCHEDULED = "SCHEDULED"
    REFUND = "REFUND"


class UUIDType(TypeDecorator[uuid.UUID]):
    """Platform-independent UUID type.

    Uses String(36) for SQLite, native UUID for PostgreSQL.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value: Any, dialect: Dialect) -> uuid.UUID | None:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


def generate_uuid() -> uuid.UUID:
    """Generate a new UUID."""
    return uuid.uuid4()


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)
