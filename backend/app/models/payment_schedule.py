"""PaymentSchedule model - one row per billing cycle of a business."""

from enum import Enum

from sqlalchemy import JSON, Column, Date, DateTime, Integer, String, UniqueConstraint, func

from app.core.database import Base
from app.models.shared import PaymentType, UUIDType, generate_uuid, utc_now


class ScheduleStatus(str, Enum):
    """Billing cycle status."""

    SCHEDULED = "SCHEDULED"
    PAID = "PAID"
    FAILED = "FAILED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


# A business has at most one cycle in one of these states: its next due cycle.
OPEN_STATUSES = frozenset(
    {ScheduleStatus.SCHEDULED, ScheduleStatus.FAILED, ScheduleStatus.PAUSED}
)


class PaymentSchedule(Base):
    __tablename__ = "payment_schedules"
    __table_args__ = (UniqueConstraint("business_id", "sequence", name="uq_schedule_sequence"),)

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    merchant_uid = Column(String(128), nullable=False, unique=True, index=True)
    business_id = Column(String(64), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    payment_type = Column(String(20), nullable=False, default=PaymentType.SCHEDULED.value)

    billing_plan = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    vat = Column(Integer, nullable=False, default=0)

    # Local calendar date the charge is due
    scheduled_date = Column(Date, nullable=False, index=True)
    status = Column(
        String(20), nullable=False, default=ScheduleStatus.SCHEDULED.value, index=True
    )
    # [{"reason", "timestamp", "external_reference"}], newest first
    failures = Column(JSON, nullable=False, default=list)
    # Bumped on every conditional update
    version = Column(Integer, nullable=False, default=0)

    time_scheduled = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    time_processed = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
