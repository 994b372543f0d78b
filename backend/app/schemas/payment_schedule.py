"""Schemas for billing cycles and subscription operations."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.payment_schedule import ScheduleStatus
from app.models.shared import BillingPlan, PaymentType
from app.schemas.payment_transaction import PaymentTransactionResponse


class SubscribeRequest(BaseModel):
    billing_plan: BillingPlan
    amount: int = Field(..., gt=0)
    vat: int = Field(default=0, ge=0)


class ChangePlanRequest(BaseModel):
    billing_plan: BillingPlan
    amount: int = Field(..., gt=0)
    vat: int = Field(default=0, ge=0)


class FailureRecord(BaseModel):
    reason: str
    timestamp: datetime
    external_reference: str | None = None


class PaymentScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    merchant_uid: str
    business_id: str
    sequence: int
    payment_type: PaymentType
    billing_plan: BillingPlan
    amount: int
    vat: int
    scheduled_date: date
    status: ScheduleStatus
    failures: list[FailureRecord]
    time_scheduled: datetime
    time_processed: datetime | None = None


class ChargeAcknowledgmentResponse(BaseModel):
    """Provider accepted (or did not answer) the charge request."""

    merchant_uid: str
    status: str
    external_reference: str | None = None
    provider_status: str | None = None


class RefundResponse(BaseModel):
    cancelled_merchant_uid: str
    refunded_merchant_uid: str
    refund_amount: int
    fee_waived: bool
    provider_status: str | None = None


class ScheduleHistoryResponse(BaseModel):
    schedules: list[PaymentScheduleResponse]
    transactions: list[PaymentTransactionResponse]


class ResumeResponse(BaseModel):
    schedule: PaymentScheduleResponse
    charge: ChargeAcknowledgmentResponse | None = None


class SettlementRunResponse(BaseModel):
    status: str
    job_id: str | None = None
    summary: dict[str, int] | None = None
