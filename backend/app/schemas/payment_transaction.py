"""Payment transaction (ledger) schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.models.payment_transaction import TransactionStatus
from app.models.shared import PaymentType


class PaymentTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    external_reference: str
    merchant_uid: str
    business_id: str
    payment_type: PaymentType
    status: TransactionStatus
    amount: int
    currency: str
    failure_reason: str | None = None
    time_settled: datetime | None = None
    created_at: datetime


class PaymentNotification(BaseModel):
    """Body of a provider payment notification."""

    imp_uid: str | None = None
    merchant_uid: str | None = None
    status: str
