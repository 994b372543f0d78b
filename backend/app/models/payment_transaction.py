"""PaymentTransaction model - immutable ledger of settled charges and refunds."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, UniqueConstraint, func

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class TransactionStatus(str, Enum):
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentTransaction(Base):
    """One settled outcome reported by the provider. Never updated after insert."""

    __tablename__ = "payment_transactions"
    __table_args__ = (
        UniqueConstraint(
            "external_reference", "merchant_uid", "status", name="uq_transaction_outcome"
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    external_reference = Column(String(128), nullable=False, index=True)
    merchant_uid = Column(String(128), nullable=False, index=True)
    business_id = Column(String(64), nullable=False, index=True)

    payment_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="KRW")
    failure_reason = Column(Text, nullable=True)
    provider_payload = Column(JSON, nullable=True, default=dict)

    time_settled = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
