"""Repository for the payment transaction ledger."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.payment_transaction import PaymentTransaction, TransactionStatus
from app.models.shared import PaymentType

logger = logging.getLogger(__name__)


class PaymentTransactionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_outcome(
        self, external_reference: str, merchant_uid: str, status: TransactionStatus
    ) -> PaymentTransaction | None:
        return (
            self.db.query(PaymentTransaction)
            .filter(
                PaymentTransaction.external_reference == external_reference,
                PaymentTransaction.merchant_uid == merchant_uid,
                PaymentTransaction.status == status.value,
            )
            .first()
        )

    def get_by_business_id(
        self, business_id: str, skip: int = 0, limit: int = 100
    ) -> list[PaymentTransaction]:
        return (
            self.db.query(PaymentTransaction)
            .filter(PaymentTransaction.business_id == business_id)
            .order_by(PaymentTransaction.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_by_merchant_uid(self, merchant_uid: str) -> list[PaymentTransaction]:
        return (
            self.db.query(PaymentTransaction)
            .filter(PaymentTransaction.merchant_uid == merchant_uid)
            .order_by(PaymentTransaction.created_at.asc())
            .all()
        )

    def record(
        self,
        *,
        external_reference: str,
        merchant_uid: str,
        business_id: str,
        payment_type: PaymentType,
        status: TransactionStatus,
        amount: int,
        failure_reason: str | None = None,
        provider_payload: dict[str, Any] | None = None,
        time_settled: datetime | None = None,
    ) -> tuple[PaymentTransaction, bool]:
        """Insert a ledger row unless the same outcome is already recorded.

        Returns ``(transaction, created)``.
        """
        existing = self.get_outcome(external_reference, merchant_uid, status)
        if existing is not None:
            return existing, False

        transaction = PaymentTransaction(
            external_reference=external_reference,
            merchant_uid=merchant_uid,
            business_id=business_id,
            payment_type=payment_type.value,
            status=status.value,
            amount=amount,
            currency=settings.BILLING_CURRENCY,
            failure_reason=failure_reason,
            provider_payload=provider_payload or {},
            time_settled=time_settled,
        )
        self.db.add(transaction)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race to a concurrent delivery of the same notification
            self.db.rollback()
            existing = self.get_outcome(external_reference, merchant_uid, status)
            if existing is None:
                raise
            return existing, False
        self.db.refresh(transaction)
        logger.info(
            "Recorded %s %s for %s (%s)",
            status.value,
            payment_type.value,
            merchant_uid,
            external_reference,
        )
        return transaction, True
