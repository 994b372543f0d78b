"""Repository for PaymentMethod CRUD operations."""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.models.payment_method import PaymentMethod


class PaymentMethodRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_business_id(self, business_id: str) -> list[PaymentMethod]:
        return (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.business_id == business_id)
            .order_by(PaymentMethod.created_at.desc())
            .all()
        )

    def get_by_customer_uid(self, customer_uid: str) -> PaymentMethod | None:
        return (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.customer_uid == customer_uid)
            .first()
        )

    def get_default(self, business_id: str) -> list[PaymentMethod]:
        """All methods flagged default; more than one means the invariant broke."""
        return (
            self.db.query(PaymentMethod)
            .filter(
                PaymentMethod.business_id == business_id,
                PaymentMethod.is_default == True,  # noqa: E712
            )
            .all()
        )

    def set_default(self, business_id: str, customer_uid: str) -> PaymentMethod | None:
        payment_method = (
            self.db.query(PaymentMethod)
            .filter(
                PaymentMethod.business_id == business_id,
                PaymentMethod.customer_uid == customer_uid,
            )
            .first()
        )
        if not payment_method:
            return None
        # Unset the current default, then set the new one, in one transaction
        self.db.query(PaymentMethod).filter(
            PaymentMethod.business_id == business_id,
            PaymentMethod.is_default == True,  # noqa: E712
        ).update({"is_default": False})
        payment_method.is_default = True  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(payment_method)
        return payment_method

    def create(
        self,
        business_id: str,
        customer_uid: str,
        details: dict[str, Any] | None = None,
    ) -> PaymentMethod:
        """Register a billing key, or refresh the details of a known one."""
        payment_method = self.get_by_customer_uid(customer_uid)
        if payment_method is None:
            payment_method = PaymentMethod(
                business_id=business_id,
                customer_uid=customer_uid,
                is_default=False,
                details=details or {},
            )
            self.db.add(payment_method)
        else:
            payment_method.details = details or {}  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(payment_method)
        return payment_method

    def delete(self, customer_uid: str) -> bool:
        payment_method = self.get_by_customer_uid(customer_uid)
        if not payment_method:
            return False
        self.db.delete(payment_method)
        self.db.commit()
        return True
