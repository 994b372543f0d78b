"""Billing key registration and default selection."""

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.exceptions import PaymentMethodNotFoundError, PaymentRequestError, ValidationError
from app.models.payment_method import PaymentMethod
from app.models.payment_schedule import ScheduleStatus
from app.models.shared import utc_now
from app.repositories.payment_method_repository import PaymentMethodRepository
from app.repositories.payment_schedule_repository import PaymentScheduleRepository
from app.services.billing_identifiers import billing_key_for
from app.services.payment_executor import ChargeAcknowledgment, ChargeRequest, PaymentExecutor
from app.services.payment_provider import PaymentProviderBase, get_payment_provider
from app.services.schedule_state_machine import ScheduleEvent

logger = logging.getLogger(__name__)


class PaymentMethodService:
    def __init__(self, db: Session, provider: PaymentProviderBase | None = None):
        self.db = db
        self.provider = provider or get_payment_provider()
        self.method_repo = PaymentMethodRepository(db)
        self.schedule_repo = PaymentScheduleRepository(db)

    def _get(self, customer_uid: str) -> PaymentMethod:
        method = self.method_repo.get_by_customer_uid(customer_uid)
        if method is None:
            raise PaymentMethodNotFoundError(
                f"No payment method was found for customer_uid {customer_uid}",
                {"customer_uid": customer_uid},
            )
        return method

    async def register(
        self,
        business_id: str,
        card_last4: str,
        is_default: bool = False,
        details: dict[str, Any] | None = None,
    ) -> tuple[PaymentMethod, ChargeAcknowledgment | None]:
        """Record a billing key the provider issued for a card.

        The key must exist at the provider. The first method of a business
        becomes its default.
        """
        customer_uid = billing_key_for(business_id, card_last4)
        key = await self.provider.get_billing_key(customer_uid)
        if key is None:
            raise ValidationError(
                f"Billing key {customer_uid} is not registered with the provider",
                {"customer_uid": customer_uid, "business_id": business_id},
            )
        card = {"card_last4": card_last4}
        if key.card_name:
            card["card_name"] = key.card_name
        method = self.method_repo.create(business_id, customer_uid, {**card, **(details or {})})
        logger.info("Registered payment method %s for %s", customer_uid, business_id)
        if is_default or not self.method_repo.get_default(business_id):
            return await self.set_default(customer_uid)
        return method, None

    async def remove(self, customer_uid: str) -> None:
        """Delete a billing key here and at the provider.

        The default method cannot be removed while a cycle is still open.
        """
        method = self._get(customer_uid)
        if method.is_default and self.schedule_repo.get_open(str(method.business_id)):
            raise ValidationError(
                "Cannot delete the default payment method of an active subscription",
                {"customer_uid": customer_uid, "business_id": method.business_id},
            )
        await self.provider.delete_billing_key(customer_uid)
        self.method_repo.delete(customer_uid)
        logger.info("Removed payment method %s", customer_uid)

    async def set_default(
        self, customer_uid: str
    ) -> tuple[PaymentMethod, ChargeAcknowledgment | None]:
        """Make ``customer_uid`` the default and retry a failed cycle with it.

        A rejected retry goes into the cycle's failure history.
        """
        method = self._get(customer_uid)
        business_id = str(method.business_id)
        updated = self.method_repo.set_default(business_id, customer_uid)
        assert updated is not None
        logger.info("Payment method %s is now the default for %s", customer_uid, business_id)

        active = self.schedule_repo.get_open(business_id)
        if active is None or active.status != ScheduleStatus.FAILED.value:
            return updated, None

        merchant_uid = str(active.merchant_uid)
        logger.info("Retrying failed cycle %s with %s", merchant_uid, customer_uid)
        try:
            acknowledgment = await PaymentExecutor(self.db, self.provider).charge(
                ChargeRequest.for_schedule(active)
            )
        except PaymentRequestError as e:
            logger.warning(
                "Retry of %s for %s failed: %s %s", merchant_uid, business_id, e.message, e.params
            )
            self.schedule_repo.transition(
                merchant_uid,
                ScheduleEvent.CHARGE_FAILED,
                failure={
                    "reason": e.message,
                    "timestamp": utc_now().isoformat(),
                    "external_reference": None,
                },
            )
            return updated, None
        return updated, acknowledgment
