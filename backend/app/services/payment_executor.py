"""Requests charges against a business's default billing key.

The executor only learns whether the provider accepted the request. The
settled outcome arrives later as a payment notification and is applied by
the reconciliation service.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from sqlalchemy.orm import Session

from app.core.exceptions import NoDefaultMethodError, PaymentRequestError, ProviderTimeoutError
from app.models.payment_method import PaymentMethod
from app.models.payment_schedule import PaymentSchedule
from app.models.shared import BillingPlan, PaymentType
from app.repositories.payment_method_repository import PaymentMethodRepository
from app.schemas.charge_payload import ChargePayload
from app.services.billing_identifiers import charge_name
from app.services.payment_provider import PaymentProviderBase, get_payment_provider

logger = logging.getLogger(__name__)


class AcknowledgmentStatus(str, Enum):
    ACCEPTED = "accepted"
    PENDING = "pending"


@dataclass(frozen=True)
class ChargeRequest:
    business_id: str
    merchant_uid: str
    amount: int
    vat: int
    billing_plan: BillingPlan
    cycle_start_date: date
    payment_type: PaymentType

    @classmethod
    def for_schedule(
        cls, schedule: PaymentSchedule, cycle_start_date: date | None = None
    ) -> "ChargeRequest":
        """Charge for a stored cycle, which always bills as SCHEDULED."""
        return cls(
            business_id=str(schedule.business_id),
            merchant_uid=str(schedule.merchant_uid),
            amount=int(schedule.amount),
            vat=int(schedule.vat),
            billing_plan=BillingPlan(schedule.billing_plan),
            cycle_start_date=cycle_start_date or schedule.scheduled_date,
            payment_type=PaymentType.SCHEDULED,
        )

    def payload(self) -> ChargePayload:
        return ChargePayload(
            payment_type=self.payment_type,
            business_id=self.business_id,
            merchant_uid=self.merchant_uid,
            billing_plan=self.billing_plan,
            cycle_start_date=self.cycle_start_date,
            amount=self.amount,
            vat=self.vat,
        )


@dataclass(frozen=True)
class ChargeAcknowledgment:
    merchant_uid: str
    status: AcknowledgmentStatus
    external_reference: str | None = None
    provider_status: str | None = None


class PaymentExecutor:
    def __init__(self, db: Session, provider: PaymentProviderBase | None = None):
        self.db = db
        self.method_repo = PaymentMethodRepository(db)
        self.provider = provider or get_payment_provider()

    def resolve_default_method(self, business_id: str) -> PaymentMethod:
        defaults = self.method_repo.get_default(business_id)
        if len(defaults) != 1:
            raise NoDefaultMethodError(
                f"Business {business_id} has {len(defaults)} default payment methods, "
                "expected exactly one",
                {"business_id": business_id, "default_count": len(defaults)},
            )
        return defaults[0]

    async def charge(self, request: ChargeRequest) -> ChargeAcknowledgment:
        """Request a charge for one cycle, keyed by its merchant_uid.

        Raises:
            NoDefaultMethodError: the business has no single default method.
            ValidationError: the charge context does not fit the provider limit.
            PaymentRequestError: the provider rejected the request.
        """
        method = self.resolve_default_method(request.business_id)
        custom_data = request.payload().encode()
        name = charge_name(request.business_id, request.cycle_start_date, request.billing_plan)

        try:
            result = await self.provider.charge(
                customer_uid=str(method.customer_uid),
                merchant_uid=request.merchant_uid,
                amount=request.amount,
                vat=request.vat,
                name=name,
                custom_data=custom_data,
            )
        except ProviderTimeoutError:
            logger.warning(
                "Charge %s for %s timed out; awaiting notification",
                request.merchant_uid,
                request.business_id,
            )
            return ChargeAcknowledgment(
                merchant_uid=request.merchant_uid, status=AcknowledgmentStatus.PENDING
            )
        except PaymentRequestError as e:
            e.params.setdefault("business_id", request.business_id)
            e.params.setdefault("merchant_uid", request.merchant_uid)
            raise

        logger.info(
            "Requested %s charge %s (%s) for %s: %s",
            request.payment_type.value,
            request.merchant_uid,
            name,
            request.business_id,
            result.status,
        )
        return ChargeAcknowledgment(
            merchant_uid=request.merchant_uid,
            status=AcknowledgmentStatus.ACCEPTED,
            external_reference=result.external_reference,
            provider_status=result.status,
        )
