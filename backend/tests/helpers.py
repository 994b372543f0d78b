"""Helpers shared by the test modules."""

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

from app.models.shared import BillingPlan, PaymentType
from app.schemas.charge_payload import ChargePayload
from app.services.payment_provider import (
    BillingKey,
    ChargeResult,
    PaymentProviderBase,
    ProviderPayment,
    RefundResult,
    WebhookResult,
)

SEOUL = ZoneInfo("Asia/Seoul")


def seoul(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """An instant given as Seoul wall-clock time, returned in UTC."""
    return datetime(year, month, day, hour, minute, tzinfo=SEOUL).astimezone(UTC)


def make_payload(
    merchant_uid: str = "biz-1_ch1",
    payment_type: PaymentType = PaymentType.SCHEDULED,
    cycle_start_date: date = date(2026, 3, 2),
    billing_plan: BillingPlan = BillingPlan.FOUR_WEEK,
    amount: int = 10000,
    vat: int = 1000,
) -> ChargePayload:
    return ChargePayload(
        payment_type=payment_type,
        business_id=merchant_uid.rsplit("_ch", 1)[0],
        merchant_uid=merchant_uid,
        billing_plan=billing_plan,
        cycle_start_date=cycle_start_date,
        amount=amount,
        vat=vat,
    )


class FakeProvider(PaymentProviderBase):
    """In-memory provider: records calls and serves payments by imp_uid."""

    def __init__(self):
        self.payments: dict[str, ProviderPayment] = {}
        self.charge = AsyncMock(side_effect=self._charge)
        self.refund = AsyncMock(side_effect=self._refund)
        self.get_payment = AsyncMock(side_effect=self._get_payment)
        self.get_billing_key = AsyncMock(side_effect=lambda uid: BillingKey(customer_uid=uid))
        self.delete_billing_key = AsyncMock(return_value=None)
        self.verify = MagicMock(return_value=True)

    @property
    def provider_name(self) -> str:
        return "fake"

    async def _charge(self, customer_uid, merchant_uid, amount, vat, name, custom_data):
        return ChargeResult(
            merchant_uid=merchant_uid,
            external_reference=f"imp_{merchant_uid}",
            status="ready",
        )

    async def _refund(self, merchant_uid, amount, reason=None):
        return RefundResult(
            external_reference=f"imp_{merchant_uid}",
            merchant_uid=merchant_uid,
            amount=amount,
            status="cancelled",
        )

    async def _get_payment(self, external_reference):
        return self.payments[external_reference]

    def add_payment(
        self,
        external_reference: str,
        payload: ChargePayload,
        status: str,
        amount: int | None = None,
        cancel_amount: int = 0,
        failure_reason: str | None = None,
    ) -> ProviderPayment:
        payment = ProviderPayment(
            external_reference=external_reference,
            merchant_uid=payload.merchant_uid,
            status=status,
            amount=payload.amount if amount is None else amount,
            cancel_amount=cancel_amount,
            custom_data=payload.encode(),
            failure_reason=failure_reason,
            raw={"imp_uid": external_reference, "status": status},
        )
        self.payments[external_reference] = payment
        return payment

    # Abstract methods; instances replace them with the mocks above
    async def charge(self, *args, **kwargs):  # pragma: no cover
        raise NotImplementedError

    async def refund(self, *args, **kwargs):  # pragma: no cover
        raise NotImplementedError

    async def get_payment(self, *args, **kwargs):  # pragma: no cover
        raise NotImplementedError

    async def get_billing_key(self, *args, **kwargs):  # pragma: no cover
        raise NotImplementedError

    async def delete_billing_key(self, *args, **kwargs):  # pragma: no cover
        raise NotImplementedError

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        return self.verify(payload, signature)

    def parse_webhook(self, payload):
        return WebhookResult(
            status=str(payload.get("status") or "").lower(),
            external_reference=payload.get("imp_uid"),
            merchant_uid=payload.get("merchant_uid"),
        )
