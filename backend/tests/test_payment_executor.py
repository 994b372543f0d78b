"""Tests for charge requests against the default billing key."""

import json
from datetime import date

import pytest

from app.core.exceptions import (
    NoDefaultMethodError,
    PaymentRequestError,
    ProviderTimeoutError,
    ValidationError,
)
from app.models.payment_method import PaymentMethod
from app.models.payment_schedule import PaymentSchedule
from app.models.shared import BillingPlan, PaymentType
from app.repositories.payment_method_repository import PaymentMethodRepository
from app.services.payment_executor import (
    AcknowledgmentStatus,
    ChargeRequest,
    PaymentExecutor,
)


def charge_request(**overrides):
    fields = {
        "business_id": "biz-1",
        "merchant_uid": "biz-1_ch1",
        "amount": 11000,
        "vat": 1000,
        "billing_plan": BillingPlan.FOUR_WEEK,
        "cycle_start_date": date(2026, 3, 30),
        "payment_type": PaymentType.SCHEDULED,
    }
    fields.update(overrides)
    return ChargeRequest(**fields)


@pytest.fixture
def default_method(db_session):
    repo = PaymentMethodRepository(db_session)
    repo.create("biz-1", "biz-1_4242")
    return repo.set_default("biz-1", "biz-1_4242")


class TestChargeRequest:
    def test_for_schedule_bills_as_scheduled(self):
        schedule = PaymentSchedule(
            merchant_uid="biz-1_ch0",
            business_id="biz-1",
            sequence=0,
            payment_type=PaymentType.INITIAL.value,
            billing_plan="26_WEEK",
            amount=52000,
            vat=5200,
            scheduled_date=date(2026, 3, 2),
        )

        request = ChargeRequest.for_schedule(schedule)

        assert request.payment_type == PaymentType.SCHEDULED
        assert request.billing_plan == BillingPlan.TWENTY_SIX_WEEK
        assert request.cycle_start_date == date(2026, 3, 2)

    def test_for_schedule_with_new_start_date(self):
        schedule = PaymentSchedule(
            merchant_uid="biz-1_ch2",
            business_id="biz-1",
            billing_plan="4_WEEK",
            amount=10000,
            vat=1000,
            scheduled_date=date(2026, 3, 2),
        )

        request = ChargeRequest.for_schedule(schedule, date(2026, 4, 10))

        assert request.cycle_start_date == date(2026, 4, 10)
        assert request.payload().cycle_start_date == date(2026, 4, 10)


class TestResolveDefaultMethod:
    def test_exactly_one(self, db_session, provider, default_method):
        method = PaymentExecutor(db_session, provider).resolve_default_method("biz-1")
        assert method.customer_uid == "biz-1_4242"

    def test_none(self, db_session, provider):
        with pytest.raises(NoDefaultMethodError) as exc_info:
            PaymentExecutor(db_session, provider).resolve_default_method("biz-1")
        assert exc_info.value.params["default_count"] == 0

    def test_more_than_one(self, db_session, provider):
        for uid in ("biz-1_4242", "biz-1_1111"):
            db_session.add(PaymentMethod(business_id="biz-1", customer_uid=uid, is_default=True))
        db_session.commit()

        with pytest.raises(NoDefaultMethodError):
            PaymentExecutor(db_session, provider).resolve_default_method("biz-1")


class TestCharge:
    @pytest.mark.asyncio
    async def test_charge_uses_default_key_and_payload(self, db_session, provider, default_method):
        ack = await PaymentExecutor(db_session, provider).charge(charge_request())

        assert ack.status == AcknowledgmentStatus.ACCEPTED
        assert ack.external_reference == "imp_biz-1_ch1"
        assert ack.provider_status == "ready"

        kwargs = provider.charge.call_args.kwargs
        assert kwargs["customer_uid"] == "biz-1_4242"
        assert kwargs["merchant_uid"] == "biz-1_ch1"
        assert kwargs["amount"] == 11000
        assert kwargs["vat"] == 1000
        assert kwargs["name"] == "Subscription #biz-1 3/30 - 4/26 (4_WEEK)"
        custom_data = json.loads(kwargs["custom_data"])
        assert custom_data["payment_type"] == "SCHEDULED"
        assert custom_data["cycle_start_date"] == "2026-03-30"

    @pytest.mark.asyncio
    async def test_no_default_method_does_not_call_provider(self, db_session, provider):
        with pytest.raises(NoDefaultMethodError):
            await PaymentExecutor(db_session, provider).charge(charge_request())
        provider.charge.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_is_pending(self, db_session, provider, default_method):
        provider.charge.side_effect = ProviderTimeoutError("timed out")

        ack = await PaymentExecutor(db_session, provider).charge(charge_request())

        assert ack.status == AcknowledgmentStatus.PENDING
        assert ack.external_reference is None

    @pytest.mark.asyncio
    async def test_rejection_is_raised_with_context(self, db_session, provider, default_method):
        provider.charge.side_effect = PaymentRequestError(-1, "card declined")

        with pytest.raises(PaymentRequestError) as exc_info:
            await PaymentExecutor(db_session, provider).charge(charge_request())
        assert exc_info.value.params["merchant_uid"] == "biz-1_ch1"
        assert exc_info.value.params["business_id"] == "biz-1"

    @pytest.mark.asyncio
    async def test_oversized_payload(self, db_session, provider, default_method, monkeypatch):
        monkeypatch.setattr(
            "app.schemas.charge_payload.settings.PROVIDER_CUSTOM_DATA_MAX_BYTES", 10
        )
        with pytest.raises(ValidationError):
            await PaymentExecutor(db_session, provider).charge(charge_request())
        provider.charge.assert_not_called()
