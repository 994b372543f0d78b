"""Tests for billing key registration and default selection."""

from datetime import date

import pytest

from app.core.exceptions import (
    PaymentMethodNotFoundError,
    PaymentRequestError,
    ValidationError,
)
from app.models.shared import BillingPlan
from app.repositories.payment_method_repository import PaymentMethodRepository
from app.repositories.payment_schedule_repository import PaymentScheduleRepository
from app.services.payment_executor import AcknowledgmentStatus
from app.services.payment_provider import BillingKey
from app.services.payment_method_service import PaymentMethodService
from app.services.schedule_state_machine import ScheduleEvent


@pytest.fixture
def service(db_session, provider):
    return PaymentMethodService(db_session, provider)


def open_cycle(db_session):
    return PaymentScheduleRepository(db_session).open_cycle(
        expected_pointer=None,
        merchant_uid="biz-1_ch1",
        business_id="biz-1",
        sequence=1,
        billing_plan=BillingPlan.FOUR_WEEK,
        amount=10000,
        vat=1000,
        scheduled_date=date(2026, 3, 30),
    )


class TestRegister:
    @pytest.mark.asyncio
    async def test_first_method_becomes_default(self, service):
        method, ack = await service.register("biz-1", "4242")

        assert method.customer_uid == "biz-1_4242"
        assert method.is_default is True
        assert method.details == {"card_last4": "4242"}
        assert ack is None

    @pytest.mark.asyncio
    async def test_second_method_is_not_default(self, service, db_session):
        await service.register("biz-1", "4242")
        method, _ = await service.register("biz-1", "1111", details={"label": "backup"})

        assert method.is_default is False
        assert method.details == {"card_last4": "1111", "label": "backup"}
        defaults = PaymentMethodRepository(db_session).get_default("biz-1")
        assert [d.customer_uid for d in defaults] == ["biz-1_4242"]

    @pytest.mark.asyncio
    async def test_register_as_default(self, service, db_session):
        await service.register("biz-1", "4242")
        method, _ = await service.register("biz-1", "1111", is_default=True)

        assert method.is_default is True
        defaults = PaymentMethodRepository(db_session).get_default("biz-1")
        assert [d.customer_uid for d in defaults] == ["biz-1_1111"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("last4", ["424", "42424", "abcd"])
    async def test_malformed_last4(self, service, last4):
        with pytest.raises(ValidationError, match="last 4 digits"):
            await service.register("biz-1", last4)

    @pytest.mark.asyncio
    async def test_key_unknown_to_the_provider(self, service, provider, db_session):
        provider.get_billing_key.side_effect = None
        provider.get_billing_key.return_value = None

        with pytest.raises(ValidationError, match="not registered with the provider"):
            await service.register("biz-1", "4242")

        provider.get_billing_key.assert_awaited_once_with("biz-1_4242")
        assert PaymentMethodRepository(db_session).get_by_customer_uid("biz-1_4242") is None

    @pytest.mark.asyncio
    async def test_card_name_from_the_provider(self, service, provider):
        provider.get_billing_key.side_effect = lambda uid: BillingKey(
            customer_uid=uid, card_name="Shinhan Card"
        )

        method, _ = await service.register("biz-1", "4242")

        assert method.details == {"card_last4": "4242", "card_name": "Shinhan Card"}

    @pytest.mark.asyncio
    async def test_provider_lookup_failure(self, service, provider, db_session):
        provider.get_billing_key.side_effect = PaymentRequestError(500, "unavailable")

        with pytest.raises(PaymentRequestError):
            await service.register("biz-1", "4242")
        assert PaymentMethodRepository(db_session).get_by_customer_uid("biz-1_4242") is None


class TestSetDefault:
    @pytest.mark.asyncio
    async def test_missing(self, service):
        with pytest.raises(PaymentMethodNotFoundError):
            await service.set_default("biz-1_0000")

    @pytest.mark.asyncio
    async def test_retries_failed_cycle(self, service, provider, db_session):
        await service.register("biz-1", "4242")
        await service.register("biz-1", "1111")
        open_cycle(db_session)
        PaymentScheduleRepository(db_session).transition(
            "biz-1_ch1", ScheduleEvent.CHARGE_FAILED
        )

        method, ack = await service.set_default("biz-1_1111")

        assert method.is_default is True
        assert ack is not None
        assert ack.status == AcknowledgmentStatus.ACCEPTED
        kwargs = provider.charge.call_args.kwargs
        assert kwargs["customer_uid"] == "biz-1_1111"
        assert kwargs["merchant_uid"] == "biz-1_ch1"

    @pytest.mark.asyncio
    async def test_rejected_retry_is_recorded(self, service, provider, db_session):
        await service.register("biz-1", "4242")
        await service.register("biz-1", "1111")
        open_cycle(db_session)
        PaymentScheduleRepository(db_session).transition(
            "biz-1_ch1", ScheduleEvent.CHARGE_FAILED
        )
        provider.charge.side_effect = PaymentRequestError(-1, "card declined")

        method, ack = await service.set_default("biz-1_1111")

        assert method.is_default is True
        assert ack is None
        db_session.expire_all()
        schedule = PaymentScheduleRepository(db_session).get_by_merchant_uid("biz-1_ch1")
        assert schedule.status == "FAILED"
        assert [f["reason"] for f in schedule.failures] == ["card declined"]

    @pytest.mark.asyncio
    async def test_scheduled_cycle_is_not_charged(self, service, provider, db_session):
        await service.register("biz-1", "4242")
        await service.register("biz-1", "1111")
        open_cycle(db_session)

        _, ack = await service.set_default("biz-1_1111")

        assert ack is None
        provider.charge.assert_not_called()


class TestRemove:
    @pytest.mark.asyncio
    async def test_remove(self, service, provider, db_session):
        await service.register("biz-1", "4242")

        await service.remove("biz-1_4242")

        provider.delete_billing_key.assert_awaited_once_with("biz-1_4242")
        assert PaymentMethodRepository(db_session).get_by_customer_uid("biz-1_4242") is None

    @pytest.mark.asyncio
    async def test_default_of_active_subscription_is_kept(self, service, provider, db_session):
        await service.register("biz-1", "4242")
        open_cycle(db_session)

        with pytest.raises(ValidationError, match="Cannot delete the default"):
            await service.remove("biz-1_4242")
        provider.delete_billing_key.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_default_of_active_subscription(self, service, provider, db_session):
        await service.register("biz-1", "4242")
        await service.register("biz-1", "1111")
        open_cycle(db_session)

        await service.remove("biz-1_1111")

        provider.delete_billing_key.assert_awaited_once_with("biz-1_1111")

    @pytest.mark.asyncio
    async def test_missing(self, service):
        with pytest.raises(PaymentMethodNotFoundError):
            await service.remove("biz-1_0000")
