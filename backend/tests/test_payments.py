"""Tests for the payment notification endpoint."""

from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.exceptions import PaymentRequestError
from app.main import app
from app.models.payment_transaction import PaymentTransaction
from app.models.shared import PaymentType
from app.repositories.payment_schedule_repository import PaymentScheduleRepository
from tests.helpers import FakeProvider, make_payload

INITIAL = make_payload(
    merchant_uid="biz-1_ch0", payment_type=PaymentType.INITIAL, cycle_start_date=date(2026, 3, 2)
)


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def provider():
    fake = FakeProvider()
    with patch("app.routers.payments.get_payment_provider", return_value=fake):
        yield fake


def notify(client, status="paid", imp_uid="imp_0", merchant_uid="biz-1_ch0", **kwargs):
    return client.post(
        "/v1/payments/webhook",
        json={"imp_uid": imp_uid, "merchant_uid": merchant_uid, "status": status},
        **kwargs,
    )


class TestWebhookAPI:
    def test_paid_notification(self, client, provider, db_session):
        provider.add_payment("imp_0", INITIAL, "paid")

        response = notify(client)

        assert response.status_code == 200
        assert response.json() == {
            "status": "applied",
            "event": "paid",
            "merchant_uid": "biz-1_ch0",
            "next_merchant_uid": "biz-1_ch1",
        }
        provider.get_payment.assert_awaited_once_with("imp_0")
        assert PaymentScheduleRepository(db_session).get_open("biz-1").merchant_uid == "biz-1_ch1"

    def test_redelivery(self, client, provider, db_session):
        provider.add_payment("imp_0", INITIAL, "paid")
        notify(client)

        response = notify(client)

        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"
        assert db_session.query(PaymentTransaction).count() == 1

    def test_ready_is_ignored(self, client, provider):
        response = notify(client, status="ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        provider.get_payment.assert_not_called()

    def test_invalid_json(self, client, provider):
        response = client.post(
            "/v1/payments/webhook",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid JSON payload"

    def test_missing_status(self, client, provider):
        response = client.post("/v1/payments/webhook", json={"imp_uid": "imp_0"})
        assert response.status_code == 400

    def test_missing_imp_uid(self, client, provider):
        response = notify(client, imp_uid=None)
        assert response.status_code == 400

    def test_malformed_custom_data(self, client, provider):
        payment = provider.add_payment("imp_0", INITIAL, "paid")
        payment.custom_data = "{}"

        response = notify(client)

        assert response.status_code == 400

    def test_provider_lookup_fails(self, client, provider):
        provider.get_payment.side_effect = PaymentRequestError(-1, "payment not found")

        response = notify(client)

        assert response.status_code == 502


class TestWebhookSignature:
    def test_unsigned_accepted_without_secret(self, client, provider, monkeypatch):
        monkeypatch.setattr(settings, "iamport_webhook_secret", "")
        provider.verify.return_value = False

        assert notify(client, status="ready").status_code == 200
        provider.verify.assert_not_called()

    def test_bad_signature(self, client, provider, monkeypatch):
        monkeypatch.setattr(settings, "iamport_webhook_secret", "whsec")
        provider.verify.return_value = False

        response = notify(client, headers={"X-Iamport-Signature": "bad"})

        assert response.status_code == 401
        provider.get_payment.assert_not_called()

    def test_good_signature(self, client, provider, monkeypatch):
        monkeypatch.setattr(settings, "iamport_webhook_secret", "whsec")
        provider.add_payment("imp_0", INITIAL, "paid")

        response = notify(client, headers={"X-Iamport-Signature": "sha256=abc"})

        assert response.status_code == 200
        assert provider.verify.call_args.args[1] == "sha256=abc"

    def test_fallback_signature_header(self, client, provider, monkeypatch):
        monkeypatch.setattr(settings, "iamport_webhook_secret", "whsec")

        notify(client, status="ready", headers={"X-Webhook-Signature": "xyz"})

        assert provider.verify.call_args.args[1] == "xyz"
