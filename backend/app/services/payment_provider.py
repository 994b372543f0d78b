"""Payment provider abstraction layer.

The provider owns card data: we only ever hold the opaque billing key
(``customer_uid``) it issued, and reference our own charges by
``merchant_uid``, which the provider treats as an idempotency key.
"""

import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from app.core.config import settings
from app.core.exceptions import PaymentRequestError, ProviderTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class ChargeResult:
    """Synchronous answer to a charge request. Not the settled outcome."""

    merchant_uid: str
    external_reference: str | None = None
    status: str | None = None
    failure_reason: str | None = None


@dataclass
class ProviderPayment:
    """A payment as the provider currently reports it."""

    external_reference: str
    merchant_uid: str
    status: str
    amount: int = 0
    cancel_amount: int = 0
    custom_data: str | None = None
    failure_reason: str | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    external_reference: str | None
    merchant_uid: str
    amount: int
    status: str | None = None


@dataclass
class BillingKey:
    """A billing key the provider holds for a card."""

    customer_uid: str
    card_name: str | None = None
    card_number: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookResult:
    """Result of parsing a payment notification."""

    status: str
    external_reference: str | None = None
    merchant_uid: str | None = None


class PaymentProviderBase(ABC):
    """Abstract base class for payment providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass  # pragma: no cover

    @abstractmethod
    async def charge(
        self,
        customer_uid: str,
        merchant_uid: str,
        amount: int,
        vat: int,
        name: str,
        custom_data: str,
    ) -> ChargeResult:
        """Request a charge against a stored billing key."""
        pass  # pragma: no cover

    @abstractmethod
    async def refund(
        self, merchant_uid: str, amount: int, reason: str | None = None
    ) -> RefundResult:
        """Request a (partial) refund of a settled charge."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_payment(self, external_reference: str) -> ProviderPayment:
        """Fetch the authoritative state of a payment."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_billing_key(self, customer_uid: str) -> BillingKey | None:
        """Look up a stored billing key; None if the provider has none."""
        pass  # pragma: no cover

    @abstractmethod
    async def delete_billing_key(self, customer_uid: str) -> None:
        pass  # pragma: no cover

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        pass  # pragma: no cover

    @abstractmethod
    def parse_webhook(self, payload: dict[str, Any]) -> WebhookResult:
        pass  # pragma: no cover


def _timestamp(value: Any) -> datetime | None:
    """The provider reports times as unix seconds, 0 meaning unset."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


class IamportProvider(PaymentProviderBase):
    """I'mport billing-key payments over its REST API.

    Every response is wrapped as ``{"code": 0, "message": ..., "response": ...}``;
    a non-zero code is a rejected request even when the HTTP status is 200.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        base_url: str | None = None,
        webhook_secret: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or settings.iamport_api_key
        self.api_secret = api_secret or settings.iamport_api_secret
        self.base_url = (base_url or settings.iamport_base_url).rstrip("/")
        self.webhook_secret = webhook_secret or settings.iamport_webhook_secret
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._transport = transport
        self._access_token: str | None = None
        self._token_expires_at: datetime | None = None

    @property
    def provider_name(self) -> str:
        return "iamport"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    @staticmethod
    def _unwrap(response: httpx.Response, params: dict[str, Any]) -> dict[str, Any]:
        try:
            body: dict[str, Any] = response.json()
        except ValueError:
            body = {}
        code = body.get("code", response.status_code if response.is_error else 0)
        if response.is_error or code != 0:
            message = body.get("message") or f"Provider returned HTTP {response.status_code}"
            raise PaymentRequestError(
                code, message, {**params, "http_status": response.status_code}
            )
        return body.get("response") or {}

    async def _get_token(self, client: httpx.AsyncClient) -> str:
        now = datetime.now(UTC)
        if self._access_token and self._token_expires_at and now < self._token_expires_at:
            return self._access_token

        response = await client.post(
            "/users/getToken",
            json={"imp_key": self.api_key, "imp_secret": self.api_secret},
        )
        data = self._unwrap(response, {"endpoint": "/users/getToken"})
        self._access_token = data["access_token"]
        expires_at = _timestamp(data.get("expired_at"))
        # Refresh a minute early so a token never expires mid-request
        self._token_expires_at = (
            expires_at - timedelta(minutes=1) if expires_at else now + timedelta(minutes=25)
        )
        return self._access_token

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any],
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            async with self._client() as client:
                token = await self._get_token(client)
                response = await client.request(
                    method,
                    endpoint,
                    json=data,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.TimeoutException as e:
            logger.warning("Provider request %s %s timed out: %s", method, endpoint, params)
            raise ProviderTimeoutError(
                f"Provider did not answer {endpoint} within {self.timeout}s", params
            ) from e
        except httpx.HTTPError as e:
            raise PaymentRequestError("http_error", f"Provider request failed: {e}", params) from e
        return self._unwrap(response, params)

    async def charge(
        self,
        customer_uid: str,
        merchant_uid: str,
        amount: int,
        vat: int,
        name: str,
        custom_data: str,
    ) -> ChargeResult:
        params = {"customer_uid": customer_uid, "merchant_uid": merchant_uid, "amount": amount}
        data = await self._request(
            "POST",
            "/subscribe/payments/again",
            params,
            {
                "customer_uid": customer_uid,
                "merchant_uid": merchant_uid,
                "amount": amount,
                "tax_free": 0,
                "vat_amount": vat,
                "name": name,
                "custom_data": custom_data,
            },
        )
        return ChargeResult(
            merchant_uid=data.get("merchant_uid", merchant_uid),
            external_reference=data.get("imp_uid"),
            status=data.get("status"),
            failure_reason=data.get("fail_reason"),
        )

    async def refund(
        self, merchant_uid: str, amount: int, reason: str | None = None
    ) -> RefundResult:
        params = {"merchant_uid": merchant_uid, "amount": amount}
        data = await self._request(
            "POST",
            "/payments/cancel",
            params,
            {"merchant_uid": merchant_uid, "amount": amount, "reason": reason or ""},
        )
        return RefundResult(
            external_reference=data.get("imp_uid"),
            merchant_uid=data.get("merchant_uid", merchant_uid),
            amount=amount,
            status=data.get("status"),
        )

    async def get_payment(self, external_reference: str) -> ProviderPayment:
        data = await self._request(
            "GET", f"/payments/{external_reference}", {"imp_uid": external_reference}
        )
        return ProviderPayment(
            external_reference=data.get("imp_uid", external_reference),
            merchant_uid=data.get("merchant_uid", ""),
            status=data.get("status", ""),
            amount=int(data.get("amount") or 0),
            cancel_amount=int(data.get("cancel_amount") or 0),
            custom_data=data.get("custom_data"),
            failure_reason=data.get("fail_reason"),
            paid_at=_timestamp(data.get("paid_at")),
            cancelled_at=_timestamp(data.get("cancelled_at")),
            raw=data,
        )

    async def get_billing_key(self, customer_uid: str) -> BillingKey | None:
        try:
            data = await self._request(
                "GET", f"/subscribe/customers/{customer_uid}", {"customer_uid": customer_uid}
            )
        except PaymentRequestError as e:
            if e.params.get("http_status") == 404:
                return None
            raise
        return BillingKey(
            customer_uid=data.get("customer_uid", customer_uid),
            card_name=data.get("card_name"),
            card_number=data.get("card_number"),
            raw=data,
        )

    async def delete_billing_key(self, customer_uid: str) -> None:
        await self._request(
            "DELETE", f"/subscribe/customers/{customer_uid}", {"customer_uid": customer_uid}
        )

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """HMAC-SHA256 over the raw body, when a notification secret is configured."""
        if not self.webhook_secret:
            return False
        expected = hmac.new(
            self.webhook_secret.encode(),
            payload,
            hashlib.sha256,
        ).hexdigest()
        if signature.startswith("sha256="):
            signature = signature[7:]
        return hmac.compare_digest(expected, signature)

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookResult:
        return WebhookResult(
            status=str(payload.get("status") or "").lower(),
            external_reference=payload.get("imp_uid"),
            merchant_uid=payload.get("merchant_uid"),
        )


def get_payment_provider(provider: str = "iamport") -> PaymentProviderBase:
    """Factory function to get the appropriate payment provider."""
    providers: dict[str, type[PaymentProviderBase]] = {
        "iamport": IamportProvider,
    }

    provider_class = providers.get(provider)
    if not provider_class:
        raise ValueError(f"Unsupported payment provider: {provider}")

    return provider_class()
