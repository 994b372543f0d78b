"""Exception hierarchy for billing operations.

Every error carries a ``retryable`` flag so that interactive callers can tell
transient provider trouble apart from conditions that need an operator.
"""

from typing import Any


class BillingError(Exception):
    """Base exception for all billing errors."""

    retryable = False

    def __init__(self, message: str, params: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.params = params or {}


class ValidationError(BillingError):
    """Raised for a bad plan, a malformed identifier or an oversized payload."""


class SubscriptionExistsError(BillingError):
    """Raised when a business already has an open billing cycle."""


class ScheduleNotFoundError(BillingError):
    """Raised when no schedule matches the requested business or merchant_uid."""


class PaymentMethodNotFoundError(BillingError):
    """Raised when no payment method matches the given billing key."""


class InvalidTransitionError(BillingError):
    """Raised when a schedule event is not allowed from the current status."""

    def __init__(
        self,
        merchant_uid: str,
        current: str | None,
        event: str,
    ):
        super().__init__(
            f"Cannot apply '{event}' to schedule {merchant_uid} in status {current}",
            {"merchant_uid": merchant_uid, "status": current, "event": event},
        )
        self.merchant_uid = merchant_uid
        self.current = current
        self.event = event


class NoDefaultMethodError(BillingError):
    """Raised when a business has no default payment method to charge.

    Needs an operator (or the business) to register a card; never retried
    automatically.
    """


class PaymentRequestError(BillingError):
    """Raised when the payment provider rejects or fails a request."""

    retryable = True

    def __init__(self, code: str | int | None, message: str, params: dict[str, Any] | None = None):
        super().__init__(message, params)
        self.code = code


class NothingToRefundError(BillingError):
    """Raised when the latest cycle cannot be cancelled or refunded."""


class DuplicateScheduleError(BillingError):
    """Raised when stored schedules violate the single-open-cycle invariant.

    This is a data-integrity alert, not a user-recoverable condition.
    """


class ProviderTimeoutError(BillingError):
    """Raised when the provider did not answer within the request timeout.

    The outcome is unknown: the charge may still settle and be reported by
    notification, so callers treat this as pending rather than failed.
    """

    retryable = True


class ChargePendingError(BillingError):
    """Raised when a cycle's charge was requested and its outcome is not known yet.

    The cycle cannot be paused or cancelled until the provider reports it.
    """

    retryable = True
