"""Maps billing errors onto HTTP responses."""

import logging

from fastapi import HTTPException

from app.core.exceptions import (
    BillingError,
    ChargePendingError,
    DuplicateScheduleError,
    InvalidTransitionError,
    NoDefaultMethodError,
    NothingToRefundError,
    PaymentMethodNotFoundError,
    PaymentRequestError,
    ScheduleNotFoundError,
    SubscriptionExistsError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[BillingError], int] = {
    ValidationError: 400,
    NoDefaultMethodError: 402,
    ScheduleNotFoundError: 404,
    PaymentMethodNotFoundError: 404,
    SubscriptionExistsError: 409,
    InvalidTransitionError: 409,
    NothingToRefundError: 409,
    ChargePendingError: 409,
    PaymentRequestError: 502,
    DuplicateScheduleError: 500,
}


def http_error(error: BillingError) -> HTTPException:
    status_code = next(
        (code for cls, code in STATUS_CODES.items() if isinstance(error, cls)), 500
    )
    if status_code >= 500:
        logger.error("%s: %s %s", type(error).__name__, error.message, error.params)
    return HTTPException(status_code=status_code, detail=error.message)
