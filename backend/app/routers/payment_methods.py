"""Payment methods API endpoints."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import BillingError
from app.models.payment_method import PaymentMethod
from app.repositories.payment_method_repository import PaymentMethodRepository
from app.routers.errors import http_error
from app.schemas.payment_method import PaymentMethodCreate, PaymentMethodResponse
from app.services.payment_method_service import PaymentMethodService
from app.services.payment_provider import get_payment_provider

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/",
    response_model=list[PaymentMethodResponse],
    summary="List payment methods",
)
async def list_payment_methods(
    business_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
) -> list[PaymentMethod]:
    """List the billing keys registered for a business."""
    repo = PaymentMethodRepository(db)
    return repo.get_by_business_id(business_id)


@router.post(
    "/",
    response_model=PaymentMethodResponse,
    status_code=201,
    summary="Register payment method",
    responses={
        400: {"description": "Malformed business id or card digits, or unknown billing key"},
        422: {"description": "Validation error"},
    },
)
async def create_payment_method(
    data: PaymentMethodCreate,
    db: Session = Depends(get_db),
) -> PaymentMethod:
    """Register the billing key issued for a card. The first one becomes the default."""
    service = PaymentMethodService(db, get_payment_provider())
    try:
        method, retry = await service.register(
            data.business_id, data.card_last4, data.is_default, data.details
        )
    except BillingError as e:
        raise http_error(e) from e
    if retry is not None:
        logger.info("Retry of %s requested: %s", retry.merchant_uid, retry.status.value)
    return method


@router.delete(
    "/{customer_uid}",
    status_code=204,
    summary="Remove payment method",
    responses={
        400: {"description": "Cannot delete the default method of an active subscription"},
        404: {"description": "Payment method not found"},
        502: {"description": "Provider rejected the request"},
    },
)
async def delete_payment_method(
    customer_uid: str,
    db: Session = Depends(get_db),
) -> None:
    service = PaymentMethodService(db, get_payment_provider())
    try:
        await service.remove(customer_uid)
    except BillingError as e:
        raise http_error(e) from e


@router.post(
    "/{customer_uid}/default",
    response_model=PaymentMethodResponse,
    summary="Set default payment method",
    responses={
        404: {"description": "Payment method not found"},
        502: {"description": "Retrying the failed cycle was rejected"},
    },
)
async def set_default_payment_method(
    customer_uid: str,
    db: Session = Depends(get_db),
) -> PaymentMethod:
    """Make a method the default; a failed cycle is charged again with it."""
    service = PaymentMethodService(db, get_payment_provider())
    try:
        method, retry = await service.set_default(customer_uid)
    except BillingError as e:
        raise http_error(e) from e
    if retry is not None:
        logger.info("Retry of %s requested: %s", retry.merchant_uid, retry.status.value)
    return method
