"""Payment notification endpoint."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import BillingError
from app.routers.errors import http_error
from app.schemas.payment_transaction import PaymentNotification
from app.services.payment_provider import get_payment_provider
from app.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def handle_webhook(
    request: Request,
    signature: str | None = Header(None, alias="X-Iamport-Signature"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Handle payment provider notifications.

    The provider reports only ``imp_uid``, ``merchant_uid`` and ``status``;
    the payment itself is fetched back from the provider before anything is
    written.
    """
    payload = await request.body()
    payment_provider = get_payment_provider()

    # Signed notifications are optional and only checked when a secret is set
    if settings.iamport_webhook_secret and not payment_provider.verify_webhook_signature(
        payload, signature or request.headers.get("X-Webhook-Signature", "")
    ):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload_json = await request.json()
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from None

    try:
        notification = PaymentNotification.model_validate(payload_json)
    except PydanticValidationError:
        raise HTTPException(status_code=400, detail="Invalid notification payload") from None

    webhook_result = payment_provider.parse_webhook(notification.model_dump())
    service = ReconciliationService(db, payment_provider)
    try:
        result = await service.handle(webhook_result)
    except BillingError as e:
        logger.warning(
            "Could not reconcile %s (%s): %s",
            webhook_result.merchant_uid,
            webhook_result.external_reference,
            e.message,
        )
        raise http_error(e) from e

    return {
        "status": result.outcome.value,
        "event": result.status,
        "merchant_uid": result.merchant_uid,
        "next_merchant_uid": result.next_merchant_uid,
    }
