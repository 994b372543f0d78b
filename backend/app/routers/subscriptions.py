"""Subscription API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import BillingError
from app.models.payment_schedule import PaymentSchedule
from app.routers.errors import http_error
from app.schemas.payment_schedule import (
    ChangePlanRequest,
    ChargeAcknowledgmentResponse,
    PaymentScheduleResponse,
    RefundResponse,
    ResumeResponse,
    ScheduleHistoryResponse,
    SubscribeRequest,
)
from app.schemas.payment_transaction import PaymentTransactionResponse
from app.services.payment_executor import ChargeAcknowledgment
from app.services.payment_provider import get_payment_provider
from app.services.schedule_service import ScheduleService

router = APIRouter()


def _acknowledgment(ack: ChargeAcknowledgment) -> ChargeAcknowledgmentResponse:
    return ChargeAcknowledgmentResponse(
        merchant_uid=ack.merchant_uid,
        status=ack.status.value,
        external_reference=ack.external_reference,
        provider_status=ack.provider_status,
    )


@router.post(
    "/{business_id}",
    response_model=ChargeAcknowledgmentResponse,
    status_code=202,
    summary="Subscribe",
    responses={
        400: {"description": "Unsupported plan or malformed business id"},
        402: {"description": "No default payment method"},
        409: {"description": "Business already has an active subscription"},
        502: {"description": "Provider rejected the charge"},
    },
)
async def subscribe(
    business_id: str,
    data: SubscribeRequest,
    db: Session = Depends(get_db),
) -> ChargeAcknowledgmentResponse:
    """Request the initial charge. The first cycle is created once it is paid."""
    service = ScheduleService(db, get_payment_provider())
    try:
        ack = await service.subscribe(business_id, data.billing_plan, data.amount, data.vat)
    except BillingError as e:
        raise http_error(e) from e
    return _acknowledgment(ack)


@router.get(
    "/{business_id}",
    response_model=PaymentScheduleResponse,
    summary="Get active billing cycle",
    responses={404: {"description": "No active billing cycle"}},
)
async def get_active_cycle(
    business_id: str,
    db: Session = Depends(get_db),
) -> PaymentSchedule:
    service = ScheduleService(db, get_payment_provider())
    try:
        return service.get_active(business_id)
    except BillingError as e:
        raise http_error(e) from e


@router.post(
    "/{business_id}/pause",
    response_model=PaymentScheduleResponse,
    summary="Pause subscription",
    responses={
        404: {"description": "No active billing cycle"},
        409: {"description": "Cycle cannot be paused now or its charge is awaiting an outcome"},
    },
)
async def pause_subscription(
    business_id: str,
    db: Session = Depends(get_db),
) -> PaymentSchedule:
    service = ScheduleService(db, get_payment_provider())
    try:
        return service.pause(business_id)
    except BillingError as e:
        raise http_error(e) from e


@router.post(
    "/{business_id}/resume",
    response_model=ResumeResponse,
    summary="Resume subscription",
    responses={
        404: {"description": "No active billing cycle"},
        409: {"description": "Cycle is not paused"},
    },
)
async def resume_subscription(
    business_id: str,
    db: Session = Depends(get_db),
) -> ResumeResponse:
    """Resume a paused cycle; an overdue one is charged immediately."""
    service = ScheduleService(db, get_payment_provider())
    try:
        schedule, ack = await service.resume(business_id)
    except BillingError as e:
        raise http_error(e) from e
    return ResumeResponse(
        schedule=PaymentScheduleResponse.model_validate(schedule),
        charge=_acknowledgment(ack) if ack is not None else None,
    )


@router.post(
    "/{business_id}/cancel",
    response_model=RefundResponse,
    summary="Cancel subscription with prorated refund",
    responses={
        409: {"description": "Nothing to cancel, or the charge is awaiting an outcome"},
        500: {"description": "Billing cycles are inconsistent"},
        502: {"description": "Provider rejected the refund"},
    },
)
async def cancel_subscription(
    business_id: str,
    db: Session = Depends(get_db),
) -> RefundResponse:
    service = ScheduleService(db, get_payment_provider())
    try:
        outcome = await service.cancel_and_refund(business_id)
    except BillingError as e:
        raise http_error(e) from e
    return RefundResponse(
        cancelled_merchant_uid=outcome.cancelled_merchant_uid,
        refunded_merchant_uid=outcome.refunded_merchant_uid,
        refund_amount=outcome.refund_amount,
        fee_waived=outcome.fee_waived,
        provider_status=outcome.provider_status,
    )


@router.put(
    "/{business_id}/plan",
    response_model=PaymentScheduleResponse,
    summary="Change plan",
    responses={
        404: {"description": "No active billing cycle"},
        409: {"description": "Plan cannot be changed in the current status"},
    },
)
async def change_plan(
    business_id: str,
    data: ChangePlanRequest,
    db: Session = Depends(get_db),
) -> PaymentSchedule:
    service = ScheduleService(db, get_payment_provider())
    try:
        return service.change_plan(business_id, data.billing_plan, data.amount, data.vat)
    except BillingError as e:
        raise http_error(e) from e


@router.get(
    "/{business_id}/history",
    response_model=ScheduleHistoryResponse,
    summary="Billing history",
)
async def get_history(
    business_id: str,
    db: Session = Depends(get_db),
) -> ScheduleHistoryResponse:
    service = ScheduleService(db, get_payment_provider())
    schedules, transactions = service.history(business_id)
    return ScheduleHistoryResponse(
        schedules=[PaymentScheduleResponse.model_validate(s) for s in schedules],
        transactions=[PaymentTransactionResponse.model_validate(t) for t in transactions],
    )
