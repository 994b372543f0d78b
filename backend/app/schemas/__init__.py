from app.schemas.charge_payload import ChargePayload
from app.schemas.payment_method import PaymentMethodCreate, PaymentMethodResponse
from app.schemas.payment_schedule import (
    ChangePlanRequest,
    ChargeAcknowledgmentResponse,
    FailureRecord,
    PaymentScheduleResponse,
    RefundResponse,
    ResumeResponse,
    ScheduleHistoryResponse,
    SettlementRunResponse,
    SubscribeRequest,
)
from app.schemas.payment_transaction import PaymentNotification, PaymentTransactionResponse

__all__ = [
    "ChangePlanRequest",
    "ChargeAcknowledgmentResponse",
    "ChargePayload",
    "FailureRecord",
    "PaymentMethodCreate",
    "PaymentMethodResponse",
    "PaymentNotification",
    "PaymentScheduleResponse",
    "PaymentTransactionResponse",
    "RefundResponse",
    "ResumeResponse",
    "ScheduleHistoryResponse",
    "SettlementRunResponse",
    "SubscribeRequest",
]
