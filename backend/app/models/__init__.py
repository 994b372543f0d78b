from app.models.active_cycle import ActiveCycle
from app.models.payment_method import PaymentMethod
from app.models.payment_schedule import OPEN_STATUSES, PaymentSchedule, ScheduleStatus
from app.models.payment_transaction import PaymentTransaction, TransactionStatus
from app.models.shared import BillingPlan, PaymentType

__all__ = [
    "ActiveCycle",
    "BillingPlan",
    "OPEN_STATUSES",
    "PaymentMethod",
    "PaymentSchedule",
    "PaymentTransaction",
    "PaymentType",
    "ScheduleStatus",
    "TransactionStatus",
]
