from app.repositories.payment_method_repository import PaymentMethodRepository
from app.repositories.payment_schedule_repository import PaymentScheduleRepository
from app.repositories.payment_transaction_repository import PaymentTransactionRepository

__all__ = [
    "PaymentMethodRepository",
    "PaymentScheduleRepository",
    "PaymentTransactionRepository",
]
