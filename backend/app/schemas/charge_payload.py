"""Opaque charge context attached to provider requests.

The provider echoes ``custom_data`` back verbatim when it reports the
outcome, so everything reconciliation needs travels inside it.
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.models.shared import BillingPlan, PaymentType


class ChargePayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    payment_type: PaymentType
    business_id: str = Field(..., min_length=1, max_length=64)
    merchant_uid: str = Field(..., min_length=1, max_length=128)
    billing_plan: BillingPlan
    cycle_start_date: date
    amount: int = Field(..., ge=0)
    vat: int = Field(default=0, ge=0)

    def encode(self, max_bytes: int | None = None) -> str:
        limit = settings.PROVIDER_CUSTOM_DATA_MAX_BYTES if max_bytes is None else max_bytes
        encoded = self.model_dump_json()
        if len(encoded.encode("utf-8")) > limit:
            raise ValidationError(
                f"custom_data exceeds the provider limit of {limit} bytes",
                {"merchant_uid": self.merchant_uid, "size": len(encoded)},
            )
        return encoded

    @classmethod
    def decode(cls, raw: str | dict | None) -> "ChargePayload":
        if raw is None or raw == "":
            raise ValidationError("Payment notification has no custom_data")
        try:
            if isinstance(raw, dict):
                return cls.model_validate(raw)
            return cls.model_validate_json(raw)
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed custom_data: {e}", {"custom_data": raw}) from e
