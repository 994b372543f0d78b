"""Pydantic schemas for PaymentMethod."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentMethodCreate(BaseModel):
    business_id: str = Field(..., min_length=1, max_length=64)
    card_last4: str = Field(..., min_length=4, max_length=4)
    is_default: bool = False
    details: dict[str, Any] = Field(default_factory=dict)


class PaymentMethodResponse(BaseModel):
    id: UUID
    business_id: str
    customer_uid: str
    is_default: bool
    details: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
