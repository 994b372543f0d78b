"""PaymentMethod model for businesses' registered billing keys."""

from sqlalchemy import JSON, Boolean, Column, DateTime, String, func

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class PaymentMethod(Base):
    """PaymentMethod model - one provider billing key owned by a business.

    The card itself lives with the provider; ``customer_uid`` is the opaque
    token the provider charges against.
    """

    __tablename__ = "payment_methods"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    business_id = Column(String(64), nullable=False, index=True)

    # Provider billing key
    customer_uid = Column(String(128), nullable=False, unique=True, index=True)

    # Default flag (at most one per business)
    is_default = Column(Boolean, nullable=False, default=False)

    # Extra details (last4, card label, etc.)
    details = Column(JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
