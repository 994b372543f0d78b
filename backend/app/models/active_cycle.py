"""ActiveCycle model - per-business pointer to the current forward cycle."""

from sqlalchemy import Column, DateTime, String, func

from app.core.database import Base


class ActiveCycle(Base):
    """Points at the merchant_uid of a business's latest forward cycle.

    Only moved by compare-and-swap in the same transaction that inserts the
    cycle it points to, so two writers can never both open a cycle.
    """

    __tablename__ = "active_cycles"

    business_id = Column(String(64), primary_key=True)
    merchant_uid = Column(String(128), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
