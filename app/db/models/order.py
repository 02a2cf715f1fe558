"""
Order Model - normalized platform orders
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Text, UniqueConstraint

from app.db.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderRecord(Base):
    """
    One stored order per (platform, external_order_id).

    ``id`` is a surrogate key so two platforms can both send order "1001".
    ``order_data`` is the platform document as received plus ``processedAt``,
    serialized as JSON and never parsed by the store.
    """

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    platform = Column(String(20), nullable=False)
    external_order_id = Column(String(200), nullable=False)
    order_data = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="received")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("platform", "external_order_id", name="uq_orders_platform_external_order_id"),
    )

    def __repr__(self) -> str:
        return f"<OrderRecord {self.id} {self.platform}:{self.external_order_id} {self.status}>"
