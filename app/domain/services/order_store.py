"""
Order Store - idempotent persistence of normalized orders.

The unique constraint on (platform, external_order_id) is the only
deduplication mechanism: concurrent duplicate deliveries race to INSERT,
one wins, the other gets OrderConflictError.
"""
import json
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import OrderConflictError, OrderNotFoundError, StorageError
from app.core.logging import get_logger
from app.db.models.order import OrderRecord
from app.domain.schemas import NormalizedOrder, OrderStatus, Platform, StoredOrder, utcnow

logger = get_logger(__name__)


def _is_unique_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig or exc).lower()
    return "unique" in text or "duplicate" in text


class OrderStore:
    """Service for storing and reading normalized orders"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, platform: Platform, order: NormalizedOrder) -> int:
        """
        Insert the order with its initial status; returns the surrogate id.

        Raises:
            OrderConflictError: (platform, external_order_id) already stored
            StorageError: any other persistence failure
        """
        if order.platform != platform:
            raise ValueError(f"order for {order.platform.value} cannot be saved as {platform.value}")

        record = OrderRecord(
            platform=platform.value,
            external_order_id=order.external_order_id,
            order_data=json.dumps(order.document(), ensure_ascii=False, default=str),
            status=order.status.value,
        )

        try:
            self.db.add(record)
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            if _is_unique_violation(exc):
                raise OrderConflictError(platform.value, order.external_order_id) from exc
            raise StorageError(str(exc.orig or exc), details={"platform": platform.value}) from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(
                "Failed to store order",
                extra_data={
                    "platform": platform.value,
                    "external_order_id": order.external_order_id,
                    "error": str(exc),
                },
                exc_info=True,
            )
            raise StorageError(type(exc).__name__, details={"platform": platform.value}) from exc

        return record.id

    async def get_by_id(self, record_id: int) -> StoredOrder:
        """Raises OrderNotFoundError on a miss"""
        try:
            record = await self.db.get(OrderRecord, record_id)
        except SQLAlchemyError as exc:
            raise StorageError(type(exc).__name__) from exc

        if record is None:
            raise OrderNotFoundError(record_id)
        return StoredOrder.model_validate(record)

    async def get_by_external_id(
        self,
        platform: Platform,
        external_order_id: str
    ) -> Optional[StoredOrder]:
        try:
            result = await self.db.execute(
                select(OrderRecord).where(
                    OrderRecord.platform == platform.value,
                    OrderRecord.external_order_id == external_order_id,
                )
            )
        except SQLAlchemyError as exc:
            raise StorageError(type(exc).__name__) from exc

        record = result.scalar_one_or_none()
        return StoredOrder.model_validate(record) if record is not None else None

    async def update_status(
        self,
        platform: Platform,
        external_order_id: str,
        status: OrderStatus
    ) -> None:
        """Raises OrderNotFoundError when no row matches"""
        try:
            result = await self.db.execute(
                update(OrderRecord)
                .where(
                    OrderRecord.platform == platform.value,
                    OrderRecord.external_order_id == external_order_id,
                )
                .values(status=status.value, updated_at=utcnow())
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise StorageError(type(exc).__name__, details={"platform": platform.value}) from exc

        if result.rowcount == 0:
            raise OrderNotFoundError(f"{platform.value}:{external_order_id}")
