"""
inventory/adjuster.py - Stock adjustments with optimistic locking

Every adjustment is one write-queue operation that reads the product's stock
and version, checks the result cannot go negative, then updates the row only
if the version is unchanged. Inside one process the queue already prevents
overlapping writes; the version check catches writers in other processes.
A lost race is reported as ConflictError and is never retried here.
"""

import logging
import time
from typing import Iterable, List, Optional, Tuple, Union
from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from ..errors import ConflictError, InsufficientStockError, NotFoundError, POSInventoryError
from ..models.inventory import (
    AdjustmentOutcome,
    AdjustmentRequest,
    BulkAdjustmentResult,
    InventoryEvent,
    InventoryEventType,
    InventoryLevel,
    InventoryMovement,
    LowStockAlert,
    MovementType,
    StockAdjustment,
)
from ..store.sql_store import SQLStore, utcnow
from ..store.write_queue import WriteQueueManager
from .events import InventoryEventBus

logger = logging.getLogger(__name__)


def new_movement_id() -> str:
    return f"MOV_{int(time.time() * 1000)}_{uuid4().hex[:8]}"


async def publish_stock_change(
    events: InventoryEventBus, adjustment: StockAdjustment, movement_type: MovementType, reorder_level: int
) -> None:
    """Publish ``inventory_updated``, plus ``reorder_alert`` once stock is at or below the reorder level."""
    now = utcnow()
    await events.publish(InventoryEvent(
        type=InventoryEventType.INVENTORY_UPDATED,
        product_id=adjustment.product_id,
        data={
            "new_quantity": adjustment.new_quantity,
            "quantity_change": adjustment.delta,
            "version": adjustment.new_version,
            "operation_type": movement_type.value,
        },
        timestamp=now,
    ))

    if adjustment.new_quantity <= reorder_level:
        await events.publish(InventoryEvent(
            type=InventoryEventType.REORDER_ALERT,
            product_id=adjustment.product_id,
            data={"current_stock": adjustment.new_quantity, "reorder_level": reorder_level},
            timestamp=now,
        ))


class StockAdjuster:
    """
    Applies signed stock deltas to products.

    Args:
        store: Connected SQL store
        queue: Write queue shared by every writer of ``store`` in this process
        events: Optional event bus notified after successful adjustments
    """

    def __init__(self, store: SQLStore, queue: WriteQueueManager, events: Optional[InventoryEventBus] = None):
        self.store = store
        self.queue = queue
        self.events = events

    async def adjust_stock(
        self,
        product_id: str,
        delta: int,
        movement_type: Union[MovementType, str] = MovementType.ADJUSTMENT,
        reason: Optional[str] = None,
        user_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> StockAdjustment:
        """
        Add ``delta`` (positive or negative) to a product's stock.

        Returns:
            The new quantity and version

        Raises:
            NotFoundError: No product with ``product_id``
            InsufficientStockError: Stock would go negative, or a sale exceeds
                the unreserved stock; nothing is written
            ConflictError: The product changed after it was read; re-read and
                resubmit if appropriate
        """
        movement_type = MovementType(movement_type)
        adjustment, reorder_level = await self.queue.enqueue(
            lambda: self._apply_adjustment(product_id, delta, movement_type, reason, user_id, order_id)
        )
        logger.info(
            f"Stock for {product_id} {adjustment.previous_quantity} -> {adjustment.new_quantity} "
            f"({movement_type.value}, v{adjustment.new_version})"
        )

        if self.events is not None:
            await publish_stock_change(self.events, adjustment, movement_type, reorder_level)
        return adjustment

    async def _apply_adjustment(
        self,
        product_id: str,
        delta: int,
        movement_type: MovementType,
        reason: Optional[str],
        user_id: Optional[str],
        order_id: Optional[str],
    ) -> Tuple[StockAdjustment, int]:
        products = self.store.products
        current = await self.store.fetch_one(
            sa.select(
                products.c.stock_quantity,
                products.c.reserved_quantity,
                products.c.reorder_level,
                products.c.version,
            ).where(products.c.id == product_id)
        )
        if current is None:
            raise NotFoundError(f"Product {product_id} not found")

        previous = current['stock_quantity']
        new_quantity = previous + delta
        if new_quantity < 0:
            raise InsufficientStockError(
                f"Insufficient inventory for product {product_id} (have {previous}, change {delta:+d})"
            )

        available = previous - current['reserved_quantity']
        if movement_type == MovementType.SALE and delta < 0 and -delta > available:
            raise InsufficientStockError(
                f"Insufficient available stock for product {product_id} (need {-delta}, {available} unreserved)"
            )

        read_version = current['version']
        now = utcnow()

        def write(conn: Connection) -> None:
            result = conn.execute(
                sa.update(products)
                .where(products.c.id == product_id, products.c.version == read_version)
                .values(stock_quantity=new_quantity, version=products.c.version + 1, updated_at=now)
            )
            if result.rowcount == 0:
                raise ConflictError(f"Inventory update conflict for product {product_id} - please retry")

            conn.execute(sa.insert(self.store.inventory_movements).values(
                id=new_movement_id(),
                product_id=product_id,
                movement_type=movement_type.value,
                quantity=delta,
                previous_stock=previous,
                new_stock=new_quantity,
                reason=reason or f"{movement_type.value} operation",
                user_id=user_id,
                order_id=order_id,
                timestamp=now,
            ))

        await self.store.run_in_transaction(write)

        adjustment = StockAdjustment(
            product_id=product_id,
            delta=delta,
            previous_quantity=previous,
            new_quantity=new_quantity,
            new_version=read_version + 1,
        )
        return adjustment, current['reorder_level']

    async def bulk_adjust(
        self,
        updates: Iterable[AdjustmentRequest],
        user_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> BulkAdjustmentResult:
        """
        Apply several adjustments in product-id order.

        A failed line is recorded in the result and does not stop the others.
        """
        outcome = BulkAdjustmentResult()

        for update in sorted(updates, key=lambda u: u.product_id):
            try:
                adjustment = await self.adjust_stock(
                    update.product_id,
                    update.delta,
                    movement_type=update.movement_type,
                    reason=update.reason,
                    user_id=user_id,
                    order_id=order_id,
                )
            except POSInventoryError as e:
                outcome.results.append(AdjustmentOutcome(product_id=update.product_id, success=False, error=str(e)))
                outcome.errors.append(f"Product {update.product_id}: {e}")
            else:
                outcome.results.append(AdjustmentOutcome(
                    product_id=update.product_id, success=True, new_quantity=adjustment.new_quantity
                ))

        return outcome

    async def get_inventory(self, product_id: str) -> InventoryLevel:
        products = self.store.products
        row = await self.store.fetch_one(
            sa.select(
                products.c.id.label('product_id'),
                products.c.stock_quantity,
                products.c.reserved_quantity,
                products.c.reorder_level,
                products.c.version,
                products.c.updated_at,
            ).where(products.c.id == product_id)
        )
        if row is None:
            raise NotFoundError(f"Product {product_id} not found")
        return InventoryLevel(**row)

    async def low_stock_alerts(self) -> List[LowStockAlert]:
        """Active products at or below their reorder level, shortest first."""
        products = self.store.products
        rows = await self.store.fetch_all(
            sa.select(products)
            .where(products.c.stock_quantity <= products.c.reorder_level, products.c.is_active == 1)
            .order_by((products.c.stock_quantity - products.c.reorder_level).asc(), products.c.id)
        )
        return [
            LowStockAlert(
                product_id=row['id'],
                product_name=row['name'],
                current_stock=row['stock_quantity'],
                reorder_level=row['reorder_level'],
                available_stock=row['stock_quantity'] - row['reserved_quantity'],
            )
            for row in rows
        ]

    async def list_movements(self, product_id: str, limit: Optional[int] = 20) -> List[InventoryMovement]:
        """Ledger entries for a product, newest first."""
        movements = self.store.inventory_movements
        query = (
            sa.select(movements)
            .where(movements.c.product_id == product_id)
            .order_by(movements.c.timestamp.desc(), movements.c.id.desc())
        )
        if limit is not None and limit > 0:
            query = query.limit(limit)
        return [InventoryMovement(**row) for row in await self.store.fetch_all(query)]
