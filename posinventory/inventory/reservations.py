"""
inventory/reservations.py - Temporary stock holds for orders in checkout

A reservation moves units from available to reserved stock without touching
``stock_quantity``. Confirming it turns the hold into a sale; releasing it
(manually or on expiry) hands the units back.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from ..errors import InsufficientStockError, NotFoundError, ReservationError
from ..models.inventory import (
    InventoryEvent,
    InventoryEventType,
    MovementType,
    Reservation,
    ReservationStatus,
    StockAdjustment,
)
from ..store.sql_store import SQLStore, utcnow
from ..store.write_queue import WriteQueueManager
from .adjuster import new_movement_id, publish_stock_change
from .events import InventoryEventBus

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_MINUTES = 15


def new_reservation_id() -> str:
    return f"RSV_{int(time.time() * 1000)}_{uuid4().hex[:8]}"


class ReservationManager:
    """
    Creates, confirms and releases stock reservations.

    Every state change is one write-queue operation running a single
    database transaction.
    """

    def __init__(
        self,
        store: SQLStore,
        queue: WriteQueueManager,
        events: Optional[InventoryEventBus] = None,
        expiration_minutes: int = DEFAULT_EXPIRATION_MINUTES,
    ):
        self.store = store
        self.queue = queue
        self.events = events
        self.expiration_minutes = expiration_minutes

    async def reserve(
        self,
        product_id: str,
        quantity: int,
        order_id: str,
        expiration_minutes: Optional[int] = None,
    ) -> Reservation:
        """
        Hold ``quantity`` units of a product for an order.

        Raises:
            ValueError: ``quantity`` is not positive
            NotFoundError: No product with ``product_id``
            InsufficientStockError: Fewer than ``quantity`` units are unreserved
        """
        if quantity <= 0:
            raise ValueError("Reservation quantity must be positive")

        minutes = self.expiration_minutes if expiration_minutes is None else expiration_minutes
        now = utcnow()
        reservation = Reservation(
            id=new_reservation_id(),
            product_id=product_id,
            quantity=quantity,
            order_id=order_id,
            expires_at=now + timedelta(minutes=minutes),
            created_at=now,
        )

        products = self.store.products

        def write(conn: Connection) -> None:
            row = conn.execute(
                sa.select(products.c.stock_quantity, products.c.reserved_quantity)
                .where(products.c.id == product_id)
            ).first()
            if row is None:
                raise NotFoundError(f"Product {product_id} not found")

            available = row.stock_quantity - row.reserved_quantity
            result = conn.execute(
                sa.update(products)
                .where(
                    products.c.id == product_id,
                    products.c.stock_quantity - products.c.reserved_quantity >= quantity,
                )
                .values(reserved_quantity=products.c.reserved_quantity + quantity, updated_at=now)
            )
            if result.rowcount == 0:
                raise InsufficientStockError(
                    f"Insufficient available stock for product {product_id} "
                    f"(requested {quantity}, {available} available)"
                )

            conn.execute(sa.insert(self.store.stock_reservations).values(
                id=reservation.id,
                product_id=product_id,
                quantity=quantity,
                order_id=order_id,
                status=ReservationStatus.ACTIVE.value,
                expires_at=reservation.expires_at,
                created_at=now,
            ))

        await self.queue.enqueue(lambda: self.store.run_in_transaction(write))
        logger.info(f"Reserved {quantity} of {product_id} for order {order_id} ({reservation.id})")

        await self._publish(InventoryEventType.RESERVATION_CREATED, reservation)
        return reservation

    async def confirm(self, reservation_id: str, user_id: Optional[str] = None) -> Reservation:
        """
        Turn an active reservation into a sale.

        Stock and reserved quantity both drop by the reserved amount, the
        product version is bumped and a ``sale`` movement is recorded.
        """
        products = self.store.products
        reservations = self.store.stock_reservations

        def write(conn: Connection) -> Tuple[Reservation, StockAdjustment, int]:
            reservation = self._load_active(conn, reservation_id)
            now = utcnow()

            row = conn.execute(
                sa.select(products.c.stock_quantity, products.c.reorder_level, products.c.version)
                .where(products.c.id == reservation.product_id)
            ).first()
            if row is None:
                raise NotFoundError(f"Product {reservation.product_id} not found")

            previous = row.stock_quantity
            result = conn.execute(
                sa.update(products)
                .where(
                    products.c.id == reservation.product_id,
                    products.c.stock_quantity >= reservation.quantity,
                    products.c.reserved_quantity >= reservation.quantity,
                )
                .values(
                    stock_quantity=products.c.stock_quantity - reservation.quantity,
                    reserved_quantity=products.c.reserved_quantity - reservation.quantity,
                    version=products.c.version + 1,
                    updated_at=now,
                )
            )
            if result.rowcount == 0:
                raise InsufficientStockError(
                    f"Cannot confirm reservation {reservation_id}: stock for "
                    f"{reservation.product_id} is below {reservation.quantity}"
                )

            conn.execute(sa.insert(self.store.inventory_movements).values(
                id=new_movement_id(),
                product_id=reservation.product_id,
                movement_type=MovementType.SALE.value,
                quantity=-reservation.quantity,
                previous_stock=previous,
                new_stock=previous - reservation.quantity,
                reason=f"Reservation {reservation_id} confirmed",
                user_id=user_id,
                order_id=reservation.order_id,
                timestamp=now,
            ))
            conn.execute(
                sa.update(reservations)
                .where(reservations.c.id == reservation_id)
                .values(status=ReservationStatus.CONFIRMED.value, confirmed_at=now)
            )
            adjustment = StockAdjustment(
                product_id=reservation.product_id,
                delta=-reservation.quantity,
                previous_quantity=previous,
                new_quantity=previous - reservation.quantity,
                new_version=row.version + 1,
            )
            confirmed = reservation.model_copy(update={"status": ReservationStatus.CONFIRMED, "confirmed_at": now})
            return confirmed, adjustment, row.reorder_level

        confirmed, adjustment, reorder_level = await self.queue.enqueue(
            lambda: self.store.run_in_transaction(write)
        )
        logger.info(f"Confirmed reservation {reservation_id}")

        if self.events is not None:
            await publish_stock_change(self.events, adjustment, MovementType.SALE, reorder_level)
        return confirmed

    async def release(self, reservation_id: str) -> Reservation:
        """Cancel an active reservation and return its units to available stock."""
        products = self.store.products
        reservations = self.store.stock_reservations

        def write(conn: Connection) -> Reservation:
            reservation = self._load_active(conn, reservation_id)
            now = utcnow()

            conn.execute(
                sa.update(products)
                .where(products.c.id == reservation.product_id)
                .values(
                    reserved_quantity=sa.func.max(products.c.reserved_quantity - reservation.quantity, 0),
                    updated_at=now,
                )
            )
            conn.execute(
                sa.update(reservations)
                .where(reservations.c.id == reservation_id)
                .values(status=ReservationStatus.CANCELLED.value, cancelled_at=now)
            )
            return reservation.model_copy(update={"status": ReservationStatus.CANCELLED, "cancelled_at": now})

        released = await self.queue.enqueue(lambda: self.store.run_in_transaction(write))
        logger.info(f"Released reservation {reservation_id}")

        await self._publish(InventoryEventType.RESERVATION_RELEASED, released)
        return released

    async def cleanup_expired(self, now: Optional[datetime] = None) -> List[str]:
        """
        Release every active reservation whose expiry has passed.

        Returns:
            Ids of the reservations released
        """
        now = now or utcnow()
        reservations = self.store.stock_reservations
        rows = await self.store.fetch_all(
            sa.select(reservations.c.id)
            .where(
                reservations.c.status == ReservationStatus.ACTIVE.value,
                reservations.c.expires_at < now,
            )
            .order_by(reservations.c.expires_at)
        )

        released: List[str] = []
        for row in rows:
            try:
                await self.release(row['id'])
            except ReservationError as e:
                # Confirmed or released since the scan
                logger.debug(f"Skipping {row['id']}: {e}")
            else:
                released.append(row['id'])

        if released:
            logger.info(f"Cleaned up {len(released)} expired reservations")
        return released

    async def get_reservation(self, reservation_id: str) -> Reservation:
        reservations = self.store.stock_reservations
        row = await self.store.fetch_one(sa.select(reservations).where(reservations.c.id == reservation_id))
        if row is None:
            raise ReservationError(f"Reservation {reservation_id} not found")
        return Reservation(**row)

    async def list_active(self, product_id: Optional[str] = None) -> List[Reservation]:
        reservations = self.store.stock_reservations
        query = sa.select(reservations).where(reservations.c.status == ReservationStatus.ACTIVE.value)
        if product_id is not None:
            query = query.where(reservations.c.product_id == product_id)
        rows = await self.store.fetch_all(query.order_by(reservations.c.created_at))
        return [Reservation(**row) for row in rows]

    def _load_active(self, conn: Connection, reservation_id: str) -> Reservation:
        reservations = self.store.stock_reservations
        row = conn.execute(sa.select(reservations).where(reservations.c.id == reservation_id)).first()
        if row is None:
            raise ReservationError(f"Reservation {reservation_id} not found")

        reservation = Reservation(**row._mapping)
        if reservation.status != ReservationStatus.ACTIVE:
            raise ReservationError(f"Reservation {reservation_id} is {reservation.status.value}, not active")
        return reservation

    async def _publish(self, event_type: InventoryEventType, reservation: Reservation) -> None:
        if self.events is None:
            return
        await self.events.publish(InventoryEvent(
            type=event_type,
            product_id=reservation.product_id,
            data={
                "reservation_id": reservation.id,
                "quantity": reservation.quantity,
                "order_id": reservation.order_id,
            },
            timestamp=utcnow(),
        ))
