"""
context.py - Wiring of the store, write queue and services

One AppContext is built at startup and handed to whoever needs it; there are
no module-level instances. Use it as an async context manager so the store is
connected on entry and closed, after the write queue has drained, on exit.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .config import POSInventoryConfig
from .inventory.adjuster import StockAdjuster
from .inventory.catalog import ProductCatalog
from .inventory.events import InventoryEventBus
from .inventory.reservations import ReservationManager
from .payments.callbacks import PaymentCallbackVerifier
from .store.database import QueuedDatabase
from .store.sql_store import SQLStore
from .store.write_queue import WriteQueueManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class AppContext:
    config: POSInventoryConfig
    store: SQLStore
    queue: WriteQueueManager
    database: QueuedDatabase
    events: InventoryEventBus
    catalog: ProductCatalog
    adjuster: StockAdjuster
    reservations: ReservationManager
    payments: PaymentCallbackVerifier

    @classmethod
    def from_config(cls, config: POSInventoryConfig) -> "AppContext":
        store = SQLStore(config.database_path, echo=config.echo_sql, timeout=config.database_timeout)
        queue = WriteQueueManager(
            max_retries=config.queue.max_retries,
            retry_delay=config.queue.retry_delay,
            max_pending=config.queue.max_pending,
        )
        events = InventoryEventBus()
        return cls(
            config=config,
            store=store,
            queue=queue,
            database=QueuedDatabase(store, queue),
            events=events,
            catalog=ProductCatalog(store, queue),
            adjuster=StockAdjuster(store, queue, events),
            reservations=ReservationManager(
                store, queue, events, expiration_minutes=config.reservations.expiration_minutes
            ),
            payments=PaymentCallbackVerifier(config.payments),
        )

    async def open(self) -> "AppContext":
        await self.store.connect()
        return self

    async def close(self) -> None:
        """Let queued writes and event delivery finish, then close the store."""
        await self.queue.wait_idle()
        await self.events.wait_idle()
        await self.store.close()

    async def __aenter__(self) -> "AppContext":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def run_with_context(config: POSInventoryConfig, fn: Callable[[AppContext], Awaitable[T]]) -> T:
    """Run ``fn`` with an open AppContext on a fresh event loop."""
    async def runner() -> T:
        async with AppContext.from_config(config) as ctx:
            return await fn(ctx)

    return asyncio.run(runner())
