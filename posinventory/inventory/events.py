# posinventory/inventory/events.py
import asyncio
import inspect
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, List, Optional

from ..models.inventory import InventoryEvent

logger = logging.getLogger(__name__)

# Type definition for event handlers
EventHandler = Callable[[InventoryEvent], Awaitable[None]]

ALL_PRODUCTS = "*"


class InventoryEventBus:
    """
    Per-product publish/subscribe for inventory changes.

    Events are delivered in publish order by a single drain loop, so
    ``publish`` never waits on subscribers. A failing handler is logged and
    does not affect the publisher or other handlers.
    """

    def __init__(self):
        self.handlers: Dict[str, List[EventHandler]] = {}
        self._events: Deque[InventoryEvent] = deque()
        self._processing = False
        self._drain_task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()

    def subscribe(self, product_id: Optional[str], handler: EventHandler) -> Callable[[], None]:
        """
        Register an async handler for one product, or for all products when
        ``product_id`` is None.

        Returns:
            A callable that removes the subscription
        """
        if not inspect.iscoroutinefunction(handler):
            raise ValueError(f"Event handler must be an async function: {handler}")

        key = product_id or ALL_PRODUCTS
        self.handlers.setdefault(key, []).append(handler)
        logger.debug(f"Registered handler for product {key}")

        def unsubscribe() -> None:
            handlers = self.handlers.get(key)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self.handlers[key]

        return unsubscribe

    async def publish(self, event: InventoryEvent) -> None:
        self._events.append(event)
        if not self._processing:
            self._processing = True
            self._idle.clear()
            self._drain_task = asyncio.create_task(self._process_events())

    async def wait_idle(self) -> None:
        """Wait until every published event has been delivered."""
        await self._idle.wait()

    async def _process_events(self) -> None:
        try:
            while self._events:
                event = self._events.popleft()
                handlers = self.handlers.get(event.product_id, []) + self.handlers.get(ALL_PRODUCTS, [])
                for handler in handlers:
                    await self._safe_execute_handler(handler, event)
        finally:
            if self._events:
                logger.warning(f"Event delivery stopped with {len(self._events)} events undelivered")
                self._events.clear()
            self._processing = False
            self._drain_task = None
            self._idle.set()

    async def _safe_execute_handler(self, handler: EventHandler, event: InventoryEvent) -> None:
        try:
            await handler(event)
        except asyncio.CancelledError:
            if asyncio.current_task().cancelling():
                raise
            logger.warning(f"Event handler for {event.type.value} cancelled itself")
        except Exception as e:
            logger.exception(f"Error in event handler for {event.type.value}: {e}")
