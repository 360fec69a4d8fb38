"""
tests/test_events.py - Inventory event bus delivery
"""
import asyncio

import pytest

from posinventory.inventory.events import InventoryEventBus
from posinventory.models.inventory import InventoryEvent, InventoryEventType
from posinventory.store.sql_store import utcnow


def make_event(product_id="p1", n=0, event_type=InventoryEventType.INVENTORY_UPDATED):
    return InventoryEvent(type=event_type, product_id=product_id, data={"n": n}, timestamp=utcnow())


async def test_events_delivered_in_publish_order():
    bus = InventoryEventBus()
    seen = []

    async def handler(event):
        seen.append(event.data["n"])

    bus.subscribe("p1", handler)
    for n in range(5):
        await bus.publish(make_event(n=n))
    await bus.wait_idle()

    assert seen == [0, 1, 2, 3, 4]


async def test_product_and_wildcard_subscribers():
    bus = InventoryEventBus()
    seen = []

    async def product_handler(event):
        seen.append(("product", event.product_id))

    async def all_handler(event):
        seen.append(("all", event.product_id))

    bus.subscribe("p1", product_handler)
    bus.subscribe(None, all_handler)

    await bus.publish(make_event("p1"))
    await bus.publish(make_event("p2"))
    await bus.wait_idle()

    assert seen == [("product", "p1"), ("all", "p1"), ("all", "p2")]


async def test_failing_handler_is_isolated(caplog):
    bus = InventoryEventBus()
    seen = []

    async def broken(event):
        raise RuntimeError("handler bug")

    async def healthy(event):
        seen.append(event.data["n"])

    bus.subscribe("p1", broken)
    bus.subscribe("p1", healthy)

    await bus.publish(make_event(n=1))
    await bus.publish(make_event(n=2))
    await bus.wait_idle()

    assert seen == [1, 2]
    assert "handler bug" in caplog.text


async def test_handler_cancelling_itself_does_not_stop_delivery():
    bus = InventoryEventBus()
    seen = []

    async def cancels(event):
        raise asyncio.CancelledError()

    async def healthy(event):
        seen.append(event.data["n"])

    bus.subscribe("p1", cancels)
    bus.subscribe("p1", healthy)

    await bus.publish(make_event(n=1))
    await bus.publish(make_event(n=2))
    await asyncio.wait_for(bus.wait_idle(), timeout=1)

    assert seen == [1, 2]


async def test_unsubscribe_stops_delivery():
    bus = InventoryEventBus()
    seen = []

    async def handler(event):
        seen.append(event.data["n"])

    unsubscribe = bus.subscribe("p1", handler)
    await bus.publish(make_event(n=1))
    await bus.wait_idle()

    unsubscribe()
    await bus.publish(make_event(n=2))
    await bus.wait_idle()

    assert seen == [1]
    assert "p1" not in bus.handlers


def test_sync_handler_rejected():
    bus = InventoryEventBus()

    def handler(event):
        pass

    with pytest.raises(ValueError, match="async"):
        bus.subscribe("p1", handler)
