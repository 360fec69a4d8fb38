"""
conftest.py - Shared fixtures for the POS inventory tests

Every test gets its own temp-file SQLite database; the store runs engine calls
in worker threads, so an in-memory database would not be shared between them.
"""
import pytest

from posinventory.inventory.adjuster import StockAdjuster
from posinventory.inventory.catalog import ProductCatalog
from posinventory.inventory.events import InventoryEventBus
from posinventory.inventory.reservations import ReservationManager
from posinventory.models.product import Product
from posinventory.store.sql_store import SQLStore
from posinventory.store.write_queue import WriteQueueManager


@pytest.fixture
def db_path(tmp_path):
    """Path to a fresh SQLite database file."""
    return tmp_path / "test_inventory.db"


@pytest.fixture
async def store(db_path):
    """A connected store, closed after the test."""
    test_store = SQLStore(db_path)
    await test_store.connect()
    yield test_store
    await test_store.close()


@pytest.fixture
def queue():
    return WriteQueueManager(name="test")


@pytest.fixture
async def events():
    bus = InventoryEventBus()
    yield bus
    await bus.wait_idle()


@pytest.fixture
def catalog(store, queue):
    return ProductCatalog(store, queue)


@pytest.fixture
def adjuster(store, queue, events):
    return StockAdjuster(store, queue, events)


@pytest.fixture
def reservations(store, queue, events):
    return ReservationManager(store, queue, events)


@pytest.fixture
def make_product(catalog):
    """Factory that inserts a product and returns it."""
    counter = {"n": 0}

    async def _make(**overrides) -> Product:
        counter["n"] += 1
        fields = {
            "name": f"Test Product {counter['n']}",
            "sku": f"TP-{counter['n']:03d}",
            "price": 25000,
            "stock_quantity": 10,
            "reorder_level": 2,
        }
        fields.update(overrides)
        return await catalog.add_product(Product(**fields))

    return _make
