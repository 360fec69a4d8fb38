"""
tests/test_database.py - Queue-aware read/write/transaction helpers
"""
from unittest.mock import patch

import pytest

from posinventory.errors import StoreError
from posinventory.store.database import QueuedDatabase
from posinventory.store.sql_store import utcnow

pytestmark = pytest.mark.asyncio

INSERT = (
    "INSERT INTO products (id, name, sku, price, stock_quantity, reserved_quantity, "
    "reorder_level, version, is_active, created_at, updated_at) "
    "VALUES (:id, :name, :sku, 0, :stock, 0, 0, 1, 1, :now, :now)"
)


@pytest.fixture
def database(store, queue):
    return QueuedDatabase(store, queue)


def params(product_id, stock=3):
    return {"id": product_id, "name": product_id, "sku": product_id.upper(), "stock": stock, "now": str(utcnow())}


async def test_write_goes_through_queue(database, queue):
    with patch.object(queue, "enqueue", wraps=queue.enqueue) as spy:
        assert await database.write(INSERT, params("a1")) == 1
    spy.assert_awaited_once()

    rows = await database.read("SELECT id, stock_quantity FROM products")
    assert rows == [{"id": "a1", "stock_quantity": 3}]


async def test_read_bypasses_queue(database, queue):
    with patch.object(queue, "enqueue", wraps=queue.enqueue) as spy:
        await database.read("SELECT * FROM products")
    spy.assert_not_awaited()


async def test_transaction_returns_row_counts(database):
    counts = await database.transaction([
        (INSERT, params("a1")),
        (INSERT, params("b2")),
        ("UPDATE products SET stock_quantity = 0 WHERE id = :id", {"id": "a1"}),
    ])
    assert counts == [1, 1, 1]


async def test_transaction_all_or_nothing(database):
    with pytest.raises(StoreError):
        await database.transaction([
            (INSERT, params("a1")),
            (INSERT, params("a1")),  # duplicate primary key
        ])

    assert await database.read("SELECT id FROM products") == []


async def test_empty_transaction_is_a_no_op(database, queue):
    with patch.object(queue, "enqueue", wraps=queue.enqueue) as spy:
        assert await database.transaction([]) == []
    spy.assert_not_awaited()
