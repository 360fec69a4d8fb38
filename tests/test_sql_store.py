"""
tests/test_sql_store.py - SQL store schema, primitives and error translation
"""
from unittest.mock import AsyncMock, patch

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, OperationalError

from posinventory.errors import StoreError, TransientStoreError
from posinventory.store.sql_store import SQLStore, utcnow

INSERT_PRODUCT = (
    "INSERT INTO products (id, name, sku, price, stock_quantity, reserved_quantity, "
    "reorder_level, version, is_active, created_at, updated_at) "
    "VALUES (:id, :name, :sku, 1000, :stock, 0, 0, 1, 1, :now, :now)"
)


def product_params(product_id: str, stock: int = 5):
    return {"id": product_id, "name": f"Item {product_id}", "sku": f"SKU-{product_id}", "stock": stock, "now": str(utcnow())}


async def test_connect_creates_schema(store):
    assert await store.get_schema_version() == SQLStore.SCHEMA_VERSION

    tables = await store.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
    names = {row["name"] for row in tables}
    assert {"products", "inventory_movements", "stock_reservations", "schema_version"} <= names


async def test_reconnect_does_not_repeat_migration(store, db_path):
    await store.close()

    reopened = SQLStore(db_path)
    await reopened.connect()
    try:
        rows = await reopened.fetch_all("SELECT version FROM schema_version")
        assert [row["version"] for row in rows] == [SQLStore.SCHEMA_VERSION]
    finally:
        await reopened.close()


async def test_execute_and_fetch(store):
    assert await store.execute(INSERT_PRODUCT, product_params("p1", stock=7)) == 1

    row = await store.fetch_one("SELECT stock_quantity, version FROM products WHERE id = :id", {"id": "p1"})
    assert row == {"stock_quantity": 7, "version": 1}
    assert await store.fetch_one("SELECT id FROM products WHERE id = :id", {"id": "missing"}) is None


async def test_core_statements_are_accepted(store):
    await store.execute(INSERT_PRODUCT, product_params("p1"))

    rows = await store.fetch_all(sa.select(store.products.c.id, store.products.c.sku))
    assert rows == [{"id": "p1", "sku": "SKU-p1"}]


async def test_execute_batch_reports_row_counts(store):
    await store.execute(INSERT_PRODUCT, product_params("p1"))

    counts = await store.execute_batch([
        (INSERT_PRODUCT, product_params("p2")),
        ("UPDATE products SET stock_quantity = stock_quantity + 1", None),
        ("DELETE FROM products WHERE id = :id", {"id": "nope"}),
    ])
    assert counts == [1, 2, 0]


async def test_execute_batch_is_atomic(store):
    await store.execute(INSERT_PRODUCT, product_params("p1", stock=5))

    with pytest.raises(StoreError):
        await store.execute_batch([
            ("UPDATE products SET stock_quantity = 99 WHERE id = 'p1'", None),
            # Violates the non-negative stock constraint
            ("UPDATE products SET stock_quantity = -1 WHERE id = 'p1'", None),
        ])

    row = await store.fetch_one("SELECT stock_quantity FROM products WHERE id = 'p1'")
    assert row["stock_quantity"] == 5


async def test_run_in_transaction_rolls_back_on_application_error(store):
    await store.execute(INSERT_PRODUCT, product_params("p1", stock=5))

    class Abort(Exception):
        pass

    def work(conn):
        conn.execute(sa.text("UPDATE products SET stock_quantity = 1 WHERE id = 'p1'"))
        raise Abort("stop")

    with pytest.raises(Abort):
        await store.run_in_transaction(work)

    row = await store.fetch_one("SELECT stock_quantity FROM products WHERE id = 'p1'")
    assert row["stock_quantity"] == 5


async def test_run_in_transaction_returns_result(store):
    await store.execute(INSERT_PRODUCT, product_params("p1"))

    def work(conn):
        return conn.execute(sa.text("UPDATE products SET version = version + 1")).rowcount

    assert await store.run_in_transaction(work) == 1


async def test_calls_before_connect_fail(db_path):
    unconnected = SQLStore(db_path)
    with pytest.raises(StoreError, match="not connected"):
        await unconnected.fetch_all("SELECT 1")


async def test_unknown_table_is_a_store_error(store):
    with pytest.raises(StoreError) as exc_info:
        await store.fetch_all("SELECT * FROM no_such_table")
    assert not isinstance(exc_info.value, TransientStoreError)


def test_lock_errors_translate_to_transient():
    error = OperationalError("UPDATE products", {}, Exception("database is locked"))
    translated = SQLStore.translate_error("write", error)
    assert isinstance(translated, TransientStoreError)


def test_other_errors_translate_to_store_error():
    error = OperationalError("SELECT", {}, Exception("no such column: foo"))
    translated = SQLStore.translate_error("read", error)
    assert type(translated) is StoreError
    assert "no such column" in str(translated)


def test_lock_text_in_parameters_is_not_transient():
    error = IntegrityError(
        "INSERT INTO products (id, name) VALUES (?, ?)",
        ("p1", "database is locked"),
        Exception("UNIQUE constraint failed: products.id"),
    )
    translated = SQLStore.translate_error("write", error)
    assert type(translated) is StoreError
    assert "UNIQUE constraint failed" in str(translated)


async def test_constraint_violation_with_lock_text_is_not_retried(store, queue):
    await store.execute(INSERT_PRODUCT, product_params("p1"))
    duplicate = dict(product_params("p1"), name="database is locked SQLITE_BUSY")
    attempts = 0

    async def insert_duplicate():
        nonlocal attempts
        attempts += 1
        return await store.execute(INSERT_PRODUCT, duplicate)

    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        with pytest.raises(StoreError, match="UNIQUE constraint failed") as exc_info:
            await queue.enqueue(insert_duplicate)

    assert not isinstance(exc_info.value, TransientStoreError)
    assert attempts == 1
    mock_sleep.assert_not_awaited()
