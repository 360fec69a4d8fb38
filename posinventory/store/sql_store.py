"""
store/sql_store.py - SQLite store built on SQLAlchemy Core

Async facade over a synchronous SQLAlchemy engine. Each call runs in a worker
thread on its own pooled connection, so reads never block the event loop and
never share a connection with an in-flight write.

Queries may be SQLAlchemy Core statements or SQL strings with named
(``:name``) parameters.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

import sqlalchemy as sa
from sqlalchemy import (
    CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, MetaData, String, Table, Text,
)
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.expression import Executable

from ..errors import TRANSIENT_LOCK_MESSAGES, StoreError, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar('T')
Query = Union[str, Executable]
Params = Optional[Mapping[str, Any]]
Statement = Tuple[Query, Params]


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SQLStore:
    """
    SQLite-backed store for products, inventory movements and reservations.

    Call ``connect()`` before use; it creates the engine and applies the
    schema. ``close()`` disposes the engine.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Union[str, Path], echo: bool = False, timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.echo = echo
        self.timeout = timeout
        self.engine: Optional[sa.engine.Engine] = None
        self.metadata = MetaData()
        self._define_tables()

    def _define_tables(self) -> None:
        self.schema_version = Table(
            'schema_version', self.metadata,
            Column('id', Integer, primary_key=True),
            Column('version', Integer, nullable=False),
            Column('applied_at', DateTime, nullable=False, default=utcnow),
            Column('description', String, nullable=False),
        )

        self.products = Table(
            'products', self.metadata,
            Column('id', String(36), primary_key=True),
            Column('name', String(200), nullable=False),
            Column('sku', String(50), nullable=False, unique=True),
            Column('price', Integer, nullable=False, default=0),
            Column('stock_quantity', Integer, nullable=False, default=0),
            Column('reserved_quantity', Integer, nullable=False, default=0),
            Column('reorder_level', Integer, nullable=False, default=0),
            Column('version', Integer, nullable=False, default=1),
            Column('is_active', Integer, nullable=False, default=1),
            Column('created_at', DateTime, nullable=False, default=utcnow),
            Column('updated_at', DateTime, nullable=False, default=utcnow),
            CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
            CheckConstraint('reserved_quantity >= 0', name='ck_products_reserved_non_negative'),
            Index('idx_products_name', 'name'),
        )

        self.inventory_movements = Table(
            'inventory_movements', self.metadata,
            Column('id', String(40), primary_key=True),
            Column('product_id', String(36), ForeignKey('products.id'), nullable=False),
            Column('movement_type', String(30), nullable=False),
            Column('quantity', Integer, nullable=False),
            Column('previous_stock', Integer, nullable=False),
            Column('new_stock', Integer, nullable=False),
            Column('reason', Text),
            Column('user_id', String(64)),
            Column('order_id', String(64)),
            Column('timestamp', DateTime, nullable=False, default=utcnow),
            Index('idx_movements_product', 'product_id'),
            Index('idx_movements_timestamp', 'timestamp'),
        )

        self.stock_reservations = Table(
            'stock_reservations', self.metadata,
            Column('id', String(40), primary_key=True),
            Column('product_id', String(36), ForeignKey('products.id'), nullable=False),
            Column('quantity', Integer, nullable=False),
            Column('order_id', String(64), nullable=False),
            Column('status', String(20), nullable=False, default='active'),
            Column('expires_at', DateTime, nullable=False),
            Column('created_at', DateTime, nullable=False, default=utcnow),
            Column('confirmed_at', DateTime),
            Column('cancelled_at', DateTime),
            Index('idx_reservations_status_expiry', 'status', 'expires_at'),
        )

    # Lifecycle

    async def connect(self) -> None:
        """Create the engine and bring the schema up to date."""
        if self.engine is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = sa.create_engine(
            f"sqlite:///{self.db_path}",
            echo=self.echo,
            connect_args={"timeout": self.timeout},
        )
        await self._call("migrate schema", self._run_migrations)
        logger.info(f"Connected to SQLite database at {self.db_path}")

    async def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            logger.info("Closed SQLite database connection")

    def _run_migrations(self) -> None:
        with self.engine.begin() as conn:
            self.metadata.create_all(conn)
            current_version = conn.execute(
                sa.select(sa.func.max(self.schema_version.c.version))
            ).scalar() or 0

            if current_version < self.SCHEMA_VERSION:
                logger.info(f"Migrating schema from v{current_version} to v{self.SCHEMA_VERSION}")
                conn.execute(sa.insert(self.schema_version).values(
                    version=self.SCHEMA_VERSION,
                    applied_at=utcnow(),
                    description="Products, inventory movements and stock reservations",
                ))

    async def get_schema_version(self) -> int:
        row = await self.fetch_one(sa.select(sa.func.max(self.schema_version.c.version).label('version')))
        return row['version'] or 0

    # Query primitives

    async def fetch_all(self, query: Query, params: Params = None) -> List[Dict[str, Any]]:
        """Run a read and return every row as a dict."""
        def run() -> List[Dict[str, Any]]:
            with self.engine.connect() as conn:
                result = self._execute(conn, query, params)
                return [dict(row._mapping) for row in result]

        return await self._call("read", run)

    async def fetch_one(self, query: Query, params: Params = None) -> Optional[Dict[str, Any]]:
        """Run a read and return the first row as a dict, or None."""
        def run() -> Optional[Dict[str, Any]]:
            with self.engine.connect() as conn:
                row = self._execute(conn, query, params).first()
                return dict(row._mapping) if row is not None else None

        return await self._call("read", run)

    async def execute(self, query: Query, params: Params = None) -> int:
        """Run a single write in its own transaction; returns affected rows."""
        def run() -> int:
            with self.engine.begin() as conn:
                return self._execute(conn, query, params).rowcount

        return await self._call("write", run)

    async def execute_batch(self, statements: Sequence[Statement]) -> List[int]:
        """
        Run writes in order inside one transaction.

        Either every statement is applied or, on the first failure, none is.

        Returns:
            Affected row count per statement
        """
        def run() -> List[int]:
            with self.engine.begin() as conn:
                return [self._execute(conn, query, params).rowcount for query, params in statements]

        return await self._call("batch write", run)

    async def run_in_transaction(self, fn: Callable[[Connection], T]) -> T:
        """
        Call ``fn(connection)`` in a worker thread inside one transaction.

        The transaction commits if ``fn`` returns and rolls back if it raises;
        application errors raised by ``fn`` propagate unchanged.
        """
        def run() -> T:
            with self.engine.begin() as conn:
                return fn(conn)

        return await self._call("transaction", run)

    @staticmethod
    def _execute(conn: Connection, query: Query, params: Params):
        if isinstance(query, str):
            query = sa.text(query)
        if params:
            return conn.execute(query, dict(params))
        return conn.execute(query)

    async def _call(self, action: str, fn: Callable[[], T]) -> T:
        if self.engine is None:
            raise StoreError("Store is not connected")
        try:
            return await asyncio.to_thread(fn)
        except SQLAlchemyError as e:
            raise self.translate_error(action, e) from e

    @staticmethod
    def translate_error(action: str, error: Exception) -> StoreError:
        """
        Map an engine error to TransientStoreError (busy/locked) or StoreError.

        Only the driver's own message is inspected; the rendered statement and
        its bound parameters are not.
        """
        message = str(error)
        driver_message = str(getattr(error, 'orig', None) or message)
        if any(text in driver_message for text in TRANSIENT_LOCK_MESSAGES):
            logger.debug(f"Transient failure during {action}: {message}")
            return TransientStoreError(f"Database {action} failed: {message}")
        return StoreError(f"Database {action} failed: {message}")
