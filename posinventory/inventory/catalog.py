# posinventory/inventory/catalog.py
import logging
from typing import List

import sqlalchemy as sa

from ..errors import NotFoundError, StoreError
from ..models.product import Product
from ..store.sql_store import SQLStore, utcnow
from ..store.write_queue import WriteQueueManager

logger = logging.getLogger(__name__)


class ProductCatalog:
    """Product records: creation goes through the write queue, lookups do not."""

    def __init__(self, store: SQLStore, queue: WriteQueueManager):
        self.store = store
        self.queue = queue

    async def add_product(self, product: Product) -> Product:
        """
        Insert a new product.

        Raises:
            StoreError: The SKU or id is already in use
        """
        now = utcnow()
        product = product.model_copy(update={"created_at": now, "updated_at": now})

        if await self.find_by_sku(product.sku) is not None:
            raise StoreError(f"A product with SKU {product.sku} already exists")

        values = product.model_dump()
        values["is_active"] = int(product.is_active)
        await self.queue.enqueue(lambda: self.store.execute(sa.insert(self.store.products).values(**values)))
        logger.info(f"Added product {product.sku} ({product.id})")
        return product

    async def get_product(self, product_id: str) -> Product:
        products = self.store.products
        row = await self.store.fetch_one(sa.select(products).where(products.c.id == product_id))
        if row is None:
            raise NotFoundError(f"Product {product_id} not found")
        return Product(**row)

    async def find_by_sku(self, sku: str):
        products = self.store.products
        row = await self.store.fetch_one(sa.select(products).where(products.c.sku == sku.strip().upper()))
        return Product(**row) if row is not None else None

    async def list_products(self, active_only: bool = True) -> List[Product]:
        products = self.store.products
        query = sa.select(products).order_by(products.c.name)
        if active_only:
            query = query.where(products.c.is_active == 1)
        return [Product(**row) for row in await self.store.fetch_all(query)]
