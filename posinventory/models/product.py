# posinventory/models/product.py
import re
from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


SKU_PATTERN = re.compile(r'^[A-Z0-9-]+$')


def new_product_id() -> str:
    return uuid4().hex


class Product(BaseModel):
    """A sellable item and its stock counters.

    Prices are whole Vietnamese dong, so they are stored as integers.
    """
    id: str = Field(default_factory=new_product_id)
    name: str
    sku: str
    price: int = 0
    stock_quantity: int = 0
    reserved_quantity: int = 0
    reorder_level: int = 0
    version: int = 1
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('name cannot be blank')
        return v

    @field_validator('sku')
    @classmethod
    def sku_format(cls, v: str) -> str:
        v = v.strip().upper()
        if not SKU_PATTERN.match(v):
            raise ValueError('SKU must contain only letters, digits and dashes')
        return v

    @field_validator('price', 'stock_quantity', 'reserved_quantity', 'reorder_level')
    @classmethod
    def not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError('value cannot be negative')
        return v

    @property
    def available_quantity(self) -> int:
        return self.stock_quantity - self.reserved_quantity
