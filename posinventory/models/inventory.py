# posinventory/models/inventory.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class MovementType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    DAMAGE = "damage"
    TRANSFER = "transfer"
    RESERVATION = "reservation"


class StockAdjustment(BaseModel):
    """Outcome of a successful stock adjustment."""
    product_id: str
    delta: int
    previous_quantity: int
    new_quantity: int
    new_version: int


class AdjustmentRequest(BaseModel):
    """One line of a bulk stock update."""
    product_id: str
    delta: int
    movement_type: MovementType = MovementType.ADJUSTMENT
    reason: Optional[str] = None


class AdjustmentOutcome(BaseModel):
    product_id: str
    success: bool
    new_quantity: Optional[int] = None
    error: Optional[str] = None


class BulkAdjustmentResult(BaseModel):
    results: List[AdjustmentOutcome] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class InventoryLevel(BaseModel):
    product_id: str
    stock_quantity: int
    reserved_quantity: int
    reorder_level: int
    version: int
    updated_at: Optional[datetime] = None

    @property
    def available_quantity(self) -> int:
        return self.stock_quantity - self.reserved_quantity


class InventoryMovement(BaseModel):
    """Ledger row written alongside every successful stock change."""
    id: str
    product_id: str
    movement_type: MovementType
    quantity: int
    previous_stock: int
    new_stock: int
    reason: Optional[str] = None
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    timestamp: datetime


class LowStockAlert(BaseModel):
    product_id: str
    product_name: str
    current_stock: int
    reorder_level: int
    available_stock: int


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Reservation(BaseModel):
    id: str
    product_id: str
    quantity: int
    order_id: str
    status: ReservationStatus = ReservationStatus.ACTIVE
    expires_at: datetime
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class InventoryEventType(str, Enum):
    INVENTORY_UPDATED = "inventory_updated"
    REORDER_ALERT = "reorder_alert"
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_RELEASED = "reservation_released"


class InventoryEvent(BaseModel):
    type: InventoryEventType
    product_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
