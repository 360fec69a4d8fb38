from .inventory import (
    AdjustmentOutcome,
    AdjustmentRequest,
    BulkAdjustmentResult,
    InventoryEvent,
    InventoryEventType,
    InventoryLevel,
    InventoryMovement,
    LowStockAlert,
    MovementType,
    Reservation,
    ReservationStatus,
    StockAdjustment,
)
from .product import Product

__all__ = [
    "AdjustmentOutcome",
    "AdjustmentRequest",
    "BulkAdjustmentResult",
    "InventoryEvent",
    "InventoryEventType",
    "InventoryLevel",
    "InventoryMovement",
    "LowStockAlert",
    "MovementType",
    "Product",
    "Reservation",
    "ReservationStatus",
    "StockAdjustment",
]
