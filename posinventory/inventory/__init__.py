from .adjuster import StockAdjuster
from .catalog import ProductCatalog
from .events import ALL_PRODUCTS, InventoryEventBus
from .reservations import ReservationManager

__all__ = [
    "ALL_PRODUCTS",
    "InventoryEventBus",
    "ProductCatalog",
    "ReservationManager",
    "StockAdjuster",
]
