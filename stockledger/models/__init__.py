from .base import IdMixin, TimestampMixin
from .master import Warehouse
from .product import Category, Product, ProductVariant
from .stock import MovementType, StockRecord, StockMovement, STOCK_KEY_INDEX

__all__ = [
    # Base
    "IdMixin", "TimestampMixin",
    # Master
    "Warehouse",
    # Product
    "Category", "Product", "ProductVariant",
    # Stock
    "MovementType", "StockRecord", "StockMovement", "STOCK_KEY_INDEX",
]
