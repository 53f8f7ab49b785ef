"""Inventory queries and stock alerts."""

from .repository import InventoryRepository, validate_bag
from .alerts import low_stock_warnings, collect_low_stock

__all__ = [
    "InventoryRepository",
    "validate_bag",
    "low_stock_warnings",
    "collect_low_stock",
]
