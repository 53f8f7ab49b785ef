"""
HemoVault - Hospital blood inventory with a resilient data-access layer.
"""

from .config import Config, load_config
from .models import (
    HealthStatus,
    InventoryType,
    InventorySummary,
    NewBag,
    Hospital,
)

__version__ = "1.0.0"
__all__ = [
    "Config",
    "load_config",
    "HealthStatus",
    "InventoryType",
    "InventorySummary",
    "NewBag",
    "Hospital",
]
