"""Low-stock detection over grouped inventory."""
from typing import Dict, Iterable, List

from ..models import InventorySummary, InventoryType, LowStockWarning


def low_stock_warnings(
    summaries: Iterable[InventorySummary],
    inventory_type: InventoryType,
    threshold: int = 5,
) -> List[LowStockWarning]:
    """Blood groups holding fewer bags than `threshold`, lowest first."""
    warnings = [
        LowStockWarning(
            inventory_type=inventory_type,
            blood_type=summary.blood_type,
            rh=summary.rh,
            count=summary.count,
            threshold=threshold,
        )
        for summary in summaries
        if summary.count < threshold
    ]
    return sorted(warnings, key=lambda w: w.count)


def collect_low_stock(
    inventory: Dict[InventoryType, List[InventorySummary]],
    threshold: int = 5,
) -> List[LowStockWarning]:
    """Low-stock warnings across every inventory type."""
    warnings = []
    for inventory_type, summaries in inventory.items():
        warnings.extend(low_stock_warnings(summaries, inventory_type, threshold))
    return warnings
