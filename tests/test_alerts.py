"""Test low-stock detection."""
import pytest

from hemovault.inventory.alerts import collect_low_stock, low_stock_warnings
from hemovault.models import InventorySummary, InventoryType


def summary(blood_type, rh, count):
    return InventorySummary(blood_type, rh, count, count * 450)


class TestLowStockWarnings:
    """Test per-type warnings."""

    def test_below_threshold_only(self):
        summaries = [summary("A", "+", 12), summary("O", "-", 2), summary("B", "+", 5)]

        warnings = low_stock_warnings(summaries, InventoryType.REDBLOOD, threshold=5)

        assert [(w.blood_type, w.rh, w.count) for w in warnings] == [("O", "-", 2)]

    def test_sorted_lowest_first(self):
        summaries = [summary("A", "+", 4), summary("AB", "-", 1), summary("O", "+", 3)]

        warnings = low_stock_warnings(summaries, InventoryType.PLATELETS, threshold=5)

        assert [w.count for w in warnings] == [1, 3, 4]

    def test_message(self):
        """Test the human-readable warning."""
        [warning] = low_stock_warnings([summary("AB", "", 1)], InventoryType.PLASMA, threshold=5)

        assert str(warning) == "Low Plasma stock: AB (1 < 5)"

    def test_empty_inventory(self):
        assert low_stock_warnings([], InventoryType.REDBLOOD) == []


class TestCollectLowStock:
    """Test warnings across inventory types."""

    def test_all_types(self):
        inventory = {
            InventoryType.REDBLOOD: [summary("O", "-", 1)],
            InventoryType.PLASMA: [summary("A", "", 20)],
            InventoryType.PLATELETS: [summary("B", "+", 2)],
        }

        warnings = collect_low_stock(inventory, threshold=5)

        assert [w.inventory_type for w in warnings] == [
            InventoryType.REDBLOOD,
            InventoryType.PLATELETS,
        ]
        assert all(w.threshold == 5 for w in warnings)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
