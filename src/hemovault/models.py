"""Data models for blood inventory and database health."""
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

BLOOD_TYPES = ("A", "B", "AB", "O")
RH_FACTORS = ("+", "-")


class InventoryType(Enum):
    """Inventory type enumeration; values double as table and cache namespaces."""
    REDBLOOD = "redblood"
    PLASMA = "plasma"
    PLATELETS = "platelets"

    @property
    def table(self) -> str:
        """Backing table name."""
        return f"{self.value}_inventory"

    @property
    def has_rh(self) -> bool:
        """Plasma is typed by ABO group only."""
        return self is not InventoryType.PLASMA

    @property
    def label(self) -> str:
        """Display label."""
        return {
            InventoryType.REDBLOOD: "RedBlood",
            InventoryType.PLASMA: "Plasma",
            InventoryType.PLATELETS: "Platelets",
        }[self]


@dataclass(frozen=True)
class HealthStatus:
    """Immutable snapshot of the last database health probe."""
    is_connected: bool
    last_checked: datetime
    response_time_ms: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def initial(cls) -> "HealthStatus":
        """Snapshot before any probe has run."""
        return cls(
            is_connected=False,
            last_checked=datetime.fromtimestamp(0),
            response_time_ms=None,
            error="Health check not yet performed",
        )

    def checked_within(self, seconds: float, now: Optional[datetime] = None) -> bool:
        """Whether the probe ran less than `seconds` ago."""
        now = now or datetime.now()
        return (now - self.last_checked).total_seconds() < seconds

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_connected": self.is_connected,
            "last_checked": self.last_checked.isoformat(),
            "response_time_ms": self.response_time_ms,
            "error": self.error,
        }


@dataclass
class Hospital:
    """A hospital holding inventory."""
    hospital_id: int
    hospital_name: str
    contact_phone: str = ""
    contact_email: str = ""


@dataclass
class InventorySummary:
    """Active, unexpired bags of one blood group."""
    blood_type: str
    rh: str
    count: int
    total_amount: int

    @property
    def blood_group(self) -> str:
        return f"{self.blood_type}{self.rh}"


@dataclass
class NewBag:
    """A bag about to be added to inventory."""
    donor_name: str
    amount: int
    hospital_id: int
    expiration_date: date
    blood_type: str
    rh: str = ""


@dataclass
class SurplusAlert:
    """Another hospital holding a surplus of a group this hospital is short on."""
    inventory_type: InventoryType
    blood_type: str
    rh: str
    hospital_id: int
    hospital_name: str
    count: int
    your_count: int
    contact_phone: str = ""
    contact_email: str = ""


@dataclass
class LowStockWarning:
    """A blood group below the low-stock threshold."""
    inventory_type: InventoryType
    blood_type: str
    rh: str
    count: int
    threshold: int

    def __str__(self) -> str:
        return (
            f"Low {self.inventory_type.label} stock: {self.blood_type}{self.rh} "
            f"({self.count} < {self.threshold})"
        )


@dataclass
class DonorSearchResult:
    """A bag matched by donor search."""
    inventory_type: InventoryType
    bag_id: int
    donor_name: str
    blood_type: str
    rh: str
    amount: int
    expiration_date: date
    hospital_name: str
    hospital_contact_phone: str = ""
