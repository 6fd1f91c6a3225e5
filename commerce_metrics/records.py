"""
Record Types

Typed values exchanged between the layers of the metrics engine.

Input facts (supplied read-only by collaborators, never mutated):
- TransactionRecord: one sold unit-batch
- InventorySnapshotRecord: point-in-time stock position of one SKU
- PurchaseRecord: one purchase-ledger entry

Outputs:
- PeriodSnapshot: metrics for one calendar month (History Store row unit)
- MissingPeriod: placeholder for a month with no stored snapshot
"""

from dataclasses import asdict, dataclass, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class TransactionStatus(str, Enum):
    """Transaction status"""
    SHIPPED = "Shipped"
    PENDING = "Pending"
    CANCELLED = "Cancelled"
    RETURNED = "Returned"

    @property
    def allows_zero_quantity(self) -> bool:
        return self in (TransactionStatus.CANCELLED, TransactionStatus.RETURNED)


class FulfillmentChannel(str, Enum):
    """Who ships the order"""
    SELF_FULFILLED = "SelfFulfilled"
    PLATFORM_FULFILLED = "PlatformFulfilled"


class RoiBasis(str, Enum):
    """Investment base used for ROI"""
    PURCHASES = "purchases"  # purchase ledger total in window
    RECORDED_COST = "recorded_cost"  # fallback: transactions' own cost
    NONE = "none"  # no investment base, ROI reported as 0


@dataclass(frozen=True)
class TransactionRecord:
    """Normalized sale fact. Built by transformation.normalizers.normalize."""
    order_id: str
    occurred_at: datetime
    product_key: str
    unified_sku: str
    quantity: int
    unit_price: float
    total_amount: float
    cost: float
    fees: float
    other_cost: float
    gross_profit: float
    status: TransactionStatus = TransactionStatus.SHIPPED
    fulfillment: FulfillmentChannel = FulfillmentChannel.SELF_FULFILLED
    source_system: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InventorySnapshotRecord:
    """Stock position of one SKU at snapshot time"""
    unified_sku: str
    quantity_on_hand: int
    unit_cost: float
    total_value: float
    last_sold_at: Optional[datetime] = None
    days_in_stock: int = 0
    reorder_point: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PurchaseRecord:
    """Purchase-ledger entry"""
    unified_sku: str
    purchased_at: date
    quantity: int
    unit_cost: float
    total_cost: float
    supplier: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PeriodSnapshot:
    """
    Metrics for one calendar month, keyed by period_key ("YYYY-MM").

    turnover_days is float("inf") when inventory turnover is zero; display
    layers must special-case it. created_at is assigned by the History Store
    on first write and is None on freshly aggregated snapshots.
    """
    period_key: str
    revenue: float = 0.0
    gross_profit: float = 0.0
    profit_margin_pct: float = 0.0
    roi_pct: float = 0.0
    units_sold: int = 0
    order_count: int = 0
    distinct_products: int = 0
    average_order_value: float = 0.0
    inventory_value: float = 0.0
    inventory_turnover: float = 0.0
    turnover_days: float = float("inf")
    stagnant_inventory_rate: float = 0.0
    profit_goal_achievement_pct: float = 0.0
    roi_basis: RoiBasis = RoiBasis.NONE
    computed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    has_data = True

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["has_data"] = True
        return data


@dataclass(frozen=True)
class MissingPeriod:
    """No snapshot is stored for this period. Never confuse with zero metrics."""
    period_key: str

    has_data = False

    def to_dict(self) -> Dict[str, Any]:
        return {"period_key": self.period_key, "has_data": False}


# Numeric metrics carried by a PeriodSnapshot, in display order
METRIC_FIELDS: Tuple[str, ...] = tuple(
    f.name for f in fields(PeriodSnapshot)
    if f.name not in ("period_key", "roi_basis", "computed_at", "created_at")
)
