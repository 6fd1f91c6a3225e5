"""
Aggregation Engine

Reduces a collection of normalized records into a PeriodSnapshot for one
time window. Stateless: the result depends only on the records, the window,
the reference "now" and the targets.

Metrics:
- revenue, gross profit, units, orders, distinct products, AOV
- profit margin and ROI (percentages, 0 on a zero base)
- inventory value, turnover, turnover days (DIO-equivalent)
- stagnant inventory rate and profit goal achievement

ROI investment base: the purchase-ledger total for the window. When the
ledger has nothing for the window, the transactions' own recorded cost is
used instead so a missing ledger does not zero out ROI. The two bases are
not equivalent; the basis used is recorded on the snapshot (roi_basis) and
the fallback is logged.

Average inventory value is approximated by the current inventory value,
since only a point-in-time inventory snapshot is available.
"""

import math
from collections import defaultdict
from datetime import datetime
from functools import reduce
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import structlog

from commerce_metrics.analytics.numeric import percentage, safe_divide
from commerce_metrics.analytics.periods import PeriodWindow, month_window, period_key_of
from commerce_metrics.config import ConfigTargets
from commerce_metrics.records import (
    InventorySnapshotRecord,
    PeriodSnapshot,
    PurchaseRecord,
    RoiBasis,
    TransactionRecord,
)

logger = structlog.get_logger(__name__)


class SalesTotals(NamedTuple):
    """Immutable accumulator folded over the in-window transactions"""
    revenue: float = 0.0
    gross_profit: float = 0.0
    units_sold: int = 0
    order_count: int = 0
    recorded_cost: float = 0.0


def _fold_record(totals: SalesTotals, record: TransactionRecord) -> SalesTotals:
    return SalesTotals(
        revenue=totals.revenue + record.total_amount,
        gross_profit=totals.gross_profit + record.gross_profit,
        units_sold=totals.units_sold + record.quantity,
        order_count=totals.order_count + 1,
        recorded_cost=totals.recorded_cost + record.cost,
    )


def sum_sales(records: Iterable[TransactionRecord]) -> SalesTotals:
    return reduce(_fold_record, records, SalesTotals())


def _investment_base(
    totals: SalesTotals,
    purchase_cost: float,
    window: PeriodWindow,
) -> Tuple[float, RoiBasis]:
    if purchase_cost > 0:
        return purchase_cost, RoiBasis.PURCHASES
    if totals.recorded_cost > 0:
        logger.warning(
            "ROI falling back to recorded transaction cost",
            period_key=window.period_key,
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
            recorded_cost=totals.recorded_cost,
        )
        return totals.recorded_cost, RoiBasis.RECORDED_COST
    return 0.0, RoiBasis.NONE


def aggregate_period(
    records: Sequence[TransactionRecord],
    inventory: Sequence[InventorySnapshotRecord],
    purchases: Sequence[PurchaseRecord],
    window: PeriodWindow,
    reference_now: datetime,
    targets: Optional[ConfigTargets] = None,
) -> PeriodSnapshot:
    """
    Aggregate one window into a PeriodSnapshot.

    Records are filtered to occurred_at within [start, end]; purchases by
    purchased_at date. Inventory is a point-in-time snapshot and is used
    whole. An empty record set yields an all-zero snapshot.
    """
    if targets is None:
        targets = ConfigTargets()

    in_window = [r for r in records if window.contains(r.occurred_at)]
    totals = sum_sales(in_window)
    distinct_products = len({r.product_key for r in in_window})

    purchase_cost = sum(p.total_cost for p in purchases if window.contains_date(p.purchased_at))
    investment, roi_basis = _investment_base(totals, purchase_cost, window)

    inventory_value = sum(item.total_value for item in inventory)
    inventory_turnover = safe_divide(totals.revenue, inventory_value)
    turnover_days = window.length_days / inventory_turnover if inventory_turnover > 0 else math.inf

    stagnant_count = sum(1 for item in inventory if item.days_in_stock > targets.stagnant_days_threshold)

    snapshot = PeriodSnapshot(
        period_key=window.period_key,
        revenue=totals.revenue,
        gross_profit=totals.gross_profit,
        profit_margin_pct=percentage(totals.gross_profit, totals.revenue),
        roi_pct=percentage(totals.gross_profit, investment),
        units_sold=totals.units_sold,
        order_count=totals.order_count,
        distinct_products=distinct_products,
        average_order_value=safe_divide(totals.revenue, totals.order_count),
        inventory_value=inventory_value,
        inventory_turnover=inventory_turnover,
        turnover_days=turnover_days,
        stagnant_inventory_rate=percentage(stagnant_count, len(inventory)),
        profit_goal_achievement_pct=percentage(totals.gross_profit, targets.target_monthly_profit),
        roi_basis=roi_basis,
        computed_at=reference_now,
    )

    logger.debug(
        "Period aggregated",
        period_key=snapshot.period_key,
        records=len(in_window),
        revenue=snapshot.revenue,
        gross_profit=snapshot.gross_profit,
        roi_basis=roi_basis.value,
    )
    return snapshot


def aggregate_by_month(
    records: Sequence[TransactionRecord],
    inventory: Sequence[InventorySnapshotRecord],
    purchases: Sequence[PurchaseRecord],
    reference_now: datetime,
    targets: Optional[ConfigTargets] = None,
) -> Dict[str, PeriodSnapshot]:
    """One snapshot per calendar month present in the records, oldest first"""
    by_month: Dict[str, List[TransactionRecord]] = defaultdict(list)
    for record in records:
        by_month[period_key_of(record.occurred_at)].append(record)

    return {
        period_key: aggregate_period(
            by_month[period_key], inventory, purchases, month_window(period_key), reference_now, targets
        )
        for period_key in sorted(by_month)
    }


def low_stock_items(
    inventory: Sequence[InventorySnapshotRecord],
    threshold: int,
) -> List[InventorySnapshotRecord]:
    """Inventory rows with quantity_on_hand at or below the threshold, lowest first"""
    low = [item for item in inventory if item.quantity_on_hand <= threshold]
    return sorted(low, key=lambda item: (item.quantity_on_hand, item.unified_sku))
