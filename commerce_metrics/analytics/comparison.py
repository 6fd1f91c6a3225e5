"""
Comparative Analytics

Period-over-period comparison against the History Store time series.

- Month-over-month and year-over-year deltas
- N-period moving averages that tolerate gaps

Absence is never reported as zero: a missing anchor period yields None,
a metric that cannot be compared (zero base) carries change=None, and a
moving-average position without enough history is None.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import structlog

from commerce_metrics.analytics.numeric import relative_growth
from commerce_metrics.analytics.periods import (
    generate_period_key_range,
    same_month_prior_year,
    shift_period_key,
)
from commerce_metrics.records import METRIC_FIELDS, MissingPeriod, PeriodSnapshot

logger = structlog.get_logger(__name__)

SeriesEntry = Union[PeriodSnapshot, MissingPeriod]


class DeltaKind(str, Enum):
    """How a metric change is expressed"""
    GROWTH = "growth"  # relative growth in %
    POINTS = "points"  # difference in percentage points


# Absolute quantities compare by relative growth; metrics that are already
# percentages compare by percentage-point difference.
GROWTH_METRICS = ("revenue", "gross_profit", "units_sold", "order_count", "average_order_value")
POINT_METRICS = ("profit_margin_pct", "roi_pct")


@dataclass(frozen=True)
class MetricDelta:
    """Change of one metric between two periods"""
    metric: str
    kind: DeltaKind
    current: float
    previous: float
    change: Optional[float]  # None: no comparison possible (zero base)

    @property
    def comparable(self) -> bool:
        return self.change is not None


@dataclass(frozen=True)
class DeltaSet:
    """All metric deltas between a current and a previous period"""
    current_period: str
    previous_period: str
    deltas: Dict[str, MetricDelta] = field(default_factory=dict)

    def __getitem__(self, metric: str) -> MetricDelta:
        return self.deltas[metric]

    def change(self, metric: str) -> Optional[float]:
        return self.deltas[metric].change

    def to_dict(self) -> dict:
        return {
            "current_period": self.current_period,
            "previous_period": self.previous_period,
            "deltas": {
                name: {"kind": d.kind.value, "current": d.current, "previous": d.previous, "change": d.change}
                for name, d in self.deltas.items()
            },
        }


def compare_snapshots(
    current: PeriodSnapshot,
    previous: Optional[SeriesEntry],
) -> Optional[DeltaSet]:
    """Delta set between two snapshots; None when the previous period has no data"""
    if previous is None or not previous.has_data:
        return None

    deltas: Dict[str, MetricDelta] = {}
    for metric in GROWTH_METRICS:
        cur, prev = getattr(current, metric), getattr(previous, metric)
        deltas[metric] = MetricDelta(metric, DeltaKind.GROWTH, cur, prev, relative_growth(cur, prev))
    for metric in POINT_METRICS:
        cur, prev = getattr(current, metric), getattr(previous, metric)
        deltas[metric] = MetricDelta(metric, DeltaKind.POINTS, cur, prev, cur - prev)

    return DeltaSet(current_period=current.period_key, previous_period=previous.period_key, deltas=deltas)


def month_over_month(
    current: PeriodSnapshot,
    previous: Optional[SeriesEntry],
) -> Optional[DeltaSet]:
    """Compare against the previous month's snapshot (None when it has no data)"""
    return compare_snapshots(current, previous)


def year_over_year(
    current: PeriodSnapshot,
    store,
    prior_period_key: Optional[str] = None,
) -> Optional[DeltaSet]:
    """
    Compare against the same calendar month of the prior year.

    The prior snapshot is fetched from the History Store; None when the
    store has no row for it.
    """
    prior_period_key = prior_period_key or same_month_prior_year(current.period_key)
    previous = store.get(prior_period_key)
    if previous is None:
        logger.debug("No prior-year snapshot", period_key=current.period_key, prior_period_key=prior_period_key)
    return compare_snapshots(current, previous)


def compare_with_history(store, current: PeriodSnapshot) -> Dict[str, Optional[DeltaSet]]:
    """Month-over-month and year-over-year deltas for a snapshot"""
    previous = store.get(shift_period_key(current.period_key, -1))
    return {
        "mom": month_over_month(current, previous),
        "yoy": year_over_year(current, store),
    }


def metric_series(store, anchor_period_key: str, count: int) -> List[SeriesEntry]:
    """The `count` months ending at the anchor, with placeholders for gaps"""
    return store.get_range(generate_period_key_range(anchor_period_key, count))


def moving_average(
    series: Sequence[SeriesEntry],
    metric_name: str,
    window_size: int,
) -> List[Optional[float]]:
    """
    Trailing moving average, one output per input position.

    The first window_size - 1 positions are None. After that each position
    averages only the periods present in its window, dividing by the number
    present rather than window_size. A window with no present periods is None.
    """
    if window_size < 1:
        raise ValueError("window_size must be at least 1")
    if metric_name not in METRIC_FIELDS:
        raise ValueError(f"Unknown metric: {metric_name}")

    values = np.array(
        [float(getattr(entry, metric_name)) if entry.has_data else np.nan for entry in series],
        dtype=float,
    )

    averages: List[Optional[float]] = []
    for position in range(len(values)):
        if position < window_size - 1:
            averages.append(None)
            continue
        window = values[position - window_size + 1:position + 1]
        present = window[~np.isnan(window)]
        averages.append(float(present.mean()) if present.size else None)

    return averages
