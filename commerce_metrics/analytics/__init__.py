"""
Analytics Module

Aggregation engine, calendar periods, and comparative analytics.
"""
from .aggregation import aggregate_by_month, aggregate_period, low_stock_items
from .comparison import (
    DeltaKind,
    DeltaSet,
    MetricDelta,
    compare_with_history,
    month_over_month,
    moving_average,
    year_over_year,
)
from .periods import PeriodWindow, generate_period_key_range, month_window, period_key_of

__all__ = [
    "aggregate_by_month",
    "aggregate_period",
    "low_stock_items",
    "DeltaKind",
    "DeltaSet",
    "MetricDelta",
    "compare_with_history",
    "month_over_month",
    "moving_average",
    "year_over_year",
    "PeriodWindow",
    "generate_period_key_range",
    "month_window",
    "period_key_of",
]
