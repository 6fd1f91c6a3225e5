"""
Metrics Pipeline

Runs the whole data flow for one reporting period:

    raw rows -> normalization -> aggregation -> History Store upsert
             -> month-over-month / year-over-year / moving averages
             -> alert evaluation

Synchronous; the History Store upsert is the only side effect.

Example:
    pipeline = MetricsPipeline(store, targets)
    result = pipeline.run(order_rows, inventory_rows, purchase_rows, reference_now=now)
    notifier.dispatch(result.alerts)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

import structlog

from commerce_metrics.analytics.aggregation import aggregate_by_month, aggregate_period
from commerce_metrics.analytics.comparison import (
    DeltaSet,
    compare_with_history,
    metric_series,
    moving_average,
)
from commerce_metrics.analytics.periods import PeriodWindow, current_month_window, month_window
from commerce_metrics.config import ConfigTargets
from commerce_metrics.database.history_store import HistoryStore, utc_now
from commerce_metrics.quality.alerts import AlertEvent, evaluate, evaluate_inventory, rank_alerts
from commerce_metrics.quality.validators import ValidationIssue
from commerce_metrics.records import PeriodSnapshot
from commerce_metrics.transformation.normalizers import (
    RawRecord,
    normalize,
    normalize_batch,
    normalize_inventory,
    normalize_purchase,
)

logger = structlog.get_logger(__name__)

DEFAULT_TREND_METRICS = ("revenue", "gross_profit", "profit_margin_pct")


@dataclass
class PipelineResult:
    """Everything one run produced, for rendering and notification"""
    period_key: str
    snapshot: PeriodSnapshot
    total_rows: int
    accepted_rows: int
    issues: List[ValidationIssue] = field(default_factory=list)
    inventory_issues: List[ValidationIssue] = field(default_factory=list)
    purchase_issues: List[ValidationIssue] = field(default_factory=list)
    month_over_month: Optional[DeltaSet] = None
    year_over_year: Optional[DeltaSet] = None
    moving_averages: Dict[str, List[Optional[float]]] = field(default_factory=dict)
    alerts: List[AlertEvent] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def rejected_rows(self) -> int:
        return len(self.issues)

    @property
    def all_rejected(self) -> bool:
        """Rows were supplied but every one was invalid (not the same as no activity)"""
        return self.total_rows > 0 and self.accepted_rows == 0

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()


class MetricsPipeline:
    """
    Orchestrates normalization, aggregation, persistence, comparison and
    alerting for one period.
    """

    def __init__(
        self,
        store: HistoryStore,
        targets: Optional[ConfigTargets] = None,
        moving_average_window: int = 3,
        trend_months: int = 12,
        trend_metrics: Sequence[str] = DEFAULT_TREND_METRICS,
    ):
        self.store = store
        self.targets = targets if targets is not None else ConfigTargets()
        self.moving_average_window = moving_average_window
        self.trend_months = trend_months
        self.trend_metrics = tuple(trend_metrics)

    def run(
        self,
        transactions: Iterable[RawRecord],
        inventory: Iterable[RawRecord] = (),
        purchases: Iterable[RawRecord] = (),
        reference_now: Optional[datetime] = None,
        window: Optional[PeriodWindow] = None,
    ) -> PipelineResult:
        """
        Compute, store and compare the snapshot for one window.

        Defaults to the calendar month containing reference_now. Invalid
        rows are excluded and reported in the result's issues.

        The store holds one row per calendar month, so window must be a
        whole month; use aggregate_period directly for trailing or daily
        windows.

        Raises:
            ValueError: window is not exactly one calendar month
        """
        started_at = utc_now()
        reference_now = reference_now or datetime.now()
        window = window or current_month_window(reference_now)
        if window != month_window(window.period_key):
            raise ValueError(
                f"Window {window.start} - {window.end} is not a calendar month; "
                "only whole months can be stored"
            )

        logger.info("Starting metrics run", period_key=window.period_key)

        sales = normalize_batch(transactions, normalize)
        stock = normalize_batch(inventory, normalize_inventory)
        ledger = normalize_batch(purchases, normalize_purchase)
        if sales.all_rejected:
            logger.warning("Every transaction row was rejected", rows=sales.total_rows)

        snapshot = aggregate_period(
            sales.records, stock.records, ledger.records, window, reference_now, self.targets
        )
        snapshot = self.store.upsert(snapshot.period_key, snapshot)

        comparisons = compare_with_history(self.store, snapshot)
        series = metric_series(self.store, snapshot.period_key, self.trend_months)
        averages = {
            metric: moving_average(series, metric, self.moving_average_window)
            for metric in self.trend_metrics
        }

        alerts = rank_alerts(evaluate(snapshot, self.targets) + evaluate_inventory(stock.records, self.targets))

        completed_at = utc_now()
        result = PipelineResult(
            period_key=snapshot.period_key,
            snapshot=snapshot,
            total_rows=sales.total_rows,
            accepted_rows=sales.accepted_count,
            issues=sales.issues,
            inventory_issues=stock.issues,
            purchase_issues=ledger.issues,
            month_over_month=comparisons["mom"],
            year_over_year=comparisons["yoy"],
            moving_averages=averages,
            alerts=alerts,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            "Metrics run complete",
            period_key=result.period_key,
            accepted=result.accepted_rows,
            rejected=result.rejected_rows,
            alerts=len(alerts),
            duration_seconds=result.duration_seconds,
        )
        return result

    def backfill(
        self,
        transactions: Iterable[RawRecord],
        inventory: Iterable[RawRecord] = (),
        purchases: Iterable[RawRecord] = (),
        reference_now: Optional[datetime] = None,
    ) -> List[PeriodSnapshot]:
        """Upsert one snapshot per calendar month present in the transactions"""
        reference_now = reference_now or datetime.now()

        sales = normalize_batch(transactions, normalize)
        stock = normalize_batch(inventory, normalize_inventory)
        ledger = normalize_batch(purchases, normalize_purchase)

        snapshots = aggregate_by_month(
            sales.records, stock.records, ledger.records, reference_now, self.targets
        )
        stored = [self.store.upsert(key, snapshot) for key, snapshot in snapshots.items()]

        logger.info("History backfilled", periods=len(stored), rejected=sales.rejected_count)
        return stored
