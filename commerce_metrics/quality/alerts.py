"""
Alert Evaluation Module

Threshold rules applied to a period snapshot and the configured targets.

Rules are independent: every rule is evaluated and any number may fire.
No state is kept between evaluations; de-duplication and snoozing belong
to the notification side.

Example:
    events = evaluate(snapshot, targets)
    for event in events:
        notifier.send(event.severity, event.message)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

import structlog

from commerce_metrics.analytics.aggregation import low_stock_items
from commerce_metrics.config import ConfigTargets
from commerce_metrics.records import InventorySnapshotRecord, PeriodSnapshot

logger = structlog.get_logger(__name__)

STAGNANT_RATE_LIMIT_PCT = 15.0
PROFIT_GOAL_PACE_PCT = 80.0


class AlertSeverity(str, Enum):
    """Severity levels, most severe first"""
    CRITICAL = "critical"
    HIGH = "high"
    WARNING = "warning"

    @property
    def rank(self) -> int:
        return list(AlertSeverity).index(self)


class AlertType(str, Enum):
    """Alert kinds"""
    LOW_PROFIT_MARGIN = "LOW_PROFIT_MARGIN"
    LOW_ROI = "LOW_ROI"
    EXCESS_INVENTORY = "EXCESS_INVENTORY"
    STAGNANT_INVENTORY = "STAGNANT_INVENTORY"
    PROFIT_GOAL_BEHIND = "PROFIT_GOAL_BEHIND"
    LOW_STOCK = "LOW_STOCK"


@dataclass(frozen=True)
class AlertEvent:
    """One fired rule"""
    type: AlertType
    severity: AlertSeverity
    message: str
    value: float
    target: float
    period_key: Optional[str] = None
    subject: Optional[str] = None  # e.g. the SKU for stock alerts

    @property
    def is_critical(self) -> bool:
        return self.severity in (AlertSeverity.CRITICAL, AlertSeverity.HIGH)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "value": self.value,
            "target": self.target,
            "period_key": self.period_key,
            "subject": self.subject,
        }


@dataclass(frozen=True)
class AlertRule:
    """Threshold predicate over one snapshot metric"""
    alert_type: AlertType
    severity: AlertSeverity
    metric: str
    target_of: Callable[[ConfigTargets], float]
    breached: Callable[[float, float], bool]
    message: str  # formatted with value= and target=


DEFAULT_RULES = (
    AlertRule(
        alert_type=AlertType.LOW_PROFIT_MARGIN,
        severity=AlertSeverity.WARNING,
        metric="profit_margin_pct",
        target_of=lambda t: t.target_profit_margin_pct,
        breached=lambda value, target: value < target,
        message="Profit margin {value:.1f}% is below the {target:.1f}% target",
    ),
    AlertRule(
        alert_type=AlertType.LOW_ROI,
        severity=AlertSeverity.WARNING,
        metric="roi_pct",
        target_of=lambda t: t.target_roi_pct,
        breached=lambda value, target: value < target,
        message="ROI {value:.1f}% is below the {target:.1f}% target",
    ),
    AlertRule(
        alert_type=AlertType.EXCESS_INVENTORY,
        severity=AlertSeverity.WARNING,
        metric="inventory_value",
        target_of=lambda t: t.max_inventory_value,
        breached=lambda value, target: value > target,
        message="Inventory value {value:,.0f} exceeds the {target:,.0f} ceiling",
    ),
    AlertRule(
        alert_type=AlertType.STAGNANT_INVENTORY,
        severity=AlertSeverity.CRITICAL,
        metric="stagnant_inventory_rate",
        target_of=lambda t: STAGNANT_RATE_LIMIT_PCT,
        breached=lambda value, target: value > target,
        message="Stagnant inventory rate {value:.1f}% exceeds {target:.0f}%",
    ),
    AlertRule(
        alert_type=AlertType.PROFIT_GOAL_BEHIND,
        severity=AlertSeverity.HIGH,
        metric="profit_goal_achievement_pct",
        target_of=lambda t: PROFIT_GOAL_PACE_PCT,
        breached=lambda value, target: value < target,
        message="Profit goal achievement {value:.1f}% is behind the {target:.0f}% pace",
    ),
)


class AlertEvaluator:
    """
    Evaluates a fixed rule table against snapshots.

    Events come back ranked by severity (critical, high, warning); events of
    equal severity keep rule-table order.

    Example:
        evaluator = AlertEvaluator()
        events = evaluator.evaluate(snapshot, targets)
    """

    def __init__(self, rules: Sequence[AlertRule] = DEFAULT_RULES):
        self._rules: List[AlertRule] = list(rules)

    @property
    def rules(self) -> List[AlertRule]:
        return list(self._rules)

    def add_rule(self, rule: AlertRule) -> "AlertEvaluator":
        self._rules.append(rule)
        return self

    def evaluate(
        self,
        snapshot: PeriodSnapshot,
        targets: Optional[ConfigTargets] = None,
    ) -> List[AlertEvent]:
        if targets is None:
            targets = ConfigTargets()

        events = []
        for rule in self._rules:
            value = float(getattr(snapshot, rule.metric))
            target = float(rule.target_of(targets))
            if rule.breached(value, target):
                events.append(AlertEvent(
                    type=rule.alert_type,
                    severity=rule.severity,
                    message=rule.message.format(value=value, target=target),
                    value=value,
                    target=target,
                    period_key=snapshot.period_key,
                ))

        events = rank_alerts(events)
        if any(e.is_critical for e in events):
            logger.warning(
                f"Critical alerts fired: {sum(1 for e in events if e.is_critical)}",
                period_key=snapshot.period_key,
                alerts=[e.type.value for e in events],
            )
        else:
            logger.info(f"Alert evaluation complete: {len(events)} alerts", period_key=snapshot.period_key)
        return events


def rank_alerts(events: Sequence[AlertEvent]) -> List[AlertEvent]:
    """Stable sort by severity, most severe first"""
    return sorted(events, key=lambda e: e.severity.rank)


_default_evaluator = AlertEvaluator()


def evaluate(snapshot: PeriodSnapshot, targets: Optional[ConfigTargets] = None) -> List[AlertEvent]:
    """Evaluate the default rule table"""
    return _default_evaluator.evaluate(snapshot, targets)


def evaluate_inventory(
    inventory: Sequence[InventorySnapshotRecord],
    targets: Optional[ConfigTargets] = None,
) -> List[AlertEvent]:
    """One LOW_STOCK warning per row at or below the low-stock threshold"""
    if targets is None:
        targets = ConfigTargets()

    threshold = targets.low_stock_threshold
    events = [
        AlertEvent(
            type=AlertType.LOW_STOCK,
            severity=AlertSeverity.WARNING,
            message=f"{item.unified_sku} has {item.quantity_on_hand} units on hand (threshold {threshold})",
            value=float(item.quantity_on_hand),
            target=float(threshold),
            subject=item.unified_sku,
        )
        for item in low_stock_items(inventory, threshold)
    ]
    if events:
        logger.info("Low stock detected", items=len(events), threshold=threshold)
    return events
