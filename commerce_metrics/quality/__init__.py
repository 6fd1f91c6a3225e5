"""
Data Quality Module
"""
from .validators import RecordValidator, ValidationIssue, create_transaction_validator
from .alerts import AlertEvaluator, AlertEvent, AlertSeverity, AlertType, evaluate, evaluate_inventory

__all__ = [
    "RecordValidator",
    "ValidationIssue",
    "create_transaction_validator",
    "AlertEvaluator",
    "AlertEvent",
    "AlertSeverity",
    "AlertType",
    "evaluate",
    "evaluate_inventory",
]
