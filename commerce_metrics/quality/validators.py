"""
Record Validation Module

Rule-based, per-record validation for incoming transactional rows.

A validator holds a chain of checks; each failing check contributes one
(field, reason) pair. Batch callers turn failures into ValidationIssue
entries keyed by the row's position, exclude the row, and keep going.

Example:
    validator = RecordValidator()
    validator.add_required_check("order_id")
    validator.add_non_negative_check("quantity")
    failures = validator.check(parsed_row)
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Collection, List, Mapping, Optional, Sequence, Tuple

import structlog

from commerce_metrics.config import get_settings
from commerce_metrics.records import TransactionStatus

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class ValidationFailure:
    """One failed check on one record"""
    check: str
    field: str
    reason: str


@dataclass(frozen=True)
class ValidationIssue:
    """All failures of one rejected record, reported alongside the snapshot"""
    record_index: int
    fields: Tuple[str, ...]
    reasons: Tuple[str, ...]

    def to_dict(self) -> dict:
        return {"record_index": self.record_index, "fields": list(self.fields), "reasons": list(self.reasons)}


RecordCheck = Callable[[Mapping[str, Any]], Optional[ValidationFailure]]


class RecordValidator:
    """
    Chainable validator for single parsed records.

    Checks run in registration order and all of them run: a record reports
    every problem it has, not only the first.
    """

    def __init__(self):
        self._checks: List[RecordCheck] = []

    def __len__(self) -> int:
        return len(self._checks)

    def add_required_check(self, column: str) -> "RecordValidator":
        """Value must be present and, for strings, non-blank"""
        def check(record: Mapping[str, Any]) -> Optional[ValidationFailure]:
            value = record.get(column)
            if value is None or (isinstance(value, str) and not value.strip()):
                return ValidationFailure(f"required_{column}", column, f"{column} is required")
            return None

        self._checks.append(check)
        return self

    def add_non_negative_check(self, column: str) -> "RecordValidator":
        """Numeric value must be >= 0"""
        def check(record: Mapping[str, Any]) -> Optional[ValidationFailure]:
            value = record.get(column)
            if value is not None and value < 0:
                return ValidationFailure(f"non_negative_{column}", column, f"{column} must not be negative (got {value})")
            return None

        self._checks.append(check)
        return self

    def add_positive_check(self, column: str) -> "RecordValidator":
        """Numeric value must be > 0"""
        def check(record: Mapping[str, Any]) -> Optional[ValidationFailure]:
            value = record.get(column)
            if value is not None and value <= 0:
                return ValidationFailure(f"positive_{column}", column, f"{column} must be greater than zero (got {value})")
            return None

        self._checks.append(check)
        return self

    def add_pattern_check(self, column: str, pattern: str) -> "RecordValidator":
        """String value must match the regex; absent values are left to add_required_check"""
        compiled = re.compile(pattern)

        def check(record: Mapping[str, Any]) -> Optional[ValidationFailure]:
            value = record.get(column)
            if isinstance(value, str) and value and not compiled.match(value):
                return ValidationFailure(f"pattern_{column}", column, f"{column} {value!r} is malformed")
            return None

        self._checks.append(check)
        return self

    def add_enum_check(self, column: str, allowed_values: Collection[Any]) -> "RecordValidator":
        """Value must be one of the allowed values"""
        def check(record: Mapping[str, Any]) -> Optional[ValidationFailure]:
            value = record.get(column)
            if value not in allowed_values:
                raw = record.get(f"_raw_{column}", value)
                return ValidationFailure(f"enum_{column}", column, f"{column} {raw!r} is not a recognised value")
            return None

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        column: str,
        check_func: Callable[[Mapping[str, Any]], bool],
        message_on_fail: str,
    ) -> "RecordValidator":
        """Arbitrary predicate over the whole record; False means failure"""
        def check(record: Mapping[str, Any]) -> Optional[ValidationFailure]:
            if check_func(record):
                return None
            return ValidationFailure(name, column, message_on_fail.format(**record))

        self._checks.append(check)
        return self

    def check(self, record: Mapping[str, Any]) -> List[ValidationFailure]:
        """Run every check against one record"""
        return [failure for failure in (c(record) for c in self._checks) if failure is not None]

    def validate(self, records: Sequence[Mapping[str, Any]]) -> List[ValidationIssue]:
        """Run every check against every record, one issue per failing record"""
        issues = []
        for index, record in enumerate(records):
            failures = self.check(record)
            if failures:
                issues.append(issue_from_failures(index, failures))

        logger.info("Record validation complete", records=len(records), rejected=len(issues))
        return issues


def issue_from_failures(record_index: int, failures: Sequence[ValidationFailure]) -> ValidationIssue:
    fields: List[str] = []
    for failure in failures:
        if failure.field not in fields:
            fields.append(failure.field)
    return ValidationIssue(
        record_index=record_index,
        fields=tuple(fields),
        reasons=tuple(failure.reason for failure in failures),
    )


# Pre-built validators. They run on parsed records (see transformation.normalizers).
def create_transaction_validator(product_key_pattern: Optional[str] = None) -> RecordValidator:
    """Validator for parsed transaction rows"""
    return (
        RecordValidator()
        .add_required_check("order_id")
        .add_required_check("product_key")
        .add_pattern_check("product_key", product_key_pattern or settings.normalization.product_key_pattern)
        .add_required_check("occurred_at")
        .add_enum_check("status", list(TransactionStatus))
        .add_non_negative_check("quantity")
        .add_non_negative_check("unit_price")
        .add_non_negative_check("cost")
        .add_non_negative_check("fees")
        .add_non_negative_check("other_cost")
        .add_custom_check(
            name="zero_quantity_status",
            column="quantity",
            check_func=lambda r: r.get("quantity") != 0
            or (isinstance(r.get("status"), TransactionStatus) and r["status"].allows_zero_quantity),
            message_on_fail="quantity 0 is only valid for Cancelled or Returned records",
        )
    )


def create_inventory_validator() -> RecordValidator:
    """Validator for parsed inventory snapshot rows"""
    return (
        RecordValidator()
        .add_required_check("unified_sku")
        .add_non_negative_check("quantity_on_hand")
        .add_non_negative_check("unit_cost")
        .add_non_negative_check("days_in_stock")
        .add_non_negative_check("reorder_point")
    )


def create_purchase_validator() -> RecordValidator:
    """Validator for parsed purchase-ledger rows"""
    return (
        RecordValidator()
        .add_required_check("unified_sku")
        .add_required_check("purchased_at")
        .add_positive_check("quantity")
        .add_non_negative_check("unit_cost")
        .add_non_negative_check("total_cost")
    )
