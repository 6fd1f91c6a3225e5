"""
Error Taxonomy

Exceptions raised (or carried as notes) by the metrics engine.

- RecordValidationError: one transaction/inventory/purchase row is invalid.
  Batch callers convert it into a ValidationIssue and keep going.
- ConfigurationError: a target is missing or unusable and its documented
  default was applied. Reported as a warning note, never raised by the
  target resolver.
- PersistenceError: the History Store failed to read or write.
- ConcurrentWriteError: optimistic version check failed on upsert.
"""

from typing import Optional, Sequence, Tuple


class MetricsError(Exception):
    """Base class for all metrics engine errors"""


class RecordValidationError(MetricsError):
    """A single input record violates a required-field or value invariant"""

    def __init__(self, fields: Sequence[str], reasons: Sequence[str]):
        self.fields: Tuple[str, ...] = tuple(fields)
        self.reasons: Tuple[str, ...] = tuple(reasons)
        super().__init__("; ".join(self.reasons) or "invalid record")


class ConfigurationError(MetricsError):
    """A configuration target fell back to its documented default"""

    def __init__(self, field: str, message: str, default: Optional[object] = None):
        self.field = field
        self.default = default
        super().__init__(message)


class PersistenceError(MetricsError):
    """History Store I/O failure. The stored row for the key is unchanged."""

    def __init__(self, message: str, period_key: Optional[str] = None):
        self.period_key = period_key
        super().__init__(message)


class ConcurrentWriteError(PersistenceError):
    """Stored version differs from the version the writer expected"""

    def __init__(self, period_key: str, expected_version: int, actual_version: int):
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Period {period_key} is at version {actual_version}, expected {expected_version}",
            period_key=period_key,
        )
