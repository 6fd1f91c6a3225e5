"""
History Store

Monthly time series of PeriodSnapshots keyed by period key ("YYYY-MM").

Semantics shared by every backend:
- upsert overwrites every metric of an existing key but never its
  created_at; a new key is inserted with created_at = now
- upserting the same snapshot twice leaves the same observable state
- a failed upsert leaves the previously stored row unchanged
- get_range returns a MissingPeriod placeholder for keys with no row,
  never a zero-filled snapshot
- reads in the same process see the latest committed write

Concurrent writers to one key are last-write-wins unless the caller passes
expected_version, in which case a stale writer gets ConcurrentWriteError and
the row is left alone. The SQL backend enforces this in the UPDATE itself
(version_id_col), so writers in separate processes cannot both pass.
"""

import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Union

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from commerce_metrics.analytics.periods import generate_period_key_range, parse_period_key
from commerce_metrics.database.connection import get_db
from commerce_metrics.database.models import PeriodSnapshotRow
from commerce_metrics.errors import ConcurrentWriteError, PersistenceError
from commerce_metrics.records import MissingPeriod, PeriodSnapshot, RoiBasis

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]
RangeEntry = Union[PeriodSnapshot, MissingPeriod]

_MAX_WRITE_ATTEMPTS = 3

# Columns copied verbatim between PeriodSnapshot and PeriodSnapshotRow
_VALUE_COLUMNS = (
    "revenue",
    "gross_profit",
    "profit_margin_pct",
    "roi_pct",
    "units_sold",
    "order_count",
    "distinct_products",
    "average_order_value",
    "inventory_value",
    "inventory_turnover",
    "stagnant_inventory_rate",
    "profit_goal_achievement_pct",
    "computed_at",
)


def utc_now() -> datetime:
    """Naive UTC timestamp"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _check_key(period_key: str, snapshot: PeriodSnapshot) -> None:
    parse_period_key(period_key)
    if snapshot.period_key != period_key:
        raise ValueError(f"Snapshot for {snapshot.period_key} cannot be stored under {period_key}")


class HistoryStore(ABC):
    """Keyed monthly time series of period snapshots"""

    @abstractmethod
    def upsert(
        self,
        period_key: str,
        snapshot: PeriodSnapshot,
        expected_version: Optional[int] = None,
    ) -> PeriodSnapshot:
        """
        Insert or overwrite the snapshot for period_key.

        Args:
            period_key: "YYYY-MM"; must equal snapshot.period_key
            snapshot: Metrics to store; its created_at is ignored
            expected_version: When given, the write only proceeds if the
                stored version equals it (0 for "no row yet")

        Returns:
            The stored snapshot, carrying the row's created_at
        """

    @abstractmethod
    def get(self, period_key: str) -> Optional[PeriodSnapshot]:
        """Stored snapshot, or None when the period has no row"""

    @abstractmethod
    def get_version(self, period_key: str) -> int:
        """Number of writes to the key so far; 0 when absent"""

    @abstractmethod
    def list_period_keys(self) -> List[str]:
        """All stored keys, oldest first"""

    def get_range(self, period_keys: Sequence[str]) -> List[RangeEntry]:
        """One entry per requested key, in request order, with placeholders for gaps"""
        return [self.get(key) or MissingPeriod(key) for key in period_keys]

    def latest(self, count: int) -> List[PeriodSnapshot]:
        """The `count` most recent stored snapshots, oldest first"""
        if count <= 0:
            return []
        keys = self.list_period_keys()[-count:]
        return [snapshot for snapshot in self.get_range(keys) if snapshot.has_data]

    @staticmethod
    def generate_period_key_range(anchor_period_key: str, count: int) -> List[str]:
        return generate_period_key_range(anchor_period_key, count)


# =============================================================================
# IN-MEMORY BACKEND
# =============================================================================

@dataclass(frozen=True)
class _StoredEntry:
    snapshot: PeriodSnapshot
    updated_at: datetime
    version: int


class InMemoryHistoryStore(HistoryStore):
    """
    Process-local store.

    A lock serializes writers; each write builds the new entry completely
    before swapping it in, so readers see either the old or the new state.
    """

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._entries: Dict[str, _StoredEntry] = {}
        self._lock = threading.Lock()

    def upsert(
        self,
        period_key: str,
        snapshot: PeriodSnapshot,
        expected_version: Optional[int] = None,
    ) -> PeriodSnapshot:
        _check_key(period_key, snapshot)

        with self._lock:
            existing = self._entries.get(period_key)
            current_version = existing.version if existing else 0
            if expected_version is not None and expected_version != current_version:
                raise ConcurrentWriteError(period_key, expected_version, current_version)

            now = self._clock()
            created_at = existing.snapshot.created_at if existing else now
            stored = replace(snapshot, created_at=created_at)
            self._entries[period_key] = _StoredEntry(stored, updated_at=now, version=current_version + 1)

        logger.info("Snapshot upserted", period_key=period_key, version=current_version + 1, backend="memory")
        return stored

    def get(self, period_key: str) -> Optional[PeriodSnapshot]:
        entry = self._entries.get(period_key)
        return entry.snapshot if entry else None

    def get_version(self, period_key: str) -> int:
        entry = self._entries.get(period_key)
        return entry.version if entry else 0

    def list_period_keys(self) -> List[str]:
        return sorted(self._entries)


# =============================================================================
# SQL BACKEND
# =============================================================================

def _row_to_snapshot(row: PeriodSnapshotRow) -> PeriodSnapshot:
    values = {column: getattr(row, column) for column in _VALUE_COLUMNS}
    return PeriodSnapshot(
        period_key=row.period_key,
        turnover_days=math.inf if row.turnover_days is None else row.turnover_days,
        roi_basis=RoiBasis(row.roi_basis),
        created_at=row.created_at,
        **values,
    )


def _apply_snapshot(row: PeriodSnapshotRow, snapshot: PeriodSnapshot) -> None:
    for column in _VALUE_COLUMNS:
        setattr(row, column, getattr(snapshot, column))
    row.turnover_days = None if math.isinf(snapshot.turnover_days) else snapshot.turnover_days
    row.roi_basis = snapshot.roi_basis.value


def _stored_version(session: Session, period_key: str) -> int:
    version = session.scalar(
        select(PeriodSnapshotRow.version).where(PeriodSnapshotRow.period_key == period_key)
    )
    return version or 0


class SQLHistoryStore(HistoryStore):
    """
    SQLAlchemy-backed store (one row per period in period_snapshots).

    Each upsert runs in its own transaction: select the row, overwrite it or
    insert it, commit. The UPDATE only matches the version that was read; a
    lost race is a ConcurrentWriteError for a versioned writer and a retry
    for an unversioned one. Any other database error rolls the transaction
    back and is raised as PersistenceError.

    Example:
        engine = init_database()
        store = SQLHistoryStore(build_session_factory(engine))
        store.upsert(snapshot.period_key, snapshot)
    """

    def __init__(self, session_factory: sessionmaker, clock: Clock = utc_now):
        self._session_factory = session_factory
        self._clock = clock

    def upsert(
        self,
        period_key: str,
        snapshot: PeriodSnapshot,
        expected_version: Optional[int] = None,
    ) -> PeriodSnapshot:
        _check_key(period_key, snapshot)

        # A versioned writer gets exactly one try; unversioned writers retry
        # so the last of them wins
        attempts = 1 if expected_version is not None else _MAX_WRITE_ATTEMPTS
        for attempt in range(1, attempts + 1):
            try:
                return self._write(period_key, snapshot, expected_version)
            except ConcurrentWriteError as e:
                if attempt == attempts:
                    logger.warning(
                        "Snapshot upsert conflict",
                        period_key=period_key,
                        expected_version=e.expected_version,
                        actual_version=e.actual_version,
                    )
                    raise
                logger.info("Concurrent write detected, retrying", period_key=period_key, attempt=attempt)

    def _write(
        self,
        period_key: str,
        snapshot: PeriodSnapshot,
        expected_version: Optional[int],
    ) -> PeriodSnapshot:
        """
        One write transaction.

        Conflicts are detected inside the session but raised after it has
        rolled back and closed, so they never surface as session errors.
        """
        conflict: Optional[ConcurrentWriteError] = None
        stored: Optional[PeriodSnapshot] = None
        try:
            with get_db(self._session_factory) as session:
                row = session.get(PeriodSnapshotRow, period_key)
                current_version = row.version if row is not None else 0
                if expected_version is not None and expected_version != current_version:
                    conflict = ConcurrentWriteError(period_key, expected_version, current_version)
                else:
                    inserting = row is None
                    now = self._clock()
                    if inserting:
                        row = PeriodSnapshotRow(period_key=period_key, created_at=now)
                        session.add(row)
                    _apply_snapshot(row, snapshot)
                    row.updated_at = now
                    # Re-saving identical metrics is still a write and bumps the version
                    flag_modified(row, "updated_at")
                    try:
                        session.flush()
                        stored = _row_to_snapshot(row)
                    except StaleDataError:
                        session.rollback()
                        conflict = ConcurrentWriteError(
                            period_key, current_version, _stored_version(session, period_key)
                        )
                    except IntegrityError:
                        session.rollback()
                        # Another writer inserted the key first
                        if not inserting or session.get(PeriodSnapshotRow, period_key) is None:
                            raise
                        conflict = ConcurrentWriteError(period_key, 0, _stored_version(session, period_key))
        except SQLAlchemyError as e:
            logger.error("Snapshot upsert failed", period_key=period_key, error=str(e))
            raise PersistenceError(f"Failed to upsert period {period_key}: {e}", period_key=period_key) from e

        if conflict is not None:
            raise conflict

        logger.info("Snapshot upserted", period_key=period_key, version=current_version + 1, backend="sql")
        return stored

    def get(self, period_key: str) -> Optional[PeriodSnapshot]:
        try:
            with get_db(self._session_factory) as session:
                row = session.get(PeriodSnapshotRow, period_key)
                return _row_to_snapshot(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error("Snapshot read failed", period_key=period_key, error=str(e))
            raise PersistenceError(f"Failed to read period {period_key}: {e}", period_key=period_key) from e

    def get_version(self, period_key: str) -> int:
        try:
            with get_db(self._session_factory) as session:
                return _stored_version(session, period_key)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read version of {period_key}: {e}", period_key=period_key) from e

    def get_range(self, period_keys: Sequence[str]) -> List[RangeEntry]:
        keys = list(period_keys)
        if not keys:
            return []
        try:
            with get_db(self._session_factory) as session:
                rows = session.scalars(
                    select(PeriodSnapshotRow).where(PeriodSnapshotRow.period_key.in_(keys))
                ).all()
                found = {row.period_key: _row_to_snapshot(row) for row in rows}
        except SQLAlchemyError as e:
            logger.error("Snapshot range read failed", keys=len(keys), error=str(e))
            raise PersistenceError(f"Failed to read periods {keys[0]}..{keys[-1]}: {e}") from e

        return [found.get(key) or MissingPeriod(key) for key in keys]

    def list_period_keys(self) -> List[str]:
        try:
            with get_db(self._session_factory) as session:
                return list(session.scalars(
                    select(PeriodSnapshotRow.period_key).order_by(PeriodSnapshotRow.period_key)
                ).all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list periods: {e}") from e
