"""
Calendar Periods

Period keys ("YYYY-MM") and the date windows the aggregation engine reduces
over: a calendar month, the current day, trailing N days and trailing N months.

All timestamps are naive, in the host's business timezone. Aware values are
reduced to their wall-clock time with as_naive().
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Tuple, Union

_PERIOD_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")

Moment = Union[date, datetime]


def as_naive(moment: datetime) -> datetime:
    """Drop tzinfo, keeping wall-clock time"""
    if moment.tzinfo is not None:
        return moment.replace(tzinfo=None)
    return moment


def _as_datetime(moment: Moment) -> datetime:
    if isinstance(moment, datetime):
        return as_naive(moment)
    return datetime.combine(moment, time.min)


def _end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


@dataclass(frozen=True)
class PeriodWindow:
    """Inclusive [start, end] time window"""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} precedes start {self.start}")

    def contains(self, moment: Moment) -> bool:
        return self.start <= _as_datetime(moment) <= self.end

    def contains_date(self, day: Moment) -> bool:
        """Date-granular membership, for date-only facts such as purchases"""
        if isinstance(day, datetime):
            day = day.date()
        return self.start.date() <= day <= self.end.date()

    @property
    def length_days(self) -> int:
        """Calendar days covered, counting both ends"""
        return (self.end.date() - self.start.date()).days + 1

    @property
    def period_key(self) -> str:
        return period_key_of(self.start)


# =============================================================================
# PERIOD KEYS
# =============================================================================

def period_key_of(moment: Moment) -> str:
    """Calendar-month key of a date or timestamp"""
    return f"{moment.year:04d}-{moment.month:02d}"


def parse_period_key(period_key: str) -> Tuple[int, int]:
    """Split "YYYY-MM" into (year, month); ValueError when malformed"""
    match = _PERIOD_KEY_RE.match(period_key or "")
    if not match:
        raise ValueError(f"Invalid period key: {period_key!r} (expected YYYY-MM)")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in period key: {period_key!r}")
    return year, month


def shift_period_key(period_key: str, months: int) -> str:
    """Move a period key by a signed number of months"""
    year, month = parse_period_key(period_key)
    index = year * 12 + (month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def same_month_prior_year(period_key: str) -> str:
    return shift_period_key(period_key, -12)


def generate_period_key_range(anchor_period_key: str, count: int) -> List[str]:
    """
    `count` consecutive month keys ending at the anchor, oldest first.

    Example:
        generate_period_key_range("2025-02", 3) -> ["2024-12", "2025-01", "2025-02"]
    """
    parse_period_key(anchor_period_key)
    if count <= 0:
        return []
    return [shift_period_key(anchor_period_key, -offset) for offset in range(count - 1, -1, -1)]


# =============================================================================
# WINDOWS
# =============================================================================

def month_window(period_key: str) -> PeriodWindow:
    """Whole calendar month of a period key"""
    year, month = parse_period_key(period_key)
    last_day = calendar.monthrange(year, month)[1]
    return PeriodWindow(
        start=datetime(year, month, 1),
        end=_end_of_day(date(year, month, last_day)),
    )


def current_month_window(now: datetime) -> PeriodWindow:
    return month_window(period_key_of(now))


def current_day_window(now: datetime) -> PeriodWindow:
    today = _as_datetime(now).date()
    return PeriodWindow(start=datetime.combine(today, time.min), end=_end_of_day(today))


def trailing_days_window(now: datetime, days: int) -> PeriodWindow:
    """The last `days` calendar days, today included"""
    if days < 1:
        raise ValueError("days must be at least 1")
    today = _as_datetime(now).date()
    first = today - timedelta(days=days - 1)
    return PeriodWindow(start=datetime.combine(first, time.min), end=_end_of_day(today))


def trailing_months_window(now: datetime, months: int) -> PeriodWindow:
    """The last `months` calendar months, the current one included"""
    if months < 1:
        raise ValueError("months must be at least 1")
    current_key = period_key_of(now)
    first = month_window(shift_period_key(current_key, -(months - 1)))
    return PeriodWindow(start=first.start, end=month_window(current_key).end)
