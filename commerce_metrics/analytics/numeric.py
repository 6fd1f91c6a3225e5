"""
Numeric helpers shared by aggregation, comparison and alerting.

Every ratio against a zero base returns 0 instead of raising or yielding NaN.
"""

import math
from typing import Optional


def safe_divide(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0.0 when the denominator is zero"""
    if not denominator:
        return 0.0
    return numerator / denominator


def percentage(part: float, base: float) -> float:
    """100 * part / base, or 0.0 when base is zero"""
    return 100.0 * safe_divide(part, base)


def relative_growth(current: float, previous: float) -> Optional[float]:
    """Percent growth from previous to current; None when previous is zero"""
    if not previous:
        return None
    return 100.0 * (current - previous) / abs(previous)


def round_metric(value: Optional[float], digits: int = 2) -> Optional[float]:
    """Round for display, leaving None and infinities alone"""
    if value is None or math.isinf(value):
        return value
    return round(value, digits)
