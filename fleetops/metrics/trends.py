"""
Trend Calculations

Period-over-period comparisons for dashboard cards. A zero baseline yields a
trend of 0, which the dashboard shows as "no comparable prior data".
"""

from typing import Union

Number = Union[int, float]


def round1(value: Number) -> float:
    """Round to one decimal place."""
    return round(float(value), 1)


def trend(current: Number, previous: Number) -> float:
    """Percentage change from ``previous``; 0 when there is no positive baseline."""
    if previous > 0:
        return round1((current - previous) / previous * 100)
    return 0.0


def profit_trend(current: Number, previous: Number) -> float:
    """
    Percentage change for values that can be negative.

    Uses ``|previous|`` as the denominator so that improving from a loss
    reads as a positive trend.
    """
    if previous != 0:
        return round1((current - previous) / abs(previous) * 100)
    return 0.0


def point_trend(current: Number, previous: Number) -> float:
    """Difference in percentage points, for metrics that are already rates."""
    return round1(current - previous)
