"""
Numeric helpers shared by the scoring engines.
"""
import math
from typing import Iterable, Optional


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into the closed interval [lower, upper]."""
    return min(upper, max(lower, value))


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer with halves rounded towards +infinity.

    round_half_up(92.5) == 93, unlike the built-in round().
    """
    return int(math.floor(value + 0.5))


def safe_ratio(
    numerator: Optional[float],
    denominator: Optional[float]
) -> Optional[float]:
    """
    Divide when both values are present and the denominator is positive.

    Returns:
        Ratio or None for missing data and non-positive denominators
    """
    if numerator is None or denominator is None:
        return None
    if denominator <= 0:
        return None
    return numerator / denominator


def sum_or_none(values: Iterable[Optional[float]]) -> Optional[float]:
    """
    Sum a window of values, or None if the window is empty or any value is missing.
    """
    values = list(values)
    if not values or any(v is None for v in values):
        return None
    return float(sum(values))


def percent_change(
    current: Optional[float],
    base: Optional[float]
) -> Optional[float]:
    """
    Percentage change from base to current, measured against |base|.

    Returns:
        Percent change, or None when either value is missing or base is zero
    """
    if current is None or base is None or base == 0:
        return None
    return (current - base) / abs(base) * 100
