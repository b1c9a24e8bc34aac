"""
Monitoring - Derived Statistics.

Pure reductions used by the collector. Every function tolerates
empty input and returns a documented neutral value instead of
raising.
"""

import math
from typing import Sequence


def average(values: Sequence[float]) -> float:
    """Arithmetic mean; 0 for no values."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def percentile(values: Sequence[float], p: float) -> float:
    """
    Nearest-rank percentile.

    index = ceil(p / 100 * n) - 1, clamped to [0, n - 1].
    An empty list yields 0.
    """
    if not values:
        return 0.0

    ordered = sorted(values)
    n = len(ordered)
    index = math.ceil(p * n / 100.0) - 1
    index = max(0, min(n - 1, index))
    return ordered[index]


def apdex(satisfied: int, tolerating: int, total: int) -> float:
    """
    Application Performance Index.

    (satisfied + tolerating / 2) / total; no requests counts as
    perfectly satisfied (1.0).
    """
    if total <= 0:
        return 1.0
    return (satisfied + tolerating / 2.0) / total


def cache_hit_rate(hits: int, misses: int) -> float:
    """hits / (hits + misses); 0 when there were no lookups."""
    lookups = hits + misses
    if lookups <= 0:
        return 0.0
    return hits / lookups


def success_rate(total: int, errors: int) -> float:
    """1 - errors / total; 1.0 when there were no requests."""
    if total <= 0:
        return 1.0
    return max(0.0, 1.0 - errors / total)


def ratio_percent(part: float, whole: float) -> float:
    """part / whole as a percentage; 0 when whole is 0."""
    if whole <= 0:
        return 0.0
    return part / whole * 100.0
