"""Statistical helpers shared by the metric calculators."""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime

SECONDS_PER_HOUR = 60 * 60
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linear-interpolation percentile of an already sorted sequence.

    Returns 0 for an empty sequence and the sole element for a single-element
    sequence, whatever *p* is.
    """
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return sorted_values[0]

    index = (p / 100) * (len(sorted_values) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if upper >= len(sorted_values):
        return sorted_values[-1]
    if lower < 0:
        return sorted_values[0]

    weight = index - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


def average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return percentile(sorted(values), 50)


def round_to(value: float, decimals: int = 1) -> float:
    """Round half away from zero, matching how the figures are displayed."""
    factor = 10 ** decimals
    return math.floor(abs(value) * factor + 0.5) / factor * (1 if value >= 0 else -1)


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_DAY
