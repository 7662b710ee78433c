"""Numeric helpers shared by the analytics engines.

Every helper returns a finite float; degenerate inputs fall back to a stated
default instead of producing NaN or Infinity.
"""
import math
from typing import Sequence

import numpy as np


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning ``default`` for a zero or non-finite result."""
    if denominator == 0 or not math.isfinite(denominator):
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def percent_change(current: float, prior: float) -> float:
    """(current - prior) / prior * 100, or 0 when prior is 0."""
    return safe_divide(current - prior, prior) * 100


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def population_std(values: Sequence[float]) -> float:
    """Standard deviation with ddof=0; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return float(np.std(values))


def percent_returns(values: Sequence[float]) -> list[float]:
    """Period-over-period percent changes, skipping zero bases."""
    returns = []
    for i in range(1, len(values)):
        if values[i - 1] != 0:
            returns.append((values[i] - values[i - 1]) / values[i - 1] * 100)
    return returns


def correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation of two equal-length series, 0 when undefined."""
    n = min(len(x), len(y))
    if n < 2:
        return 0.0
    xs = np.asarray(x[:n], dtype=float)
    ys = np.asarray(y[:n], dtype=float)
    if np.std(xs) == 0 or np.std(ys) == 0:
        return 0.0
    value = float(np.corrcoef(xs, ys)[0, 1])
    return value if math.isfinite(value) else 0.0


def logistic(x: float) -> float:
    """1 / (1 + e^x) computed without overflow."""
    if x >= 0:
        z = math.exp(-x)
        return z / (1 + z)
    return 1 / (1 + math.exp(x))


def points_at_least(value: float, bands: Sequence[Sequence[float]]) -> float:
    """Points for the first ``[threshold, points]`` band with value >= threshold."""
    for threshold, points in bands:
        if value >= threshold:
            return float(points)
    return 0.0


def points_below(value: float, bands: Sequence[Sequence[float]]) -> float:
    """Points for the first ``[threshold, points]`` band with value < threshold."""
    for threshold, points in bands:
        if value < threshold:
            return float(points)
    return 0.0
