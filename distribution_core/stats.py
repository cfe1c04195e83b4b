"""Small numeric helpers shared by the scoring and forecasting modules."""

from __future__ import annotations

import statistics
from collections.abc import Iterable, Sequence


def mean(values: Iterable[float]) -> float:
    vals = list(values)
    return statistics.fmean(vals) if vals else 0.0


def stdev(values: Iterable[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    vals = [float(v) for v in values]
    return statistics.pstdev(vals) if len(vals) >= 2 else 0.0


def variance(values: Iterable[float]) -> float:
    vals = [float(v) for v in values]
    return statistics.pvariance(vals) if len(vals) >= 2 else 0.0


def linear_regression(xs: Sequence[float], ys: Sequence[float]) -> tuple[float, float, float]:
    """Least-squares fit. Returns (slope, intercept, r_squared)."""
    n = len(xs)
    if n != len(ys):
        raise ValueError(f"length mismatch: {n} x values, {len(ys)} y values")
    if n < 2:
        return 0.0, (ys[0] if ys else 0.0), 0.0

    mx = mean(xs)
    my = mean(ys)
    sxx = sum((x - mx) ** 2 for x in xs)
    if sxx == 0:
        return 0.0, my, 0.0
    sxy = sum((x - mx) * (y - my) for x, y in zip(xs, ys))
    slope = sxy / sxx
    intercept = my - slope * mx

    ss_tot = sum((y - my) ** 2 for y in ys)
    if ss_tot == 0:
        return slope, intercept, 1.0
    ss_res = sum((y - (slope * x + intercept)) ** 2 for x, y in zip(xs, ys))
    return slope, intercept, max(0.0, 1 - ss_res / ss_tot)


def variance_reduction(groups: Iterable[Sequence[float]]) -> float:
    """Share of total variance explained by grouping (1 - within / total).

    0 when the grouping explains nothing or the data has no variance.
    """
    groups = [list(g) for g in groups if g]
    flat = [v for g in groups for v in g]
    total = variance(flat)
    if total == 0 or len(groups) < 2:
        return 0.0
    within = sum(variance(g) * len(g) for g in groups) / len(flat)
    return max(0.0, min(1.0, 1 - within / total))


def gini(values: Iterable[float]) -> float:
    """Gini coefficient: 0 = perfect equality, approaching 1 = total concentration."""
    s = sorted(max(0.0, float(v)) for v in values)
    if not s:
        return 0.0
    n = len(s)
    total = sum(s)
    if total == 0:
        return 0.0
    cum = sum((i + 1) * v for i, v in enumerate(s))
    g = (2 * cum) / (n * total) - (n + 1) / n
    return round(max(0.0, min(1.0, g)), 4)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
