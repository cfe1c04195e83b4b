"""Workload forecasting over a household's daily task series.

Patterns are found by asking how much of the series' variance a grouping
(weekday, weekend vs weekday, calendar month) explains. Forecasts multiply a
base daily mean by the detected cyclic adjustments and a bounded trend term.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from .models import AnomalyType, PatternType, TrendDirection, WorkloadDataPoint
from .stats import clamp, linear_regression, mean, stdev, variance_reduction
from .time_utils import WEEKDAY_NAMES, as_date, daterange, is_weekend, week_key

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


@dataclass(frozen=True)
class PredictorConfig:
    min_series_length: int = 14
    min_pattern_confidence: float = 0.3
    weekend_min_delta: float = 0.15
    seasonal_min_days: int = 60
    trend_window_weeks: int = 4
    trend_threshold_pct: float = 5.0
    trend_multiplier_bounds: tuple[float, float] = (0.5, 1.5)
    anomaly_window: int = 7
    anomaly_min_baseline: int = 3
    anomaly_sensitivity: float = 2.0
    category_trend_delta: float = 0.15
    proactive_min_confidence: float = 0.4
    proactive_min_tasks: float = 2.0


DEFAULT_CONFIG = PredictorConfig()


@dataclass(frozen=True)
class WorkloadPattern:
    type: PatternType
    periodicity: int
    amplitude: float
    phase: int
    confidence: float
    description: str = ""


@dataclass(frozen=True)
class WorkloadTrend:
    direction: TrendDirection
    rate: float
    confidence: float
    started_at: date | None = None


@dataclass(frozen=True)
class PredictionFactor:
    name: str
    impact: float
    description: str


@dataclass(frozen=True)
class CategoryPrediction:
    category: str
    predicted_count: float
    trend: TrendDirection


@dataclass(frozen=True)
class WorkloadPrediction:
    date: date
    predicted_task_count: float
    predicted_minutes: float
    confidence: float
    factors: list[PredictionFactor] = field(default_factory=list)
    breakdown: list[CategoryPrediction] = field(default_factory=list)


@dataclass(frozen=True)
class Anomaly:
    timestamp: datetime
    type: AnomalyType
    severity: int
    expected_value: float
    actual_value: float
    z_score: float
    possible_causes: list[str]


@dataclass(frozen=True)
class SeasonalProfile:
    month: int
    average_task_count: float
    average_minutes: float
    peak_days: list[int]
    category_weights: dict[str, float]


@dataclass(frozen=True)
class TaskPreparation:
    category: str
    estimated_count: float
    suggested_assignees: list[str]
    priority: int


@dataclass(frozen=True)
class ProactiveDistribution:
    suggested_date: date
    reason: str
    preparations: list[TaskPreparation]
    confidence: float


def create_workload_data_point(
    timestamp: datetime,
    task_count: int,
    total_minutes: int = 0,
    categories: Mapping[str, int] | None = None,
    is_holiday: bool = False,
) -> WorkloadDataPoint:
    return WorkloadDataPoint(
        timestamp=timestamp,
        task_count=task_count,
        total_minutes=total_minutes,
        categories=dict(categories or {}),
        is_holiday=is_holiday,
    )


def _ordered(series: Iterable[WorkloadDataPoint]) -> list[WorkloadDataPoint]:
    return sorted(series, key=lambda p: p.timestamp)


# ---------------------------------------------------------------------------
# Pattern detection
# ---------------------------------------------------------------------------


def _weekday_pattern(points: Sequence[WorkloadDataPoint]) -> WorkloadPattern | None:
    groups: dict[int, list[float]] = defaultdict(list)
    for p in points:
        groups[p.day_of_week].append(p.task_count)
    confidence = variance_reduction(groups.values())
    overall = mean(p.task_count for p in points)
    if overall <= 0:
        return None
    means = {d: mean(v) for d, v in groups.items()}
    peak = max(means, key=lambda d: means[d])
    amplitude = (max(means.values()) - min(means.values())) / overall
    return WorkloadPattern(
        type=PatternType.DAILY,
        periodicity=7,
        amplitude=round(amplitude, 2),
        phase=peak,
        confidence=round(confidence, 2),
        description=f"{WEEKDAY_NAMES[peak]} is the busiest day of the week",
    )


def _weekend_pattern(points: Sequence[WorkloadDataPoint], cfg: PredictorConfig) -> WorkloadPattern | None:
    weekend = [p.task_count for p in points if p.day_of_week >= 5]
    weekday = [p.task_count for p in points if p.day_of_week < 5]
    if not weekend or not weekday:
        return None
    we_mean, wd_mean = mean(weekend), mean(weekday)
    if wd_mean <= 0:
        return None
    delta = (we_mean - wd_mean) / wd_mean
    if abs(delta) < cfg.weekend_min_delta:
        return None
    kind = PatternType.WEEKEND_PEAK if delta > 0 else PatternType.WEEKEND_REDUCTION
    return WorkloadPattern(
        type=kind,
        periodicity=7,
        amplitude=round(abs(delta), 2),
        phase=5,
        confidence=round(variance_reduction([weekend, weekday]), 2),
        description=f"Weekends run {abs(delta) * 100:.0f}% {'above' if delta > 0 else 'below'} weekdays",
    )


def _seasonal_pattern(points: Sequence[WorkloadDataPoint], cfg: PredictorConfig) -> WorkloadPattern | None:
    span = (points[-1].day - points[0].day).days
    groups: dict[int, list[float]] = defaultdict(list)
    for p in points:
        groups[p.timestamp.month].append(p.task_count)
    if span < cfg.seasonal_min_days or len(groups) < 2:
        return None
    overall = mean(p.task_count for p in points)
    if overall <= 0:
        return None
    means = {m: mean(v) for m, v in groups.items()}
    peak = max(means, key=lambda m: means[m])
    return WorkloadPattern(
        type=PatternType.SEASONAL,
        periodicity=365,
        amplitude=round((max(means.values()) - min(means.values())) / overall, 2),
        phase=peak,
        confidence=round(variance_reduction(groups.values()), 2),
        description=f"{MONTH_NAMES[peak - 1]} is the busiest month",
    )


def detect_patterns(
    series: Iterable[WorkloadDataPoint],
    config: PredictorConfig = DEFAULT_CONFIG,
) -> list[WorkloadPattern]:
    """Cyclic patterns whose grouping explains enough of the variance."""
    points = _ordered(series)
    if len(points) < config.min_series_length:
        return []
    candidates = [
        _weekday_pattern(points),
        _weekend_pattern(points, config),
        _seasonal_pattern(points, config),
    ]
    return [p for p in candidates if p is not None and p.confidence >= config.min_pattern_confidence]


# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------


def analyze_workload_trend(
    series: Iterable[WorkloadDataPoint],
    window_weeks: int | None = None,
    config: PredictorConfig = DEFAULT_CONFIG,
) -> WorkloadTrend:
    """Least-squares slope over the most recent weekly means."""
    points = _ordered(series)
    window_weeks = window_weeks or config.trend_window_weeks
    if len(points) < config.min_series_length:
        return WorkloadTrend(TrendDirection.STABLE, 0.0, 0.0)

    weeks: dict[str, list[float]] = defaultdict(list)
    for p in points:
        weeks[week_key(p.day)].append(p.task_count)
    keys = sorted(weeks)[-window_weeks:]
    if len(keys) < 2:
        return WorkloadTrend(TrendDirection.STABLE, 0.0, 0.0)

    ys = [mean(weeks[k]) for k in keys]
    slope, _, r2 = linear_regression(list(range(len(ys))), ys)
    base = mean(ys)
    rate = slope / base * 100.0 if base > 0 else 0.0

    if rate > config.trend_threshold_pct:
        direction = TrendDirection.INCREASING
    elif rate < -config.trend_threshold_pct:
        direction = TrendDirection.DECREASING
    else:
        direction = TrendDirection.STABLE
    return WorkloadTrend(
        direction=direction,
        rate=round(rate, 2),
        confidence=round(min(1.0, r2 + 0.2), 2),
        started_at=date.fromisoformat(keys[0]),
    )


# ---------------------------------------------------------------------------
# Forecasting
# ---------------------------------------------------------------------------


@dataclass
class _SeriesAnalysis:
    points: list[WorkloadDataPoint]
    patterns: list[WorkloadPattern]
    trend: WorkloadTrend
    base_tasks: float
    base_minutes: float


def _analyze(series: Iterable[WorkloadDataPoint], config: PredictorConfig) -> _SeriesAnalysis:
    points = _ordered(series)
    return _SeriesAnalysis(
        points=points,
        patterns=detect_patterns(points, config),
        trend=analyze_workload_trend(points, config=config),
        base_tasks=mean(p.task_count for p in points),
        base_minutes=mean(p.total_minutes for p in points),
    )


def _find(patterns: Sequence[WorkloadPattern], *kinds: PatternType) -> WorkloadPattern | None:
    return next((p for p in patterns if p.type in kinds), None)


def _day_multiplier(a: _SeriesAnalysis, target: date) -> tuple[float, PredictionFactor | None]:
    if a.base_tasks <= 0:
        return 1.0, None
    dow = target.weekday()
    daily = _find(a.patterns, PatternType.DAILY)
    if daily is not None:
        same = [p.task_count for p in a.points if p.day_of_week == dow]
        if same:
            mult = mean(same) / a.base_tasks
            more = "more" if mult >= 1 else "fewer"
            return mult, PredictionFactor(
                "day_of_week", round(mult - 1, 2), f"{WEEKDAY_NAMES[dow]} typically has {more} tasks"
            )
    weekend = _find(a.patterns, PatternType.WEEKEND_REDUCTION, PatternType.WEEKEND_PEAK)
    if weekend is not None:
        group = [p.task_count for p in a.points if (p.day_of_week >= 5) == is_weekend(target)]
        if group:
            mult = mean(group) / a.base_tasks
            label = "weekend" if is_weekend(target) else "weekday"
            return mult, PredictionFactor(
                "weekend", round(mult - 1, 2), f"{label.capitalize()} load differs from the average"
            )
    return 1.0, None


def _seasonal_multiplier(a: _SeriesAnalysis, target: date) -> tuple[float, PredictionFactor | None]:
    if a.base_tasks <= 0 or _find(a.patterns, PatternType.SEASONAL) is None:
        return 1.0, None
    same = [p.task_count for p in a.points if p.timestamp.month == target.month]
    if not same:
        return 1.0, None
    mult = mean(same) / a.base_tasks
    return mult, PredictionFactor(
        "seasonal", round(mult - 1, 2), f"{MONTH_NAMES[target.month - 1]} load relative to the yearly average"
    )


def _trend_multiplier(
    a: _SeriesAnalysis, target: date, config: PredictorConfig
) -> tuple[float, PredictionFactor | None]:
    trend = a.trend
    if trend.direction is TrendDirection.STABLE or not a.points:
        return 1.0, None
    weeks_ahead = max(0.0, (target - a.points[-1].day).days / 7.0)
    lo, hi = config.trend_multiplier_bounds
    mult = clamp(1 + trend.rate / 100.0 * (weeks_ahead + 1) * trend.confidence, lo, hi)
    return mult, PredictionFactor(
        "trend", round(mult - 1, 2), f"Workload is {trend.direction.value} at {abs(trend.rate)}% per week"
    )


def _category_breakdown(a: _SeriesAnalysis, day_mult: float, config: PredictorConfig) -> list[CategoryPrediction]:
    cats = sorted({c for p in a.points for c in p.categories})
    out: list[CategoryPrediction] = []
    for cat in cats:
        counts = [p.categories.get(cat, 0) for p in a.points]
        overall = mean(counts)
        recent = mean(counts[-14:])
        if recent > overall * (1 + config.category_trend_delta):
            trend = TrendDirection.INCREASING
        elif recent < overall * (1 - config.category_trend_delta):
            trend = TrendDirection.DECREASING
        else:
            trend = TrendDirection.STABLE
        out.append(CategoryPrediction(cat, round(overall * day_mult, 2), trend))
    return out


def _predict(
    a: _SeriesAnalysis,
    target: date,
    include_categories: bool,
    config: PredictorConfig,
) -> WorkloadPrediction:
    if not a.points:
        return WorkloadPrediction(target, 0.0, 0.0, 0.0)

    day_mult, day_factor = _day_multiplier(a, target)
    season_mult, season_factor = _seasonal_multiplier(a, target)
    trend_mult, trend_factor = _trend_multiplier(a, target, config)
    multiplier = day_mult * season_mult * trend_mult
    factors = [f for f in (day_factor, season_factor, trend_factor) if f is not None]

    pattern_conf = mean(p.confidence for p in a.patterns) if a.patterns else 0.3
    sufficiency = min(1.0, len(a.points) / (2 * config.min_series_length))
    confidence = round(min(1.0, (pattern_conf + a.trend.confidence) / 2 * sufficiency), 2)

    return WorkloadPrediction(
        date=target,
        predicted_task_count=round(max(0.0, a.base_tasks * multiplier), 2),
        predicted_minutes=round(max(0.0, a.base_minutes * multiplier), 2),
        confidence=confidence,
        factors=factors,
        breakdown=_category_breakdown(a, day_mult, config) if include_categories else [],
    )


def predict_workload(
    series: Iterable[WorkloadDataPoint],
    target_date: date | datetime,
    include_categories: bool = False,
    config: PredictorConfig = DEFAULT_CONFIG,
) -> WorkloadPrediction:
    return _predict(_analyze(series, config), as_date(target_date), include_categories, config)


def predict_workload_range(
    series: Iterable[WorkloadDataPoint],
    start: date | datetime,
    end: date | datetime,
    include_categories: bool = True,
    config: PredictorConfig = DEFAULT_CONFIG,
) -> list[WorkloadPrediction]:
    """One prediction per day from start to end inclusive."""
    days = daterange(as_date(start), as_date(end))
    if not days:
        return []
    analysis = _analyze(series, config)
    return [_predict(analysis, d, include_categories, config) for d in days]


def predict_weekly_demand(
    series: Iterable[WorkloadDataPoint],
    week_start: date,
    config: PredictorConfig = DEFAULT_CONFIG,
) -> float:
    """Total predicted task count for the seven days starting at ``week_start``."""
    preds = predict_workload_range(series, week_start, week_start + timedelta(days=6), False, config)
    return round(sum(p.predicted_task_count for p in preds), 2)


# ---------------------------------------------------------------------------
# Anomalies and seasonality
# ---------------------------------------------------------------------------


def detect_anomalies(
    series: Iterable[WorkloadDataPoint],
    sensitivity: float | None = None,
    window: int | None = None,
    config: PredictorConfig = DEFAULT_CONFIG,
) -> list[Anomaly]:
    """Flag points that deviate from the trailing baseline of preceding points.

    The baseline excludes the point itself. Its spread has a floor so a
    perfectly flat history does not turn every tiny wobble into an outlier.
    """
    points = _ordered(series)
    sensitivity = config.anomaly_sensitivity if sensitivity is None else sensitivity
    window = window or config.anomaly_window
    out: list[Anomaly] = []

    for i, point in enumerate(points):
        baseline = [p.task_count for p in points[max(0, i - window) : i]]
        if len(baseline) < config.anomaly_min_baseline:
            continue
        expected = mean(baseline)
        spread = max(stdev(baseline), 0.1 * expected, 0.5)
        z = (point.task_count - expected) / spread
        if abs(z) <= sensitivity:
            continue

        kind = AnomalyType.SPIKE if z > 0 else AnomalyType.DROP
        causes: list[str] = []
        if point.is_holiday:
            causes.append("Holiday period")
        if point.day_of_week >= 5:
            causes.append("Weekend effect")
        if kind is AnomalyType.SPIKE:
            causes.append("Possible backlog or special event")
        else:
            causes.append("Possible reduced activity or absence")

        out.append(
            Anomaly(
                timestamp=point.timestamp,
                type=kind,
                severity=int(min(10, max(1, round(abs(z) / sensitivity * 2)))),
                expected_value=round(expected, 2),
                actual_value=float(point.task_count),
                z_score=round(z, 2),
                possible_causes=causes,
            )
        )

    if out:
        logger.debug("detected %d anomalies in %d points", len(out), len(points))
    return out


def build_seasonal_profile(series: Iterable[WorkloadDataPoint]) -> list[SeasonalProfile]:
    """Per calendar month (1-12): averages, peak days of month, category weights."""
    by_month: dict[int, list[WorkloadDataPoint]] = defaultdict(list)
    for p in series:
        by_month[p.timestamp.month].append(p)

    profiles: list[SeasonalProfile] = []
    for month in sorted(by_month):
        points = by_month[month]
        by_day: dict[int, list[float]] = defaultdict(list)
        for p in points:
            by_day[p.timestamp.day].append(p.task_count)
        day_avgs = {d: mean(v) for d, v in by_day.items()}
        threshold = mean(day_avgs.values()) * 1.2

        cat_totals: dict[str, int] = defaultdict(int)
        for p in points:
            for cat, n in p.categories.items():
                cat_totals[cat] += n
        total = sum(cat_totals.values())

        profiles.append(
            SeasonalProfile(
                month=month,
                average_task_count=round(mean(p.task_count for p in points), 2),
                average_minutes=round(mean(p.total_minutes for p in points), 2),
                peak_days=sorted(d for d, avg in day_avgs.items() if avg > threshold),
                category_weights={c: round(n / total, 4) for c, n in sorted(cat_totals.items())} if total else {},
            )
        )
    return profiles


def generate_proactive_distribution(
    series: Iterable[WorkloadDataPoint],
    member_availability: Mapping[str, Iterable[int]],
    start: date,
    lookahead_days: int = 7,
    config: PredictorConfig = DEFAULT_CONFIG,
) -> list[ProactiveDistribution]:
    """Preparation hints for upcoming days with a confident, non-trivial forecast.

    ``member_availability`` maps member id to the weekdays (Monday = 0) they
    are available.
    """
    availability = {mid: set(days) for mid, days in member_availability.items()}
    analysis = _analyze(series, config)
    out: list[ProactiveDistribution] = []

    for offset in range(lookahead_days):
        day = start + timedelta(days=offset)
        pred = _predict(analysis, day, True, config)
        if pred.confidence < config.proactive_min_confidence:
            continue
        if pred.predicted_task_count < config.proactive_min_tasks:
            continue
        available = sorted(mid for mid, days in availability.items() if day.weekday() in days)
        if not available:
            continue
        preps = [
            TaskPreparation(
                category=c.category,
                estimated_count=c.predicted_count,
                suggested_assignees=available,
                priority={TrendDirection.INCREASING: 8, TrendDirection.DECREASING: 4}.get(c.trend, 6),
            )
            for c in pred.breakdown
            if c.predicted_count > 0
        ]
        if preps:
            out.append(
                ProactiveDistribution(
                    suggested_date=day,
                    reason=f"Predicted {pred.predicted_task_count:g} tasks based on {WEEKDAY_NAMES[day.weekday()]} pattern",
                    preparations=preps,
                    confidence=pred.confidence,
                )
            )
    return out
