"""Acute:chronic workload ratio (ACWR).

ACWR = mean daily load over the last 7 calendar days divided by the mean
daily load over the last 28. Days without activities count as zero, as do
days before the first recorded activity, so a sudden block of training after
a quiet period shows up as a spike rather than as missing data.

Reference: Gabbett (2016), "The training-injury prevention paradox".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

import pandas as pd

from runmetrics.config import AcwrConfig, DEFAULT_CONFIG
from runmetrics.errors import QualityFlag
from runmetrics.models import DailyLoadAggregate
from runmetrics.quality import (
    CalculationMethod,
    MetricResult,
    bounded_confidence,
    insufficient_result,
    make_result,
)
from runmetrics.services.training_load import aggregates_until, daily_series

logger = logging.getLogger(__name__)


class LoadMetric(str, Enum):
    DISTANCE = "distance"
    TRIMP = "trimp"


class AcwrStatus(str, Enum):
    DETRAINING = "detraining"
    OPTIMAL = "optimal"
    CAUTION = "caution"
    HIGH_RISK = "high_risk"


class LoadTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


# Higher = more conservative when two metrics disagree.
STATUS_PRIORITY = {
    AcwrStatus.DETRAINING: 0,
    AcwrStatus.OPTIMAL: 1,
    AcwrStatus.CAUTION: 2,
    AcwrStatus.HIGH_RISK: 3,
}

_RECOMMENDATIONS = {
    AcwrStatus.DETRAINING: "Load has dropped well below your recent average. Build back gradually.",
    AcwrStatus.OPTIMAL: "Load is in the productive range. Keep progressing steadily.",
    AcwrStatus.CAUTION: "Load is rising quickly. Hold volume steady this week.",
    AcwrStatus.HIGH_RISK: "Load spike well above your chronic base. Reduce volume and intensity.",
}

_FIELDS = {
    LoadMetric.DISTANCE: "total_distance_m",
    LoadMetric.TRIMP: "total_load",
}


@dataclass(frozen=True)
class AcwrValue:
    acwr: float
    acute_load: float    # mean daily load, last 7 days
    chronic_load: float  # mean daily load, last 28 days
    status: AcwrStatus
    metric: LoadMetric
    history_days: int
    recommendation: str


@dataclass(frozen=True)
class AcwrTrendResult:
    trend: LoadTrend
    change_pct: float
    points: tuple[tuple[date, float], ...]


@dataclass(frozen=True)
class ComprehensiveAcwr:
    distance: AcwrValue
    trimp: AcwrValue
    overall_status: AcwrStatus
    recommendation: str


def classify_acwr(acwr: float, config: AcwrConfig = DEFAULT_CONFIG.acwr) -> AcwrStatus:
    if acwr < config.optimal_low:
        return AcwrStatus.DETRAINING
    if acwr <= config.optimal_high:
        return AcwrStatus.OPTIMAL
    if acwr <= config.caution_high:
        return AcwrStatus.CAUTION
    return AcwrStatus.HIGH_RISK


def _empty_value(metric: LoadMetric, days: int) -> AcwrValue:
    return AcwrValue(
        acwr=0.0, acute_load=0.0, chronic_load=0.0,
        status=AcwrStatus.DETRAINING, metric=metric, history_days=days,
        recommendation=_RECOMMENDATIONS[AcwrStatus.DETRAINING],
    )


def acwr_series(
    aggregates: list[DailyLoadAggregate],
    metric: LoadMetric = LoadMetric.TRIMP,
    as_of: date | None = None,
    config: AcwrConfig = DEFAULT_CONFIG.acwr,
) -> pd.Series:
    """Daily ACWR for every calendar day of the history (0 where chronic is 0)."""
    series = daily_series(aggregates, _FIELDS[metric], end=as_of)
    if series.empty:
        return series
    acute = series.rolling(config.acute_days, min_periods=1).sum() / config.acute_days
    chronic = series.rolling(config.chronic_days, min_periods=1).sum() / config.chronic_days
    ratio = (acute / chronic.where(chronic > 0)).fillna(0.0)
    return ratio


def compute_acwr(
    aggregates: list[DailyLoadAggregate],
    metric: LoadMetric = LoadMetric.TRIMP,
    as_of: date | None = None,
    config: AcwrConfig = DEFAULT_CONFIG.acwr,
) -> MetricResult[AcwrValue]:
    """ACWR as of `as_of` (default: last aggregate date)."""
    series = daily_series(aggregates, _FIELDS[metric], end=as_of)
    days = len(series)
    if days < config.min_history_days:
        return insufficient_result(
            _empty_value(metric, days),
            f"Only {days} day(s) of history; {config.min_history_days} required for ACWR",
            flag=QualityFlag.INSUFFICIENT_HISTORY,
        )

    acute = float(series.iloc[-config.acute_days:].sum()) / config.acute_days
    chronic = float(series.iloc[-config.chronic_days:].sum()) / config.chronic_days
    ratio = acute / chronic if chronic > 0 else 0.0
    status = classify_acwr(ratio, config)

    missing = []
    if days < config.chronic_days:
        missing.append(
            f"Chronic window covers {days} of {config.chronic_days} days; earlier days count as rest"
        )
    load_confidence = None
    if metric == LoadMetric.TRIMP:
        load_confidence = min(a.load_confidence for a in aggregates_until(aggregates, as_of))
    confidence = bounded_confidence(min(1.0, days / config.full_confidence_days), load_confidence)

    warnings = []
    if status == AcwrStatus.HIGH_RISK:
        warnings.append(f"ACWR {ratio:.2f} exceeds {config.caution_high}")

    value = AcwrValue(
        acwr=round(ratio, 2),
        acute_load=round(acute, 1),
        chronic_load=round(chronic, 1),
        status=status,
        metric=metric,
        history_days=days,
        recommendation=_RECOMMENDATIONS[status],
    )
    return make_result(value, confidence, CalculationMethod.ROLLING_ACWR, missing=missing, warnings=warnings)


def acwr_trend(
    aggregates: list[DailyLoadAggregate],
    metric: LoadMetric = LoadMetric.TRIMP,
    days: int = 28,
    as_of: date | None = None,
    config: AcwrConfig = DEFAULT_CONFIG.acwr,
) -> AcwrTrendResult:
    """Direction of ACWR over the last `days` days (first third vs last third)."""
    ratios = acwr_series(aggregates, metric, as_of, config)
    # the first days of a history have no acute window yet
    ratios = ratios.iloc[config.min_history_days - 1:].iloc[-days:]
    points = tuple((ts.date(), round(float(v), 2)) for ts, v in ratios.items())
    if len(points) < 3:
        return AcwrTrendResult(trend=LoadTrend.STABLE, change_pct=0.0, points=points)

    third = len(points) // 3
    first = sum(v for _, v in points[:third]) / third
    last = sum(v for _, v in points[-third:]) / third
    if first > 0:
        change = (last - first) / first
    else:
        change = 1.0 if last > 0 else 0.0

    if change > config.trend_change:
        trend = LoadTrend.INCREASING
    elif change < -config.trend_change:
        trend = LoadTrend.DECREASING
    else:
        trend = LoadTrend.STABLE
    return AcwrTrendResult(trend=trend, change_pct=round(change * 100, 1), points=points)


def comprehensive_acwr(
    aggregates: list[DailyLoadAggregate],
    as_of: date | None = None,
    config: AcwrConfig = DEFAULT_CONFIG.acwr,
) -> MetricResult[ComprehensiveAcwr]:
    """Distance and TRIMP ACWR together; the overall status is the more conservative one."""
    distance = compute_acwr(aggregates, LoadMetric.DISTANCE, as_of, config)
    trimp = compute_acwr(aggregates, LoadMetric.TRIMP, as_of, config)
    overall = max(distance.value.status, trimp.value.status, key=STATUS_PRIORITY.__getitem__)

    if distance.value.status != trimp.value.status:
        recommendation = (
            f"Distance ({distance.value.status.value}) and internal load "
            f"({trimp.value.status.value}) disagree. {_RECOMMENDATIONS[overall]}"
        )
    else:
        recommendation = _RECOMMENDATIONS[overall]

    value = ComprehensiveAcwr(
        distance=distance.value,
        trimp=trimp.value,
        overall_status=overall,
        recommendation=recommendation,
    )
    method = (
        CalculationMethod.INSUFFICIENT_DATA
        if distance.confidence == 0 and trimp.confidence == 0
        else CalculationMethod.ROLLING_ACWR
    )
    return make_result(
        value,
        bounded_confidence(1.0, distance.confidence, trimp.confidence),
        method,
        flags=[*distance.flags, *trimp.flags],
        missing=[*distance.data_quality.missing_data_impact, *trimp.data_quality.missing_data_impact],
        warnings=[*distance.warnings, *trimp.warnings],
    )
