"""Aerobic efficiency: pace / heart-rate decoupling on long runs.

Only runs of 60 minutes or more are analysed. The run is cut into two halves
by moving time; with heart rate the decoupling is the relative rise in
cardiac cost (heart beats per km = HR x pace) from the first half to the
second, without it the relative slowdown in pace.

  < 5%  excellent
  < 10% good
  < 15% fair
  else  poor

Splits give real halves. Without splits both halves share the average pace
and the heart-rate drift is estimated from max - avg HR, which is reported
as an estimate with lower confidence.

Reference: Friel, "The Training Bible" (Pa:HR decoupling).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from statistics import mean, pstdev

from runmetrics.config import DEFAULT_CONFIG, DecouplingConfig
from runmetrics.errors import QualityFlag
from runmetrics.models import ActivityRecord, PhysiologyProfile, WeatherSnapshot
from runmetrics.quality import (
    CalculationMethod,
    MetricResult,
    bounded_confidence,
    clamp,
    insufficient_result,
    make_result,
)

logger = logging.getLogger(__name__)


class AerobicEfficiency(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class DecouplingTrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass(frozen=True)
class HalfSummary:
    distance_m: float
    moving_time_s: float
    pace_s_per_km: float
    avg_hr: float | None


@dataclass(frozen=True)
class DecouplingAnalysis:
    activity_id: str
    day: date
    decoupling_pct: float        # after environmental adjustment
    raw_decoupling_pct: float
    environmental_adjustment: float
    environmentally_adjusted: bool
    efficiency: AerobicEfficiency
    first_half: HalfSummary
    second_half: HalfSummary
    uses_heart_rate: bool
    from_splits: bool
    duration_min: float
    recommendations: tuple[str, ...]


@dataclass(frozen=True)
class EnvironmentalImpact:
    hot: float | None      # average decoupling above 25 C
    optimal: float | None  # 15-25 C
    cool: float | None     # below 15 C


@dataclass(frozen=True)
class DecouplingTrend:
    direction: DecouplingTrendDirection
    average: float
    best: float
    worst: float
    consistency_score: float  # 0-100, higher = steadier
    run_count: int
    environmental_impact: EnvironmentalImpact
    recommendations: tuple[str, ...]


def classify_efficiency(
    decoupling_pct: float,
    config: DecouplingConfig = DEFAULT_CONFIG.decoupling,
) -> AerobicEfficiency:
    excellent, good, fair = config.efficiency_bounds
    if decoupling_pct < excellent:
        return AerobicEfficiency.EXCELLENT
    if decoupling_pct < good:
        return AerobicEfficiency.GOOD
    if decoupling_pct < fair:
        return AerobicEfficiency.FAIR
    return AerobicEfficiency.POOR


def weather_drift(weather: WeatherSnapshot, config: DecouplingConfig = DEFAULT_CONFIG.decoupling) -> float:
    """Decoupling points expected from the conditions alone (negative when cool)."""
    drift = 0.0
    if weather.temp_c is not None:
        if weather.temp_c > config.hot_above_c:
            drift += (weather.temp_c - config.hot_above_c) * config.hot_per_degree
        elif weather.temp_c < config.cool_below_c:
            drift -= (config.cool_below_c - weather.temp_c) * config.cool_per_degree
    if weather.humidity_pct is not None and weather.humidity_pct > config.humid_above_pct:
        drift += (min(weather.humidity_pct, 100.0) - config.humid_above_pct) * config.humid_per_pct
    if weather.wind_kmh is not None and weather.wind_kmh > config.windy_above_kmh:
        drift += (weather.wind_kmh - config.windy_above_kmh) * config.windy_per_kmh
    return drift


# ---------------------------------------------------------------------------
# Halves
# ---------------------------------------------------------------------------

def _half(distance: float, time: float, hr: float | None) -> HalfSummary:
    pace = time / (distance / 1000.0) if distance > 0 else 0.0
    return HalfSummary(
        distance_m=round(distance, 1),
        moving_time_s=round(time, 1),
        pace_s_per_km=round(pace, 1),
        avg_hr=round(hr, 1) if hr is not None else None,
    )


def halves_from_splits(activity: ActivityRecord) -> tuple[HalfSummary, HalfSummary] | None:
    """Cut the splits at half the moving time.

    The split straddling the midpoint is apportioned by time. A half only
    gets a heart rate when every second of it comes from splits with HR.
    """
    splits = [s for s in activity.splits if s.distance_m > 0 and s.moving_time_s > 0]
    if len(splits) < 2:
        return None

    midpoint = sum(s.moving_time_s for s in splits) / 2
    # [distance, time, hr x time, time covered by hr]
    sums = [[0.0, 0.0, 0.0, 0.0], [0.0, 0.0, 0.0, 0.0]]
    elapsed = 0.0
    for split in splits:
        first_share = clamp((midpoint - elapsed) / split.moving_time_s, 0.0, 1.0)
        for half, share in ((0, first_share), (1, 1.0 - first_share)):
            if share <= 0:
                continue
            t = split.moving_time_s * share
            sums[half][0] += split.distance_m * share
            sums[half][1] += t
            if split.avg_hr:
                sums[half][2] += split.avg_hr * t
                sums[half][3] += t
        elapsed += split.moving_time_s

    halves = []
    for distance, time, hr_time, covered in sums:
        hr = hr_time / covered if covered and abs(covered - time) < 1e-6 else None
        halves.append(_half(distance, time, hr))
    return halves[0], halves[1]


def estimated_halves(
    activity: ActivityRecord,
    config: DecouplingConfig = DEFAULT_CONFIG.decoupling,
) -> tuple[HalfSummary, HalfSummary]:
    """Even halves at the average pace; HR drift taken from max - avg HR."""
    distance = activity.distance_m / 2
    time = activity.moving_time_s / 2
    first_hr = second_hr = activity.avg_hr
    if activity.avg_hr and activity.max_hr:
        drift = clamp(activity.max_hr - activity.avg_hr, 0.0, config.max_estimated_drift_bpm)
        first_hr = activity.avg_hr - drift / 2
        second_hr = activity.avg_hr + drift / 2
    return _half(distance, time, first_hr), _half(distance, time, second_hr)


def _hr_usable(activity: ActivityRecord, profile: PhysiologyProfile | None) -> bool:
    if not activity.avg_hr:
        return False
    if profile is None or not profile.has_heart_rate_bounds:
        return True
    return profile.resting_hr <= activity.avg_hr <= profile.max_hr


# ---------------------------------------------------------------------------
# Single run
# ---------------------------------------------------------------------------

def decoupling_confidence(
    uses_heart_rate: bool,
    from_splits: bool,
    duration_min: float,
    config: DecouplingConfig = DEFAULT_CONFIG.decoupling,
) -> float:
    confidence = config.base_confidence
    if uses_heart_rate:
        confidence += config.hr_bonus
    if from_splits:
        confidence += config.splits_bonus
    if duration_min > 120:
        confidence += config.very_long_bonus
    elif duration_min > 90:
        confidence += config.long_bonus
    return clamp(confidence, 0.1, 1.0)


def _run_recommendations(
    decoupling: float,
    efficiency: AerobicEfficiency,
    uses_heart_rate: bool,
    adjusted: bool,
) -> list[str]:
    recs = {
        AerobicEfficiency.EXCELLENT: ["Excellent pacing; aerobic efficiency held for the whole run"],
        AerobicEfficiency.GOOD: ["Good aerobic efficiency; only minor drift in the second half"],
        AerobicEfficiency.FAIR: [
            "Moderate decoupling; start long runs more conservatively",
            "Practise negative splits and heart-rate discipline",
        ],
        AerobicEfficiency.POOR: [
            "Significant decoupling; the run probably started too fast",
            "Build aerobic base with more easy running",
        ],
    }[efficiency]
    if decoupling > 15:
        recs.append("Start 10-15 s/km slower on the next long run")
    elif decoupling > 10:
        recs.append("Start 5-10 s/km slower on the next long run")
    elif decoupling < 2:
        recs.append("Pacing had room to spare; a slightly faster start is possible")
    if not uses_heart_rate:
        recs.append("Record heart rate for a more accurate efficiency reading")
    if adjusted:
        recs.append("Weather conditions were factored into this analysis")
    return recs


def analyze_decoupling(
    activity: ActivityRecord,
    profile: PhysiologyProfile | None = None,
    config: DecouplingConfig = DEFAULT_CONFIG.decoupling,
) -> MetricResult[DecouplingAnalysis | None]:
    """First-half vs second-half efficiency for one long run."""
    duration = activity.duration_min
    if duration < config.min_duration_min:
        return insufficient_result(
            None,
            f"Run lasted {duration:.0f} min; decoupling needs {config.min_duration_min:g} min",
            method=CalculationMethod.NOT_APPLICABLE,
        )
    if activity.pace_s_per_km is None:
        return insufficient_result(None, "Run has no distance; pace halves unavailable")

    flags: list[QualityFlag] = []
    missing: list[str] = []
    warnings: list[str] = []

    halves = halves_from_splits(activity)
    from_splits = halves is not None
    if halves is None:
        halves = estimated_halves(activity, config)
        flags.append(QualityFlag.ESTIMATED)
        missing.append("No splits; halves estimated from whole-run averages")
    first, second = halves

    hr_usable = _hr_usable(activity, profile)
    if activity.avg_hr and not hr_usable:
        flags.append(QualityFlag.INVALID_PHYSIOLOGY)
        warnings.append(f"Average heart rate {activity.avg_hr:g} outside the profile range; using pace only")

    if hr_usable and (first.avg_hr is None or second.avg_hr is None):
        # splits without heart rate: fall back to whole-run drift estimate
        est_first, est_second = estimated_halves(activity, config)
        first = HalfSummary(first.distance_m, first.moving_time_s, first.pace_s_per_km, est_first.avg_hr)
        second = HalfSummary(second.distance_m, second.moving_time_s, second.pace_s_per_km, est_second.avg_hr)
        if QualityFlag.ESTIMATED not in flags:
            flags.append(QualityFlag.ESTIMATED)
            missing.append("Splits lack heart rate; drift estimated from max - avg HR")

    uses_hr = hr_usable and bool(first.avg_hr) and bool(second.avg_hr)
    if uses_hr:
        method = CalculationMethod.PACE_HR_DECOUPLING
        first_cost = first.avg_hr * first.pace_s_per_km
        second_cost = second.avg_hr * second.pace_s_per_km
        raw = (second_cost - first_cost) / first_cost * 100
    else:
        method = CalculationMethod.PACE_ONLY_DECOUPLING
        if not activity.avg_hr:
            missing.append("No heart rate data; decoupling from pace alone")
        raw = (second.pace_s_per_km - first.pace_s_per_km) / first.pace_s_per_km * 100

    weather = activity.weather
    adjusted = weather is not None and not weather.is_empty
    env_adjustment = weather_drift(weather, config) if adjusted else 0.0
    if not adjusted:
        missing.append("No weather data; decoupling not adjusted for conditions")
    decoupling = raw - env_adjustment
    efficiency = classify_efficiency(decoupling, config)

    confidence = decoupling_confidence(uses_hr, from_splits, duration, config)
    if not from_splits:
        # whole-run estimate carries much less information than real halves
        confidence = min(confidence, config.base_confidence + (config.hr_bonus if uses_hr else 0.0) / 2)

    logger.debug(
        "decoupling analysed",
        extra={"ctx_activity_id": activity.id, "ctx_decoupling": round(decoupling, 1), "ctx_method": method.value},
    )
    analysis = DecouplingAnalysis(
        activity_id=activity.id,
        day=activity.activity_date,
        decoupling_pct=round(decoupling, 1),
        raw_decoupling_pct=round(raw, 1),
        environmental_adjustment=round(env_adjustment, 1),
        environmentally_adjusted=adjusted,
        efficiency=efficiency,
        first_half=first,
        second_half=second,
        uses_heart_rate=uses_hr,
        from_splits=from_splits,
        duration_min=round(duration, 1),
        recommendations=tuple(_run_recommendations(decoupling, efficiency, uses_hr, adjusted)),
    )
    return make_result(analysis, confidence, method, flags, missing, warnings)


# ---------------------------------------------------------------------------
# Trend across long runs
# ---------------------------------------------------------------------------

def consistency_score(values: list[float]) -> float:
    """100 for identical decoupling, 0 once the spread reaches 10 points."""
    if len(values) < 2:
        return 100.0
    return max(0.0, 100.0 - pstdev(values) / 10.0 * 100.0)


def _trend_direction(values: list[float], config: DecouplingConfig) -> DecouplingTrendDirection:
    third = len(values) // 3
    if third == 0:
        return DecouplingTrendDirection.STABLE
    improvement = mean(values[:third]) - mean(values[-third:])  # lower decoupling is better
    if improvement > config.trend_change:
        return DecouplingTrendDirection.IMPROVING
    if improvement < -config.trend_change:
        return DecouplingTrendDirection.DECLINING
    return DecouplingTrendDirection.STABLE


def _impact(analyses: list[tuple[ActivityRecord, DecouplingAnalysis]], config: DecouplingConfig) -> EnvironmentalImpact:
    hot, optimal, cool = [], [], []
    for activity, analysis in analyses:
        temp = activity.weather.temp_c if activity.weather else None
        if temp is None:
            continue
        if temp > config.hot_above_c:
            hot.append(analysis.decoupling_pct)
        elif temp < config.cool_below_c:
            cool.append(analysis.decoupling_pct)
        else:
            optimal.append(analysis.decoupling_pct)

    def avg(values: list[float]) -> float | None:
        return round(mean(values), 1) if values else None

    return EnvironmentalImpact(hot=avg(hot), optimal=avg(optimal), cool=avg(cool))


def _trend_recommendations(
    direction: DecouplingTrendDirection,
    average: float,
    consistency: float,
    impact: EnvironmentalImpact,
) -> list[str]:
    if direction == DecouplingTrendDirection.IMPROVING:
        recs = ["Aerobic efficiency is improving; keep the current approach"]
    elif direction == DecouplingTrendDirection.DECLINING:
        recs = [
            "Decoupling is getting worse; review pacing and training load",
            "Add aerobic base work and start long runs more conservatively",
        ]
    else:
        recs = ["Decoupling is stable across recent long runs"]

    if average > 12:
        recs.append("Practise negative-split long runs to improve efficiency")
    elif average < 6:
        recs.append("Efficiency is strong; long runs can carry a little more pace")
    if consistency < 60:
        recs.append("Pacing varies a lot between long runs; pace by heart rate")
    elif consistency > 85:
        recs.append("Very consistent long-run pacing")
    if impact.hot is not None and impact.optimal is not None and impact.hot > impact.optimal + 3:
        recs.append("Heat costs you noticeably; slow down on hot days")
    return recs


def decoupling_trend(
    activities: list[ActivityRecord],
    profile: PhysiologyProfile | None = None,
    days: int | None = None,
    as_of: date | None = None,
    config: DecouplingConfig = DEFAULT_CONFIG.decoupling,
) -> MetricResult[DecouplingTrend | None]:
    """Decoupling across the long runs of the last `days` days (default 90)."""
    days = days or config.trend_window_days
    if not activities:
        return insufficient_result(None, "No activities recorded")

    as_of = as_of or max(a.activity_date for a in activities)
    cutoff = as_of - timedelta(days=days)
    long_runs = sorted(
        (
            a for a in activities
            if cutoff <= a.activity_date <= as_of and a.duration_min >= config.min_duration_min
        ),
        key=lambda a: a.timestamp,
    )

    analysed: list[tuple[ActivityRecord, DecouplingAnalysis]] = []
    confidences: list[float] = []
    for run in long_runs:
        result = analyze_decoupling(run, profile, config)
        if result.value is not None:
            analysed.append((run, result.value))
            confidences.append(result.confidence)

    if len(analysed) < config.trend_min_runs:
        return insufficient_result(
            None,
            f"{len(analysed)} long run(s) in the last {days} days; {config.trend_min_runs} required",
        )

    values = [a.decoupling_pct for _, a in analysed]
    direction = _trend_direction(values, config)
    average = mean(values)
    consistency = consistency_score(values)
    impact = _impact(analysed, config)
    trend = DecouplingTrend(
        direction=direction,
        average=round(average, 1),
        best=round(min(values), 1),
        worst=round(max(values), 1),
        consistency_score=round(consistency),
        run_count=len(values),
        environmental_impact=impact,
        recommendations=tuple(_trend_recommendations(direction, average, consistency, impact)),
    )
    confidence = bounded_confidence(min(1.0, len(values) / 6), *confidences)
    missing = []
    if len(values) < 6:
        missing.append(f"Trend based on {len(values)} long runs")
    return make_result(trend, confidence, CalculationMethod.DECOUPLING_TREND, missing=missing)
