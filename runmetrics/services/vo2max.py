"""VO2max estimation from activity summaries.

Two independent methods, chosen by data availability and never averaged:

- heart rate: 15.3 x (max HR / resting HR), scaled by the effort of the run
- pace: threshold table from pace per km, adjusted for distance

A steady-state heuristic and a plausibility check attenuate confidence but
never discard an estimate. Rolling values smooth the qualifying estimates of
the trailing 30 days with an EWMA.

Reference: Uth et al. (2004) HRmax/HRrest ratio method.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from statistics import linear_regression, mean, pstdev

from runmetrics.config import DEFAULT_CONFIG, Vo2maxConfig
from runmetrics.errors import InvalidPhysiology, QualityFlag
from runmetrics.models import ActivityRecord, PhysiologyProfile
from runmetrics.quality import (
    CalculationMethod,
    MetricResult,
    bounded_confidence,
    clamp,
    insufficient_result,
    make_result,
)
from runmetrics.services.ewma import ewma

logger = logging.getLogger(__name__)


class FitnessLevel(str, Enum):
    SUPERIOR = "superior"
    EXCELLENT = "excellent"
    VERY_GOOD = "very_good"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class Vo2maxTrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass(frozen=True)
class SteadyState:
    is_steady: bool
    confidence: float
    reasons: tuple[str, ...]


@dataclass(frozen=True)
class QualityCheck:
    is_accurate: bool
    confidence: float
    flags: tuple[QualityFlag, ...]
    warnings: tuple[str, ...]
    notes: tuple[str, ...]


@dataclass(frozen=True)
class Vo2maxEstimate:
    activity_id: str
    day: date
    vo2max: float                # ml/kg/min
    fitness_level: FitnessLevel
    is_steady_state: bool
    steady_state_confidence: float
    effort_ratio: float | None   # HR reserve fraction, heart-rate method only
    quality_confidence: float
    is_accurate: bool


@dataclass(frozen=True)
class RollingVo2max:
    day: date
    activity_id: str
    vo2max: float                # smoothed value
    estimate_count: int
    trend: Vo2maxTrendDirection  # versus the previous rolling point
    min_confidence: float        # lowest confidence among the smoothed estimates


@dataclass(frozen=True)
class Vo2maxTrend:
    direction: Vo2maxTrendDirection
    change_per_month: float
    current: float | None
    points: tuple[RollingVo2max, ...]


def fitness_level(vo2max: float, config: Vo2maxConfig = DEFAULT_CONFIG.vo2max) -> FitnessLevel:
    for lower, level in config.fitness_levels:
        if vo2max >= lower:
            return FitnessLevel(level)
    return FitnessLevel.POOR


# ---------------------------------------------------------------------------
# Steady state and plausibility
# ---------------------------------------------------------------------------

def detect_steady_state(activity: ActivityRecord, config: Vo2maxConfig = DEFAULT_CONFIG.vo2max) -> SteadyState:
    """Heuristic: was the run performed at a roughly constant effort?"""
    confidence = 0.5
    reasons: list[str] = []

    if activity.duration_min < 10:
        confidence -= 0.3
        reasons.append("Too short for steady-state detection")
    elif activity.duration_min >= 20:
        confidence += 0.2

    if activity.avg_hr and activity.max_hr:
        hr_range = activity.max_hr - activity.avg_hr
        expected = activity.avg_hr * 0.15
        if hr_range < expected * 0.5:
            confidence += 0.2
            reasons.append("Low heart rate variability")
        elif hr_range > expected * 2:
            confidence -= 0.3
            reasons.append("High heart rate variability suggests a varied effort")

    split_paces = [s.moving_time_s / (s.distance_m / 1000) for s in activity.splits
                   if s.distance_m > 0 and s.moving_time_s > 0]
    if len(split_paces) >= 2 and pstdev(split_paces) / mean(split_paces) < 0.05:
        confidence += 0.1
        reasons.append("Even pacing across splits")

    per_km = activity.elevation_per_km
    if activity.elevation_gain_m is not None and activity.distance_m > 0:
        if per_km > 50:
            confidence -= 0.2
            reasons.append("Hilly route")
        elif per_km < 20:
            confidence += 0.1

    confidence = clamp(confidence, 0.0, 1.0)
    return SteadyState(
        is_steady=confidence > config.steady_threshold,
        confidence=round(confidence, 3),
        reasons=tuple(reasons),
    )


def check_vo2max_quality(
    vo2max: float,
    activity: ActivityRecord,
    profile: PhysiologyProfile | None,
    steady: SteadyState,
    config: Vo2maxConfig = DEFAULT_CONFIG.vo2max,
) -> QualityCheck:
    """Flag implausible or unreliable estimates. Never rejects the value."""
    confidence = 0.8
    flags: list[QualityFlag] = []
    warnings: list[str] = []
    notes: list[str] = []

    if vo2max > config.plausible_high:
        confidence -= 0.3
        flags.append(QualityFlag.IMPLAUSIBLE_ESTIMATE)
        warnings.append(f"VO2max {vo2max:.1f} is above {config.plausible_high:g} ml/kg/min")
    elif vo2max < config.plausible_low:
        confidence -= 0.2
        flags.append(QualityFlag.IMPLAUSIBLE_ESTIMATE)
        warnings.append(f"VO2max {vo2max:.1f} is below {config.plausible_low:g} ml/kg/min")

    if not steady.is_steady:
        confidence -= 0.4
        warnings.append("Run does not look like a steady-state effort")

    has_bounds = profile is not None and profile.has_heart_rate_bounds
    if not activity.avg_hr or not has_bounds:
        confidence -= 0.2
        notes.append("No usable heart rate; estimate based on pace")
    else:
        reserve = profile.max_hr - profile.resting_hr
        if reserve < 100 or reserve > 200:
            confidence -= 0.2
            flags.append(QualityFlag.INVALID_PHYSIOLOGY)
            warnings.append(f"Unusual heart rate reserve ({reserve:g} bpm); check profile values")
        if reserve > 0:
            intensity = (activity.avg_hr - profile.resting_hr) / reserve
            if intensity > 0.9:
                confidence -= 0.1
                warnings.append("Near-maximal heart rate may overestimate VO2max")
            elif intensity < 0.3:
                notes.append("Very easy effort may underestimate VO2max")

    if activity.duration_min < 10:
        confidence -= 0.3
        warnings.append("Run too short for a reliable estimate")

    weather = activity.weather
    if weather is not None and weather.temp_c is not None and (weather.temp_c > 25 or weather.temp_c < 5):
        notes.append("Temperature may affect the estimate")

    if activity.elevation_per_km > 50:
        confidence -= 0.1
        notes.append("Hilly route may inflate the estimate")

    confidence = round(clamp(confidence, 0.1, 1.0), 3)
    return QualityCheck(
        is_accurate=confidence >= config.qualifying_confidence,
        confidence=confidence,
        flags=tuple(flags),
        warnings=tuple(warnings),
        notes=tuple(notes),
    )


def base_confidence(activity: ActivityRecord, method: CalculationMethod, with_profile: bool) -> float:
    if method == CalculationMethod.VO2MAX_HEART_RATE:
        confidence = 0.8 + (0.1 if with_profile else 0.0)
    else:
        confidence = 0.6
    if activity.distance_km >= 5:
        confidence += 0.1
    elif activity.distance_km < 2:
        confidence -= 0.2
    if activity.moving_time_s > 1200:
        confidence += 0.05
    return clamp(confidence, 0.1, 0.95)


# ---------------------------------------------------------------------------
# Estimators
# ---------------------------------------------------------------------------

def vo2max_from_heart_rate(
    activity: ActivityRecord,
    profile: PhysiologyProfile,
    steady: SteadyState,
    config: Vo2maxConfig = DEFAULT_CONFIG.vo2max,
) -> tuple[float, float]:
    """(VO2max, effort ratio). Raises InvalidPhysiology for unusable HR values."""
    effort = profile.reserve_fraction(activity.avg_hr)
    if profile.resting_hr <= 0:
        raise InvalidPhysiology("resting heart rate must be positive")
    base = config.hr_coefficient * profile.max_hr / profile.resting_hr
    steady_factor = config.hr_steady_floor + (1 - config.hr_steady_floor) * steady.confidence
    return base * (config.effort_base + config.effort_weight * effort) * steady_factor, effort


def vo2max_from_pace(
    activity: ActivityRecord,
    steady: SteadyState,
    config: Vo2maxConfig = DEFAULT_CONFIG.vo2max,
) -> float:
    pace = activity.pace_s_per_km
    vo2max = config.slowest_vo2max
    for upper, value in config.pace_table:
        if pace < upper:
            vo2max = value
            break
    for min_distance, bonus in config.distance_bonus:
        if activity.distance_m > min_distance:
            vo2max += bonus
            break
    else:
        if activity.distance_m < config.short_distance_m:
            vo2max -= config.short_distance_penalty
    steady_factor = config.pace_steady_floor + (1 - config.pace_steady_floor) * steady.confidence
    return vo2max * steady_factor


def _empty_estimate(activity: ActivityRecord) -> Vo2maxEstimate:
    return Vo2maxEstimate(
        activity_id=activity.id,
        day=activity.activity_date,
        vo2max=0.0,
        fitness_level=FitnessLevel.POOR,
        is_steady_state=False,
        steady_state_confidence=0.0,
        effort_ratio=None,
        quality_confidence=0.0,
        is_accurate=False,
    )


def estimate_vo2max(
    activity: ActivityRecord,
    profile: PhysiologyProfile | None = None,
    config: Vo2maxConfig = DEFAULT_CONFIG.vo2max,
) -> MetricResult[Vo2maxEstimate]:
    """Estimate VO2max for one activity, heart-rate method first."""
    steady = detect_steady_state(activity, config)
    flags: list[QualityFlag] = []
    missing: list[str] = []
    warnings: list[str] = []
    value = None
    effort = None
    method = CalculationMethod.VO2MAX_HEART_RATE

    if activity.avg_hr and profile is not None and profile.has_heart_rate_bounds:
        try:
            value, effort = vo2max_from_heart_rate(activity, profile, steady, config)
        except InvalidPhysiology as exc:
            flags.append(exc.flag)
            warnings.append(str(exc))
    elif not activity.avg_hr:
        missing.append("Heart rate data would improve accuracy")
    else:
        missing.append("Resting and max heart rate needed for the heart-rate method")

    if value is None:
        if activity.pace_s_per_km is None or activity.distance_m < config.min_distance_m:
            return insufficient_result(
                _empty_estimate(activity),
                f"Need heart rate or at least {config.min_distance_m:g} m with a recorded time",
                warnings=warnings,
            )
        method = CalculationMethod.VO2MAX_PACE
        value = vo2max_from_pace(activity, steady, config)
        flags.append(QualityFlag.ESTIMATED)
        logger.debug("vo2max from pace", extra={"ctx_activity_id": activity.id})

    if not steady.is_steady:
        logger.debug("non-steady vo2max estimate", extra={"ctx_activity_id": activity.id})

    quality = check_vo2max_quality(value, activity, profile, steady, config)
    with_profile = profile is not None and profile.has_heart_rate_bounds
    confidence = min(base_confidence(activity, method, with_profile) * steady.confidence, quality.confidence)

    estimate = Vo2maxEstimate(
        activity_id=activity.id,
        day=activity.activity_date,
        vo2max=round(value, 1),
        fitness_level=fitness_level(value, config),
        is_steady_state=steady.is_steady,
        steady_state_confidence=steady.confidence,
        effort_ratio=round(effort, 3) if effort is not None else None,
        quality_confidence=quality.confidence,
        is_accurate=quality.is_accurate,
    )
    return make_result(
        estimate,
        confidence,
        method,
        flags=[*flags, *quality.flags],
        missing=[*missing, *quality.notes],
        warnings=[*warnings, *quality.warnings],
    )


# ---------------------------------------------------------------------------
# Rolling values and trend
# ---------------------------------------------------------------------------

def _qualifies(result: MetricResult[Vo2maxEstimate]) -> bool:
    return result.value.vo2max > 0 and result.value.is_accurate


def rolling_vo2max(
    activities: list[ActivityRecord],
    profile: PhysiologyProfile | None = None,
    config: Vo2maxConfig = DEFAULT_CONFIG.vo2max,
) -> list[RollingVo2max]:
    """Smoothed VO2max at each activity over the trailing 30-day window.

    Activities whose window holds fewer than two qualifying estimates get
    no point.
    """
    ordered = sorted(activities, key=lambda a: a.timestamp)
    estimates = [estimate_vo2max(a, profile, config) for a in ordered]

    points: list[RollingVo2max] = []
    start = 0
    for i, activity in enumerate(ordered):
        window_start = activity.activity_date - timedelta(days=config.rolling_window_days)
        while ordered[start].activity_date < window_start:
            start += 1
        qualifying = [e for e in estimates[start:i + 1] if _qualifies(e)]
        window = [e.value.vo2max for e in qualifying]
        if len(window) < config.rolling_min_estimates:
            continue

        value = round(ewma(window, config.rolling_span), 1)
        trend = Vo2maxTrendDirection.STABLE
        if points:
            change = value - points[-1].vo2max
            if change > config.point_trend_change:
                trend = Vo2maxTrendDirection.IMPROVING
            elif change < -config.point_trend_change:
                trend = Vo2maxTrendDirection.DECLINING
        points.append(RollingVo2max(
            day=activity.activity_date,
            activity_id=activity.id,
            vo2max=value,
            estimate_count=len(window),
            trend=trend,
            min_confidence=min(e.confidence for e in qualifying),
        ))
    return points


def vo2max_trend(
    activities: list[ActivityRecord],
    profile: PhysiologyProfile | None = None,
    days: int = 90,
    as_of: date | None = None,
    config: Vo2maxConfig = DEFAULT_CONFIG.vo2max,
) -> MetricResult[Vo2maxTrend]:
    """Direction of the rolling VO2max over the last `days` days.

    The regression slope (per day) of the rolling values is scaled to a
    month and compared against the +/-0.3 ml/kg/min threshold.
    """
    if not activities:
        empty = Vo2maxTrend(Vo2maxTrendDirection.STABLE, 0.0, None, ())
        return insufficient_result(empty, "No activities recorded")

    as_of = as_of or max(a.activity_date for a in activities)
    history = [a for a in activities if a.activity_date <= as_of]
    cutoff = as_of - timedelta(days=days)
    points = [p for p in rolling_vo2max(history, profile, config) if p.day >= cutoff]
    current = points[-1].vo2max if points else None

    if len(points) < 2:
        empty = Vo2maxTrend(Vo2maxTrendDirection.STABLE, 0.0, current, tuple(points))
        return insufficient_result(empty, "Fewer than two rolling VO2max values in the period")

    offsets = [(p.day - points[0].day).days for p in points]
    if offsets[-1] == 0:
        slope = 0.0
    else:
        slope = linear_regression(offsets, [p.vo2max for p in points]).slope
    per_month = slope * 30
    if per_month > config.trend_per_month:
        direction = Vo2maxTrendDirection.IMPROVING
    elif per_month < -config.trend_per_month:
        direction = Vo2maxTrendDirection.DECLINING
    else:
        direction = Vo2maxTrendDirection.STABLE

    confidence = bounded_confidence(min(1.0, len(points) / 10), *(p.min_confidence for p in points))
    missing = []
    if len(points) < 10:
        missing.append(f"Trend based on {len(points)} rolling values")
    trend = Vo2maxTrend(
        direction=direction,
        change_per_month=round(per_month, 2),
        current=current,
        points=tuple(points),
    )
    return make_result(trend, confidence, CalculationMethod.VO2MAX_ROLLING, missing=missing)


def current_vo2max(
    activities: list[ActivityRecord],
    profile: PhysiologyProfile | None = None,
    config: Vo2maxConfig = DEFAULT_CONFIG.vo2max,
) -> MetricResult[Vo2maxEstimate | None]:
    """Most recent steady, qualifying estimate among the last 10 activities."""
    ordered = sorted(activities, key=lambda a: a.timestamp)
    for activity in reversed(ordered[-config.current_lookback:]):
        result = estimate_vo2max(activity, profile, config)
        if _qualifies(result) and result.value.is_steady_state:
            return result
    return insufficient_result(None, f"No steady, reliable estimate in the last {config.current_lookback} activities")
