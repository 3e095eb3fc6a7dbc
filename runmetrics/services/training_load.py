"""Internal training load: TRIMP per activity and daily aggregation.

Heart-rate TRIMP uses Banister's exponential weighting of heart-rate reserve.
Without usable heart rate the intensity is estimated from pace (faster pace →
higher perceived exertion) and pushed through the same formula so measured
and estimated loads stay on one scale.

Reference: Banister (1991); Morton, Fitz-Clarke & Banister (1990).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable

import pandas as pd

from runmetrics.config import DEFAULT_CONFIG, TrimpConfig
from runmetrics.errors import InvalidPhysiology, QualityFlag
from runmetrics.models import ActivityRecord, DailyLoadAggregate, PhysiologyProfile, Sex
from runmetrics.quality import CalculationMethod, MetricResult, clamp, insufficient_result, make_result

logger = logging.getLogger(__name__)


class LoadSource(str, Enum):
    MEASURED = "measured"
    ESTIMATED = "estimated"


class TrimpIntensity(str, Enum):
    VERY_EASY = "very_easy"
    EASY = "easy"
    MODERATE = "moderate"
    HARD = "hard"
    VERY_HARD = "very_hard"


@dataclass(frozen=True)
class SessionLoad:
    """Internal load of a single activity."""
    activity_id: str
    day: date
    duration_min: float
    load: float                  # TRIMP
    source: LoadSource
    intensity_fraction: float    # HR reserve fraction, measured or estimated
    estimated_rpe: float | None  # only set on the pace path


def weighting_factor(sex: Sex | None, config: TrimpConfig = DEFAULT_CONFIG.trimp) -> float:
    if sex == Sex.MALE:
        return config.male_weighting_factor
    if sex == Sex.FEMALE:
        return config.female_weighting_factor
    return config.weighting_factor


def banister_impulse(duration_min: float, fraction: float, k: float, scale: float = 0.64) -> float:
    """duration * HRR * scale * e^(k * HRR)"""
    fraction = clamp(fraction, 0.0, 1.0)
    return duration_min * fraction * scale * math.exp(k * fraction)


def estimate_rpe_from_pace(
    pace_s_per_km: float,
    duration_min: float,
    config: TrimpConfig = DEFAULT_CONFIG.trimp,
) -> float:
    """Map pace to perceived exertion (1-10), nudged up for longer efforts."""
    rpe = config.slowest_rpe
    for upper, band_rpe in config.pace_rpe_bands:
        if pace_s_per_km < upper:
            rpe = band_rpe
            break
    duration_factor = min(
        config.max_duration_factor,
        1 + (duration_min - config.reference_duration_min) / config.duration_factor_span_min,
    )
    return round(clamp(rpe * duration_factor, 1.0, 10.0), 2)


def compute_trimp(
    activity: ActivityRecord,
    profile: PhysiologyProfile | None = None,
    sex: Sex | None = None,
    config: TrimpConfig = DEFAULT_CONFIG.trimp,
) -> MetricResult[SessionLoad]:
    """TRIMP for one activity: heart-rate path first, pace fallback second."""
    k = weighting_factor(sex, config)
    duration = activity.duration_min
    flags: list[QualityFlag] = []
    missing: list[str] = []
    warnings: list[str] = []

    if activity.avg_hr is None:
        missing.append("No heart rate data; load estimated from pace")
    elif profile is None or not profile.has_heart_rate_bounds:
        missing.append("Resting/max heart rate unavailable; load estimated from pace")
    else:
        try:
            fraction = profile.reserve_fraction(activity.avg_hr)
        except InvalidPhysiology as exc:
            flags.append(exc.flag)
            warnings.append(str(exc))
        else:
            load = SessionLoad(
                activity_id=activity.id,
                day=activity.activity_date,
                duration_min=round(duration, 1),
                load=round(banister_impulse(duration, fraction, k, config.intensity_scale), 1),
                source=LoadSource.MEASURED,
                intensity_fraction=round(fraction, 3),
                estimated_rpe=None,
            )
            return make_result(load, config.hr_confidence, CalculationMethod.BANISTER_TRIMP)

    pace = activity.pace_s_per_km
    if pace is None:
        logger.debug("no pace or heart rate for load", extra={"ctx_activity_id": activity.id})
        empty = SessionLoad(
            activity_id=activity.id,
            day=activity.activity_date,
            duration_min=round(duration, 1),
            load=0.0,
            source=LoadSource.ESTIMATED,
            intensity_fraction=0.0,
            estimated_rpe=None,
        )
        return insufficient_result(empty, "Neither heart rate nor pace available", warnings=warnings)

    rpe = estimate_rpe_from_pace(pace, duration, config)
    fraction = (rpe - 1) / 9.0  # RPE 1 → 0.0, RPE 10 → 1.0
    logger.debug("estimating load from pace", extra={"ctx_activity_id": activity.id, "ctx_rpe": rpe})
    load = SessionLoad(
        activity_id=activity.id,
        day=activity.activity_date,
        duration_min=round(duration, 1),
        load=round(banister_impulse(duration, fraction, k, config.intensity_scale), 1),
        source=LoadSource.ESTIMATED,
        intensity_fraction=round(fraction, 3),
        estimated_rpe=rpe,
    )
    return make_result(
        load,
        config.estimated_confidence,
        CalculationMethod.PACE_ESTIMATED_TRIMP,
        flags=[*flags, QualityFlag.ESTIMATED],
        missing=missing,
        warnings=warnings,
    )


def interpret_trimp(load: float, config: TrimpConfig = DEFAULT_CONFIG.trimp) -> TrimpIntensity:
    very_easy, easy, moderate, hard = config.interpretation_bounds
    if load < very_easy:
        return TrimpIntensity.VERY_EASY
    if load < easy:
        return TrimpIntensity.EASY
    if load < moderate:
        return TrimpIntensity.MODERATE
    if load < hard:
        return TrimpIntensity.HARD
    return TrimpIntensity.VERY_HARD


# ---------------------------------------------------------------------------
# Daily / weekly aggregation
# ---------------------------------------------------------------------------

def aggregate_daily_loads(
    activities: Iterable[ActivityRecord],
    profile: PhysiologyProfile | None = None,
    sex: Sex | None = None,
    config: TrimpConfig = DEFAULT_CONFIG.trimp,
) -> list[DailyLoadAggregate]:
    """Sum every activity of a date into one DailyLoadAggregate per date.

    Always a full resum of the supplied activities. Output is sorted by date.
    Activities whose load could not be computed add no confidence bound.
    """
    rows = []
    user_id = None
    for activity in activities:
        result = compute_trimp(activity, profile, sex, config)
        user_id = user_id or activity.user_id
        rows.append({
            "day": activity.activity_date,
            "id": activity.id,
            "distance_m": max(0.0, activity.distance_m),
            "moving_time_s": max(0.0, activity.moving_time_s),
            "load": result.value.load,
            "confidence": result.confidence if result.confidence > 0 else math.nan,
            "estimated": int(result.value.source == LoadSource.ESTIMATED and result.confidence > 0),
        })
    if not rows:
        return []

    df = pd.DataFrame(rows)
    daily = df.groupby("day", sort=True).agg(
        total_distance_m=("distance_m", "sum"),
        total_load=("load", "sum"),
        total_moving_time_s=("moving_time_s", "sum"),
        activity_count=("id", "count"),
        load_confidence=("confidence", "min"),
        estimated_count=("estimated", "sum"),
    )
    daily["load_confidence"] = daily["load_confidence"].fillna(1.0)

    return [
        DailyLoadAggregate(
            day=day,
            total_distance_m=round(float(row.total_distance_m), 1),
            total_load=round(float(row.total_load), 1),
            total_moving_time_s=round(float(row.total_moving_time_s), 1),
            activity_count=int(row.activity_count),
            user_id=user_id,
            load_confidence=float(row.load_confidence),
            estimated_count=int(row.estimated_count),
        )
        for day, row in daily.iterrows()
    ]


def weekly_load_totals(aggregates: list[DailyLoadAggregate]) -> pd.DataFrame:
    """Roll daily aggregates up to ISO weeks.

    Returns a DataFrame with columns: week, total_load, total_distance_m,
    total_moving_time_s, activity_count.
    """
    columns = ["week", "total_load", "total_distance_m", "total_moving_time_s", "activity_count"]
    if not aggregates:
        return pd.DataFrame(columns=columns)
    d = pd.DataFrame([
        {
            "date": pd.Timestamp(a.day),
            "total_load": a.total_load,
            "total_distance_m": a.total_distance_m,
            "total_moving_time_s": a.total_moving_time_s,
            "activity_count": a.activity_count,
        }
        for a in aggregates
    ])
    d["week"] = d["date"].dt.to_period("W").astype(str)
    out = d.groupby("week", as_index=False).agg(
        total_load=("total_load", "sum"),
        total_distance_m=("total_distance_m", "sum"),
        total_moving_time_s=("total_moving_time_s", "sum"),
        activity_count=("activity_count", "sum"),
    )
    return out[columns]


def aggregates_until(aggregates: list[DailyLoadAggregate], end: date | None = None) -> list[DailyLoadAggregate]:
    if end is None:
        return list(aggregates)
    return [a for a in aggregates if a.day <= end]


def daily_series(
    aggregates: list[DailyLoadAggregate],
    field: str = "total_load",
    end: date | None = None,
) -> pd.Series:
    """Calendar-day series of one aggregate field, rest days filled with zero.

    Runs from the first aggregate date to `end` (default: last aggregate date).
    Aggregates after `end` are dropped.
    """
    if not aggregates:
        return pd.Series(dtype=float)
    values: dict[pd.Timestamp, float] = {}
    for a in aggregates:
        key = pd.Timestamp(a.day)
        values[key] = values.get(key, 0.0) + float(getattr(a, field))
    start = min(values)
    stop = pd.Timestamp(end) if end is not None else max(values)
    if stop < start:
        return pd.Series(dtype=float)
    index = pd.date_range(start, stop, freq="D")
    return pd.Series(values, dtype=float).reindex(index, fill_value=0.0)
