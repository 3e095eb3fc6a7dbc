"""Environmental pace normalization.

Converts an observed pace into the pace the run would have been at in
neutral conditions. Each factor has a dead zone around its optimum and a
linear penalty outside it; positive adjustments mean the conditions slowed
the runner, so the normalized pace is the observed pace minus the total.

  temperature  10-20 C neutral, +2.5 s/km per degree above, -1.5 s/km per degree below
  humidity     <60% neutral, +1.5 s/km per 10% above
  wind         <15 km/h neutral, +0.4 s/km per km/h above
  elevation    <20 m/km neutral, +12.5 s/km per 10 m/km above

The total is capped at +/-50% of the observed pace.
"""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from runmetrics.config import DEFAULT_CONFIG, EnvironmentConfig
from runmetrics.errors import QualityFlag
from runmetrics.models import ActivityRecord, WeatherSnapshot
from runmetrics.quality import (
    CalculationMethod,
    MetricResult,
    clamp,
    insufficient_result,
    make_result,
)


@dataclass(frozen=True)
class PaceAdjustment:
    original_pace: float          # s/km
    adjusted_pace: float          # s/km in neutral conditions
    total_adjustment: float       # s/km, positive = conditions slowed the run
    temperature_adjustment: float
    humidity_adjustment: float
    wind_adjustment: float
    elevation_adjustment: float
    capped: bool
    explanation: tuple[str, ...]


@dataclass(frozen=True)
class ConditionBand:
    label: str
    run_count: int
    avg_original_pace: float
    avg_adjusted_pace: float
    improvement: float  # original - adjusted


@dataclass(frozen=True)
class EnvironmentalComparison:
    best_activity_id: str | None
    worst_activity_id: str | None
    bands: tuple[ConditionBand, ...]


def temperature_adjustment(temp_c: float, config: EnvironmentConfig = DEFAULT_CONFIG.environment) -> float:
    if temp_c > config.optimal_temp_high:
        return (temp_c - config.optimal_temp_high) * config.heat_s_per_degree
    if temp_c < config.optimal_temp_low:
        return -(config.optimal_temp_low - temp_c) * config.cold_s_per_degree
    return 0.0


def humidity_adjustment(humidity_pct: float, config: EnvironmentConfig = DEFAULT_CONFIG.environment) -> float:
    if humidity_pct > config.humidity_threshold:
        return (humidity_pct - config.humidity_threshold) / 10 * config.humidity_s_per_10pct
    return 0.0


def wind_adjustment(wind_kmh: float, config: EnvironmentConfig = DEFAULT_CONFIG.environment) -> float:
    # wind direction is unknown; treated as a headwind
    if wind_kmh > config.wind_threshold_kmh:
        return (wind_kmh - config.wind_threshold_kmh) * config.wind_s_per_kmh
    return 0.0


def elevation_adjustment(per_km: float, config: EnvironmentConfig = DEFAULT_CONFIG.environment) -> float:
    if per_km > config.elevation_threshold_m_per_km:
        return (per_km - config.elevation_threshold_m_per_km) / 10 * config.elevation_s_per_10m
    return 0.0


def normalize_pace(
    pace_s_per_km: float,
    weather: WeatherSnapshot | None,
    elevation_per_km: float = 0.0,
    config: EnvironmentConfig = DEFAULT_CONFIG.environment,
) -> MetricResult[PaceAdjustment]:
    """Adjust an observed pace for weather and climbing.

    Without weather the pace comes back unchanged with zero confidence.
    Missing or implausible individual readings lower the confidence.
    """
    if weather is None or weather.is_empty:
        unchanged = PaceAdjustment(
            original_pace=round(pace_s_per_km, 1),
            adjusted_pace=round(pace_s_per_km, 1),
            total_adjustment=0.0,
            temperature_adjustment=0.0,
            humidity_adjustment=0.0,
            wind_adjustment=0.0,
            elevation_adjustment=0.0,
            capped=False,
            explanation=("No weather data; pace not adjusted",),
        )
        return insufficient_result(
            unchanged,
            "No weather data recorded",
            flag=QualityFlag.MISSING_ENVIRONMENTAL_DATA,
        )

    confidence = config.base_confidence
    flags: list[QualityFlag] = []
    missing: list[str] = []
    warnings: list[str] = []
    explanation: list[str] = []

    temp = weather.temp_c
    humidity = weather.humidity_pct
    wind = weather.wind_kmh

    if temp is None:
        confidence -= config.missing_field_penalty
        missing.append("Temperature missing; no heat/cold adjustment")
        temp_adj = 0.0
    else:
        low, high = config.plausible_temp
        if temp < low or temp > high:
            confidence -= 0.2
            flags.append(QualityFlag.IMPLAUSIBLE_ESTIMATE)
            warnings.append(f"Temperature {temp:g} C looks implausible")
        temp_adj = temperature_adjustment(temp, config)

    if humidity is None:
        confidence -= config.missing_field_penalty
        missing.append("Humidity missing; no humidity adjustment")
        hum_adj = 0.0
    else:
        if humidity < 0 or humidity > 100:
            confidence -= 0.2
            flags.append(QualityFlag.IMPLAUSIBLE_ESTIMATE)
            warnings.append(f"Humidity {humidity:g}% outside 0-100")
            humidity = clamp(humidity, 0.0, 100.0)
        hum_adj = humidity_adjustment(humidity, config)

    if wind is None:
        confidence -= config.missing_field_penalty
        missing.append("Wind speed missing; no wind adjustment")
        wind_adj = 0.0
    else:
        if wind > config.plausible_wind_max:
            confidence -= 0.1
            warnings.append(f"Wind speed {wind:g} km/h is unusually high")
        wind_adj = wind_adjustment(max(0.0, wind), config)

    elev_adj = elevation_adjustment(elevation_per_km or 0.0, config)

    t_low, t_high = config.moderate_temp
    h_low, h_high = config.moderate_humidity
    if temp is not None and humidity is not None and t_low <= temp <= t_high and h_low <= humidity <= h_high:
        confidence += 0.1

    total = temp_adj + hum_adj + wind_adj + elev_adj
    limit = pace_s_per_km * config.max_adjustment_fraction
    capped = abs(total) > limit
    if capped:
        total = clamp(total, -limit, limit)
        warnings.append(f"Adjustment capped at {config.max_adjustment_fraction:.0%} of the observed pace")

    for label, adj in (("heat/cold", temp_adj), ("humidity", hum_adj), ("wind", wind_adj), ("climbing", elev_adj)):
        if adj > 0:
            explanation.append(f"{label} cost about {adj:.1f} s/km")
        elif adj < 0:
            explanation.append(f"{label} helped by about {abs(adj):.1f} s/km")
    if not explanation:
        explanation.append("Conditions within the neutral range; no adjustment")

    adjustment = PaceAdjustment(
        original_pace=round(pace_s_per_km, 1),
        adjusted_pace=round(pace_s_per_km - total, 1),
        total_adjustment=round(total, 1),
        temperature_adjustment=round(temp_adj, 1),
        humidity_adjustment=round(hum_adj, 1),
        wind_adjustment=round(wind_adj, 1),
        elevation_adjustment=round(elev_adj, 1),
        capped=capped,
        explanation=tuple(explanation),
    )
    return make_result(
        adjustment,
        clamp(confidence, 0.1, 1.0),
        CalculationMethod.ENVIRONMENTAL_ADJUSTMENT,
        flags=flags,
        missing=missing,
        warnings=warnings,
    )


def adjust_activity_pace(
    activity: ActivityRecord,
    config: EnvironmentConfig = DEFAULT_CONFIG.environment,
) -> MetricResult[PaceAdjustment | None]:
    pace = activity.pace_s_per_km
    if pace is None:
        return insufficient_result(None, "Activity has no distance or moving time")
    return normalize_pace(pace, activity.weather, activity.elevation_per_km, config)


def compare_environmental_performance(
    activities: list[ActivityRecord],
    config: EnvironmentConfig = DEFAULT_CONFIG.environment,
) -> EnvironmentalComparison:
    """Average observed and normalized pace per temperature band."""
    rows = []
    for activity in activities:
        if activity.weather is None or activity.weather.temp_c is None:
            continue
        result = adjust_activity_pace(activity, config)
        if result.value is None or result.confidence == 0:
            continue
        rows.append({
            "id": activity.id,
            "temp_c": activity.weather.temp_c,
            "original": result.value.original_pace,
            "adjusted": result.value.adjusted_pace,
        })
    if not rows:
        return EnvironmentalComparison(best_activity_id=None, worst_activity_id=None, bands=())

    df = pd.DataFrame(rows)
    df["band"] = pd.cut(
        df["temp_c"],
        bins=list(config.comparison_bands),
        labels=list(config.comparison_labels),
        right=False,
    )
    grouped = df.groupby("band", observed=True).agg(
        run_count=("id", "count"),
        avg_original_pace=("original", "mean"),
        avg_adjusted_pace=("adjusted", "mean"),
    )
    bands = tuple(
        ConditionBand(
            label=str(label),
            run_count=int(row.run_count),
            avg_original_pace=round(float(row.avg_original_pace), 1),
            avg_adjusted_pace=round(float(row.avg_adjusted_pace), 1),
            improvement=round(float(row.avg_original_pace - row.avg_adjusted_pace), 1),
        )
        for label, row in grouped.iterrows()
    )
    ordered = df.sort_values(["adjusted", "id"])
    return EnvironmentalComparison(
        best_activity_id=str(ordered.iloc[0]["id"]),
        worst_activity_id=str(ordered.iloc[-1]["id"]),
        bands=bands,
    )
