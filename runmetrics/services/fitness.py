"""Fitness / fatigue model (CTL / ATL / TSB).

- CTL (fitness): 42-day EWMA of daily load over the whole history
- ATL (fatigue): 7-day EWMA over the trailing 7 days only
- TSB (form): CTL - ATL

Rest days between the first and last recorded day count as zero load.
Everything is recomputed from the full aggregate history on every call.

Reference: Banister impulse-response model; Coggan's performance manager.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from runmetrics.config import DEFAULT_CONFIG, FitnessConfig
from runmetrics.errors import QualityFlag
from runmetrics.models import DailyLoadAggregate
from runmetrics.quality import (
    CalculationMethod,
    MetricResult,
    bounded_confidence,
    insufficient_result,
    make_result,
)
from runmetrics.services.ewma import ewma, ewma_series
from runmetrics.services.training_load import aggregates_until, daily_series

logger = logging.getLogger(__name__)


class FitnessStatus(str, Enum):
    FRESH = "fresh"
    NEUTRAL = "neutral"
    FATIGUED = "fatigued"
    VERY_FATIGUED = "very_fatigued"


_RECOMMENDATIONS = {
    FitnessStatus.FRESH: "Well rested. Good time for a hard session or race.",
    FitnessStatus.NEUTRAL: "Balanced load. Continue with planned training.",
    FitnessStatus.FATIGUED: "Accumulated fatigue. Favour easy running and recovery.",
    FitnessStatus.VERY_FATIGUED: "High fatigue. Take rest or very light activity only.",
}
NO_LOAD_RECOMMENDATION = "No training load recorded. Start with easy, consistent running."


@dataclass(frozen=True)
class FitnessState:
    ctl: float  # Chronic Training Load (fitness)
    atl: float  # Acute Training Load (fatigue)
    tsb: float  # Training Stress Balance (form)
    status: FitnessStatus
    recommendation: str
    history_days: int


@dataclass(frozen=True)
class FitnessPoint:
    day: date
    daily_load: float
    ctl: float
    atl: float
    tsb: float
    status: FitnessStatus


@dataclass(frozen=True)
class TrainingWindows:
    recovery_days: int
    next_optimal_window: date | None
    next_optimal_confidence: float
    peak_readiness: date | None
    peak_confidence: float


def classify_tsb(tsb: float, config: FitnessConfig = DEFAULT_CONFIG.fitness) -> FitnessStatus:
    if tsb > config.fresh_above:
        return FitnessStatus.FRESH
    if tsb >= config.neutral_floor:
        return FitnessStatus.NEUTRAL
    if tsb > config.very_fatigued_at:
        return FitnessStatus.FATIGUED
    return FitnessStatus.VERY_FATIGUED


def _empty_state(days: int = 0) -> FitnessState:
    return FitnessState(
        ctl=0.0, atl=0.0, tsb=0.0,
        status=FitnessStatus.NEUTRAL,
        recommendation=NO_LOAD_RECOMMENDATION,
        history_days=days,
    )


def _input_confidence(aggregates: list[DailyLoadAggregate]) -> float | None:
    if not aggregates:
        return None
    return min(a.load_confidence for a in aggregates)


def compute_fitness_state(
    aggregates: list[DailyLoadAggregate],
    as_of: date | None = None,
    config: FitnessConfig = DEFAULT_CONFIG.fitness,
) -> MetricResult[FitnessState]:
    """Current CTL/ATL/TSB and readiness classification.

    Fewer than `min_history_days` calendar days → zero-confidence neutral
    result flagged insufficient_history.
    """
    series = daily_series(aggregates, "total_load", end=as_of)
    days = len(series)
    if days < config.min_history_days:
        logger.debug("fitness model needs more history", extra={"ctx_days": days})
        return insufficient_result(
            _empty_state(days),
            f"Only {days} day(s) of training history; {config.min_history_days} required",
            flag=QualityFlag.INSUFFICIENT_HISTORY,
        )

    loads = series.tolist()
    ctl = ewma(loads, config.ctl_span)
    atl = ewma(loads[-config.atl_span:], config.atl_span)
    tsb = ctl - atl

    if ctl == 0 and atl == 0:
        status = FitnessStatus.NEUTRAL
        recommendation = NO_LOAD_RECOMMENDATION
    else:
        status = classify_tsb(tsb, config)
        recommendation = _RECOMMENDATIONS[status]

    confidence = bounded_confidence(
        min(1.0, days / config.full_confidence_days),
        _input_confidence(aggregates_until(aggregates, as_of)),
    )
    warnings = []
    missing = []
    if confidence < config.limited_history_confidence:
        warnings.append(f"Limited history ({days} days); fitness values are still settling")
    if days < config.full_confidence_days:
        missing.append(f"Chronic load uses {days} of {config.full_confidence_days} days")
    estimated = sum(a.estimated_count for a in aggregates_until(aggregates, as_of))
    flags = [QualityFlag.ESTIMATED] if estimated else []
    if estimated:
        missing.append(f"{estimated} activity load(s) estimated from pace")

    state = FitnessState(
        ctl=round(ctl, 1),
        atl=round(atl, 1),
        tsb=round(tsb, 1),
        status=status,
        recommendation=recommendation,
        history_days=days,
    )
    return make_result(state, confidence, CalculationMethod.EWMA_FITNESS, flags, missing, warnings)


def fitness_trend(
    aggregates: list[DailyLoadAggregate],
    days: int = 30,
    as_of: date | None = None,
    config: FitnessConfig = DEFAULT_CONFIG.fitness,
) -> list[FitnessPoint]:
    """Day-by-day CTL/ATL/TSB over the last `days` days.

    Each point is what compute_fitness_state would have returned on that day.
    Empty when there is not enough history for the model.
    """
    series = daily_series(aggregates, "total_load", end=as_of)
    if len(series) < config.min_history_days:
        return []

    loads = series.tolist()
    ctl_values = ewma_series(loads, config.ctl_span)
    points: list[FitnessPoint] = []
    for i in range(max(0, len(loads) - days), len(loads)):
        window = loads[max(0, i + 1 - config.atl_span): i + 1]
        atl = ewma(window, config.atl_span)
        ctl = ctl_values[i]
        tsb = ctl - atl
        points.append(FitnessPoint(
            day=series.index[i].date(),
            daily_load=loads[i],
            ctl=round(ctl, 1),
            atl=round(atl, 1),
            tsb=round(tsb, 1),
            status=classify_tsb(tsb, config),
        ))
    return points


def predict_training_windows(
    state: MetricResult[FitnessState],
    as_of: date,
    config: FitnessConfig = DEFAULT_CONFIG.fitness,
) -> TrainingWindows:
    """Estimate recovery days and the next dates worth training hard on."""
    tsb = state.value.tsb
    recovery = 0
    for upper, days in config.recovery_bands:
        if tsb < upper:
            recovery = days
            break

    if recovery > 0:
        optimal = as_of + timedelta(days=recovery)
        return TrainingWindows(
            recovery_days=recovery,
            next_optimal_window=optimal,
            next_optimal_confidence=min(0.8, state.confidence),
            peak_readiness=optimal + timedelta(days=2),
            peak_confidence=min(0.7, state.confidence),
        )
    if tsb > config.fresh_above:
        return TrainingWindows(
            recovery_days=0,
            next_optimal_window=None,
            next_optimal_confidence=0.0,
            peak_readiness=as_of,
            peak_confidence=min(0.9, state.confidence),
        )
    return TrainingWindows(
        recovery_days=0,
        next_optimal_window=as_of,
        next_optimal_confidence=min(0.8, state.confidence),
        peak_readiness=None,
        peak_confidence=0.0,
    )
