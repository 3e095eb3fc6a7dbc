"""One-pass orchestration over a single activity or a whole history.

Resolves the physiology profile (population defaults for missing fields,
plausibility checks), runs every calculator and caps confidences when the
profile had to be substituted or looks implausible. Each call is a full
batch pass; nothing is cached between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from runmetrics.config import DEFAULT_CONFIG, EngineConfig
from runmetrics.errors import QualityFlag
from runmetrics.models import ActivityRecord, DailyLoadAggregate, PhysiologyProfile, Sex
from runmetrics.quality import (
    CalculationMethod,
    MetricResult,
    bounded_confidence,
    degrade,
    make_result,
    to_jsonable,
)
from runmetrics.services.acwr import ComprehensiveAcwr, comprehensive_acwr
from runmetrics.services.decoupling import DecouplingAnalysis, DecouplingTrend, analyze_decoupling, decoupling_trend
from runmetrics.services.environment import PaceAdjustment, adjust_activity_pace
from runmetrics.services.fitness import (
    FitnessPoint,
    FitnessState,
    TrainingWindows,
    compute_fitness_state,
    fitness_trend,
    predict_training_windows,
)
from runmetrics.services.injury_risk import InjuryRiskAssessment, assess_injury_risk
from runmetrics.services.physiology import resolve_physiology, validate_physiology
from runmetrics.services.training_load import SessionLoad, aggregate_daily_loads, compute_trimp
from runmetrics.services.vo2max import Vo2maxEstimate, Vo2maxTrend, estimate_vo2max, vo2max_trend

logger = logging.getLogger(__name__)


class DataQualityLabel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ProfileContext:
    """A resolved profile plus what had to be substituted or flagged."""
    profile: PhysiologyProfile
    confidence_cap: float | None
    flags: tuple[QualityFlag, ...]
    missing: tuple[str, ...]
    warnings: tuple[str, ...]

    def apply(self, result: MetricResult) -> MetricResult:
        if self.confidence_cap is None and not self.flags and not self.warnings:
            return result
        return degrade(result, self.confidence_cap, self.flags, self.missing, self.warnings)


@dataclass(frozen=True)
class ActivitySummary:
    activity_id: str
    trimp: MetricResult[SessionLoad]
    vo2max: MetricResult[Vo2maxEstimate]
    pace_adjustment: MetricResult[PaceAdjustment | None]
    decoupling: MetricResult[DecouplingAnalysis | None]
    data_quality: DataQualityLabel


@dataclass(frozen=True)
class HistoryAnalysis:
    as_of: date | None
    activity_count: int
    daily_loads: tuple[DailyLoadAggregate, ...]
    fitness: MetricResult[FitnessState]
    fitness_trend: tuple[FitnessPoint, ...]
    training_windows: TrainingWindows | None
    acwr: MetricResult[ComprehensiveAcwr]
    injury_risk: MetricResult[InjuryRiskAssessment]
    vo2max_trend: MetricResult[Vo2maxTrend]
    decoupling_trend: MetricResult[DecouplingTrend | None]

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)


def resolve_profile(
    profile: PhysiologyProfile | None,
    age: int | None = None,
    sex: Sex | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ProfileContext:
    """Fill missing profile fields and note how much to trust the result."""
    flags: list[QualityFlag] = []
    missing: list[str] = []
    warnings: list[str] = []
    caps: list[float] = []

    if profile is not None:
        validation = validate_physiology(profile)
        warnings.extend(validation.warnings)
        if not validation.is_valid:
            flags.append(QualityFlag.INVALID_PHYSIOLOGY)
            warnings.extend(validation.errors)
            caps.append(config.invalid_physiology_confidence)

    resolved, substituted = resolve_physiology(profile, age, sex)
    if substituted:
        flags.append(QualityFlag.DEFAULTED_PHYSIOLOGY)
        missing.append(f"Profile defaults used for: {', '.join(substituted)}")
        if {"resting_hr", "max_hr"} & set(substituted):
            caps.append(config.defaulted_physiology_confidence)

    return ProfileContext(
        profile=resolved,
        confidence_cap=min(caps) if caps else None,
        flags=tuple(flags),
        missing=tuple(missing),
        warnings=tuple(warnings),
    )


def quality_label(confidence: float) -> DataQualityLabel:
    if confidence >= 0.8:
        return DataQualityLabel.HIGH
    if confidence >= 0.5:
        return DataQualityLabel.MEDIUM
    return DataQualityLabel.LOW


def process_activity(
    activity: ActivityRecord,
    profile: PhysiologyProfile | None = None,
    age: int | None = None,
    sex: Sex | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> MetricResult[ActivitySummary]:
    """Every per-activity metric for one run."""
    ctx = resolve_profile(profile, age, sex, config)

    trimp = ctx.apply(compute_trimp(activity, ctx.profile, sex, config.trimp))
    vo2 = ctx.apply(estimate_vo2max(activity, ctx.profile, config.vo2max))
    pace = adjust_activity_pace(activity, config.environment)
    decoupling = ctx.apply(analyze_decoupling(activity, ctx.profile, config.decoupling))

    # training load is required; the rest only count when they produced something
    optional = [r.confidence for r in (vo2, pace, decoupling) if r.confidence > 0]
    confidence = bounded_confidence(trimp.confidence, *optional)
    label = quality_label(confidence)

    summary = ActivitySummary(
        activity_id=activity.id,
        trimp=trimp,
        vo2max=vo2,
        pace_adjustment=pace,
        decoupling=decoupling,
        data_quality=label,
    )
    logger.debug(
        "activity processed",
        extra={"ctx_activity_id": activity.id, "ctx_quality": label.value, "ctx_confidence": confidence},
    )
    method = CalculationMethod.ACTIVITY_SUMMARY if trimp.confidence > 0 else CalculationMethod.INSUFFICIENT_DATA
    return make_result(
        summary,
        confidence,
        method,
        flags=trimp.flags,
        missing=trimp.data_quality.missing_data_impact,
        warnings=[*trimp.warnings, *vo2.warnings],
    )


def _empty_history(ctx: ProfileContext, config: EngineConfig) -> HistoryAnalysis:
    empty: list[ActivityRecord] = []
    fitness = compute_fitness_state([], config=config.fitness)
    return HistoryAnalysis(
        as_of=None,
        activity_count=0,
        daily_loads=(),
        fitness=fitness,
        fitness_trend=(),
        training_windows=None,
        acwr=comprehensive_acwr([], config=config.acwr),
        injury_risk=assess_injury_risk(empty, ctx.profile, config=config),
        vo2max_trend=vo2max_trend(empty, ctx.profile, config=config.vo2max),
        decoupling_trend=decoupling_trend(empty, ctx.profile, config=config.decoupling),
    )


def analyze_history(
    activities: list[ActivityRecord],
    profile: PhysiologyProfile | None = None,
    as_of: date | None = None,
    age: int | None = None,
    sex: Sex | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> HistoryAnalysis:
    """Longitudinal state of one athlete as of `as_of` (default: latest activity).

    Activities after `as_of` are ignored. An empty history returns neutral,
    zero-confidence results for every metric.
    """
    ctx = resolve_profile(profile, age, sex, config)
    ordered = sorted(activities, key=lambda a: a.timestamp)
    if as_of is not None:
        ordered = [a for a in ordered if a.activity_date <= as_of]
    if not ordered:
        logger.info("no activities to analyse")
        return _empty_history(ctx, config)

    as_of = as_of or ordered[-1].activity_date
    aggregates = aggregate_daily_loads(ordered, ctx.profile, sex, config.trimp)

    fitness = ctx.apply(compute_fitness_state(aggregates, as_of, config.fitness))
    trend = fitness_trend(aggregates, config.fitness_trend_days, as_of, config.fitness)
    windows = predict_training_windows(fitness, as_of, config.fitness) if fitness.confidence > 0 else None
    acwr = ctx.apply(comprehensive_acwr(aggregates, as_of, config.acwr))
    risk = ctx.apply(assess_injury_risk(ordered, ctx.profile, sex, as_of, config, aggregates))
    vo2 = ctx.apply(vo2max_trend(ordered, ctx.profile, config.vo2max_trend_days, as_of, config.vo2max))
    decoupling = ctx.apply(decoupling_trend(ordered, ctx.profile, as_of=as_of, config=config.decoupling))

    logger.info(
        "history analysed",
        extra={
            "ctx_activities": len(ordered),
            "ctx_days": len(aggregates),
            "ctx_status": fitness.value.status.value,
            "ctx_risk": risk.value.risk_level.value,
        },
    )
    return HistoryAnalysis(
        as_of=as_of,
        activity_count=len(ordered),
        daily_loads=tuple(aggregates),
        fitness=fitness,
        fitness_trend=tuple(trend),
        training_windows=windows,
        acwr=acwr,
        injury_risk=risk,
        vo2max_trend=vo2,
        decoupling_trend=decoupling,
    )
