"""Composite injury-risk and overreaching assessment.

Five risk factors are scored 0-100 from the last 90 days of activities:

- training_load_spike: ACWR status, week-over-week distance jumps, rising chronic load
- performance_decline: pace slowing at matched effort (HR-normalized pace)
- heart_rate_anomaly: exercise HR drifting up or down, erratic HR at similar paces
- pace_consistency: variability of pace over comparable distances
- recovery_pattern: short rest intervals, hard-effort streaks, run frequency

The overall score weights the factors by rank (highest first, 0.8^i), and the
overreaching state is re-derived on every call from ACWR, factor severities,
sustained negative TSB and the performance trend.

Reference: Gabbett (2016); Meeusen et al. (2013) ECSS/ACSM overtraining
consensus statement.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from statistics import linear_regression, mean, median, stdev

from runmetrics.config import DEFAULT_CONFIG, EngineConfig, RiskConfig
from runmetrics.errors import InvalidPhysiology
from runmetrics.models import ActivityRecord, DailyLoadAggregate, PhysiologyProfile, Sex
from runmetrics.quality import (
    CalculationMethod,
    MetricResult,
    bounded_confidence,
    clamp,
    insufficient_result,
    make_result,
)
from runmetrics.services.acwr import AcwrStatus, ComprehensiveAcwr, comprehensive_acwr
from runmetrics.services.fitness import compute_fitness_state, fitness_trend
from runmetrics.services.training_load import aggregate_daily_loads, daily_series

logger = logging.getLogger(__name__)


class RiskSeverity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class RiskFactorName(str, Enum):
    TRAINING_LOAD_SPIKE = "training_load_spike"
    PERFORMANCE_DECLINE = "performance_decline"
    HEART_RATE_ANOMALY = "heart_rate_anomaly"
    PACE_CONSISTENCY = "pace_consistency"
    RECOVERY_PATTERN = "recovery_pattern"


class OverreachingStatus(str, Enum):
    NORMAL = "normal"
    FUNCTIONAL = "functional"
    NON_FUNCTIONAL = "non_functional"
    OVERTRAINING = "overtraining"


class WarningLevel(str, Enum):
    MONITOR_CLOSELY = "monitor_closely"
    CAUTION_ADVISED = "caution_advised"
    IMMEDIATE_REST_RECOMMENDED = "immediate_rest_recommended"


class PerformanceTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class RecoveryQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class RiskTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"


_OVERREACHING_ORDER = [
    OverreachingStatus.NORMAL,
    OverreachingStatus.FUNCTIONAL,
    OverreachingStatus.NON_FUNCTIONAL,
    OverreachingStatus.OVERTRAINING,
]


@dataclass(frozen=True)
class RiskFactor:
    name: RiskFactorName
    score: float
    severity: RiskSeverity
    description: str
    findings: tuple[str, ...] = ()


@dataclass(frozen=True)
class OverreachingIndicator:
    indicator: str
    points: int
    description: str


@dataclass(frozen=True)
class OverreachingAssessment:
    status: OverreachingStatus
    points: int
    indicators: tuple[OverreachingIndicator, ...]
    negative_tsb_days: int       # days with TSB below the threshold in the lookback
    performance_trend: PerformanceTrend


@dataclass(frozen=True)
class Recommendations:
    immediate: tuple[str, ...]
    short_term: tuple[str, ...]
    long_term: tuple[str, ...]
    monitoring: tuple[str, ...]


@dataclass(frozen=True)
class RecoveryGuidance:
    estimated_recovery_days: int
    return_criteria: tuple[str, ...]


@dataclass(frozen=True)
class InjuryRiskAssessment:
    factors: tuple[RiskFactor, ...]
    overall_score: float
    risk_level: RiskSeverity
    warning_level: WarningLevel
    overreaching: OverreachingAssessment
    recommendations: Recommendations
    recovery: RecoveryGuidance
    activity_count: int
    as_of: date | None

    def factor(self, name: RiskFactorName) -> RiskFactor:
        for f in self.factors:
            if f.name == name:
                return f
        raise KeyError(name)


@dataclass(frozen=True)
class RiskResolution:
    improving: tuple[RiskFactorName, ...]
    worsening: tuple[RiskFactorName, ...]
    stable: tuple[RiskFactorName, ...]
    overall_trend: RiskTrend
    ready_for_progression: bool


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------

def severity_for(score: float, config: RiskConfig = DEFAULT_CONFIG.risk) -> RiskSeverity:
    """Map a 0-100 score to a severity: low <30, moderate <55, high <=80, critical >80."""
    low, moderate, high = config.severity_bounds
    if score < low:
        return RiskSeverity.LOW
    if score < moderate:
        return RiskSeverity.MODERATE
    if score <= high:
        return RiskSeverity.HIGH
    return RiskSeverity.CRITICAL


def overall_risk_score(scores: list[float], config: RiskConfig = DEFAULT_CONFIG.risk) -> float:
    """Rank-weighted mean: the highest factor weighs 1, the next 0.8, then 0.64 ..."""
    if not scores:
        return 0.0
    ranked = sorted(scores, reverse=True)
    weights = [config.factor_weight_decay ** i for i in range(len(ranked))]
    return sum(s * w for s, w in zip(ranked, weights)) / sum(weights)


def _factor(
    name: RiskFactorName,
    score: float,
    default: str,
    findings: list[str],
    config: RiskConfig,
    suffix: str = "",
) -> RiskFactor:
    score = round(clamp(score, 0.0, 100.0), 1)
    return RiskFactor(
        name=name,
        score=score,
        severity=severity_for(score, config),
        description="; ".join(findings) + suffix if findings else default,
        findings=tuple(findings),
    )


def _paced(runs: list[ActivityRecord]) -> list[ActivityRecord]:
    return [r for r in runs if r.pace_s_per_km is not None]


# ---------------------------------------------------------------------------
# Risk factors
# ---------------------------------------------------------------------------

def weekly_distances(
    aggregates: list[DailyLoadAggregate],
    as_of: date,
    weeks: int,
) -> list[float]:
    """Distance (m) of complete 7-day blocks ending at as_of, oldest first."""
    series = daily_series(aggregates, "total_distance_m", end=as_of)
    complete = min(weeks, len(series) // 7)
    if complete == 0:
        return []
    tail = series.iloc[-complete * 7:].tolist()
    return [sum(tail[i * 7:(i + 1) * 7]) for i in range(complete)]


def assess_training_load_spike(
    aggregates: list[DailyLoadAggregate],
    acwr: ComprehensiveAcwr | None,
    as_of: date,
    config: RiskConfig = DEFAULT_CONFIG.risk,
) -> RiskFactor:
    score = 0.0
    findings: list[str] = []

    if acwr is not None:
        status = acwr.overall_status
        if status == AcwrStatus.HIGH_RISK:
            score += config.acwr_high_risk_points
        elif status == AcwrStatus.CAUTION:
            score += config.acwr_caution_points
        elif status == AcwrStatus.DETRAINING:
            score += config.acwr_detraining_points
        if status != AcwrStatus.OPTIMAL:
            findings.append(
                f"Workload ratio {status.value} (load {acwr.trimp.acwr:.2f}, distance {acwr.distance.acwr:.2f})"
            )

    weeks = weekly_distances(aggregates, as_of, config.spike_weeks)
    recent_start = len(weeks) - config.spike_recent_weeks
    worst = 0.0
    for i in range(1, len(weeks)):
        prev, cur = weeks[i - 1], weeks[i]
        if prev <= 0:
            continue
        change = (cur - prev) / prev
        if change > config.spike_count_above and i >= recent_start:
            worst = max(worst, change)
    if worst > config.spike_extreme:
        score += config.spike_extreme_points
    elif worst > config.spike_major:
        score += config.spike_major_points
    elif worst > config.spike_moderate:
        score += config.spike_moderate_points
    if worst > config.spike_moderate:
        findings.append(f"Weekly distance jumped {worst * 100:.0f}% in the last {config.spike_recent_weeks} weeks")

    if len(weeks) >= 8:
        older, newer = sum(weeks[-8:-4]), sum(weeks[-4:])
        if older > 0 and (newer - older) / older > config.spike_count_above:
            score += config.chronic_rise_points
            findings.append("Chronic load is rising")

    return _factor(RiskFactorName.TRAINING_LOAD_SPIKE, score, "Training load progression looks controlled", findings, config)


def _matched_effort_paces(runs: list[ActivityRecord]) -> tuple[list[float], bool]:
    """Paces scaled by avg HR / median HR when every run has HR.

    pace x HR is roughly constant at a given fitness, so the scaled pace
    rises when the same effort produces a slower pace.
    """
    paces = [r.pace_s_per_km for r in runs]
    hrs = [r.avg_hr for r in runs]
    if all(hr for hr in hrs):
        ref = median(hrs)
        return [p * hr / ref for p, hr in zip(paces, hrs)], True
    return paces, False


def assess_performance_decline(
    runs: list[ActivityRecord],
    config: RiskConfig = DEFAULT_CONFIG.risk,
) -> tuple[RiskFactor, PerformanceTrend]:
    paced = _paced(runs)[-config.decline_runs:]
    if len(paced) < config.decline_min_runs:
        factor = _factor(
            RiskFactorName.PERFORMANCE_DECLINE, 10.0,
            "Not enough runs to assess the performance trend", [], config,
        )
        return factor, PerformanceTrend.STABLE

    paces, hr_normalized = _matched_effort_paces(paced)
    slope = linear_regression(range(len(paces)), paces).slope
    change = slope * (len(paces) - 1)  # s/km across the window
    basis = "at matched heart rate" if hr_normalized else "(raw pace)"

    score = 0.0
    findings: list[str] = []
    for threshold, points in config.decline_steps:
        if change > threshold:
            score += points
            findings.append(f"Pace {change:.0f} s/km slower over the last {len(paces)} runs {basis}")
            break

    if change > config.decline_steps[-1][0]:
        trend = PerformanceTrend.DECLINING
    elif change < config.improving_below:
        trend = PerformanceTrend.IMPROVING
    else:
        trend = PerformanceTrend.STABLE

    if stdev(paces) > config.pace_variability_limit:
        score += config.pace_variability_points
        findings.append("High pace variability across recent runs")

    default = (
        f"Pace improving by {abs(change):.0f} s/km {basis}"
        if trend == PerformanceTrend.IMPROVING
        else "Performance is stable"
    )
    return _factor(RiskFactorName.PERFORMANCE_DECLINE, score, default, findings, config), trend


def assess_heart_rate_anomalies(
    runs: list[ActivityRecord],
    config: RiskConfig = DEFAULT_CONFIG.risk,
) -> RiskFactor:
    hr_runs = [r for r in runs if r.avg_hr]
    if len(hr_runs) < config.hr_min_runs:
        return _factor(
            RiskFactorName.HEART_RATE_ANOMALY, 5.0,
            "Not enough heart rate data to assess", [], config,
        )

    score = 0.0
    findings: list[str] = []
    n = config.hr_compare_runs
    recent = hr_runs[-n:]
    older = hr_runs[-2 * n:-n]
    if older:
        drift = mean(r.avg_hr for r in recent) - mean(r.avg_hr for r in older)
        if drift > config.hr_drift_bpm:
            score += config.hr_elevated_points
            findings.append(f"Average exercise heart rate up {drift:.0f} bpm")
        elif drift < -config.hr_drift_bpm:
            score += config.hr_declining_points
            findings.append(f"Average exercise heart rate down {abs(drift):.0f} bpm")

    buckets: dict[int, list[float]] = defaultdict(list)
    for r in hr_runs:
        if r.pace_s_per_km is not None:
            buckets[int(r.pace_s_per_km // config.hr_pace_bucket_s)].append(r.avg_hr)
    erratic = [b for b in buckets.values() if len(b) >= 3 and stdev(b) > config.hr_bucket_stdev_limit]
    if erratic:
        score += config.hr_bucket_points
        findings.append("Heart rate varies widely at similar paces")

    return _factor(RiskFactorName.HEART_RATE_ANOMALY, score, "Heart rate patterns look normal", findings, config)


def assess_pace_consistency(
    runs: list[ActivityRecord],
    config: RiskConfig = DEFAULT_CONFIG.risk,
) -> RiskFactor:
    paced = _paced(runs)
    if len(paced) < config.consistency_min_runs:
        return _factor(
            RiskFactorName.PACE_CONSISTENCY, 5.0,
            "Not enough runs to assess pace consistency", [], config,
        )

    score = 0.0
    findings: list[str] = []
    bands: dict[int, list[float]] = defaultdict(list)
    for r in paced:
        km = round(r.distance_km)
        if km >= 3:
            bands[km].append(r.pace_s_per_km)

    worst_km, worst_cv = None, 0.0
    for km, paces in sorted(bands.items()):
        if len(paces) < 3:
            continue
        cv = stdev(paces) / mean(paces)
        if cv > worst_cv:
            worst_km, worst_cv = km, cv
    if worst_cv > config.cv_high:
        score += config.cv_high_points
    elif worst_cv > config.cv_moderate:
        score += config.cv_moderate_points
    if worst_cv > config.cv_moderate:
        findings.append(f"Pace varies {worst_cv * 100:.1f}% on {worst_km} km runs")

    recent = [r.pace_s_per_km for r in paced[-5:]]
    if len(recent) >= 2 and stdev(recent) > config.recent_pace_stdev_limit:
        score += config.recent_pace_points
        findings.append("Very uneven pacing across the last 5 runs")

    return _factor(RiskFactorName.PACE_CONSISTENCY, score, "Pacing is consistent", findings, config)


def is_hard_effort(
    run: ActivityRecord,
    profile: PhysiologyProfile | None,
    config: RiskConfig = DEFAULT_CONFIG.risk,
) -> bool:
    if run.avg_hr and profile is not None and profile.has_heart_rate_bounds:
        try:
            if profile.reserve_fraction(run.avg_hr) >= config.hard_reserve_fraction:
                return True
        except InvalidPhysiology:
            if profile.max_hr is not None and run.avg_hr > profile.max_hr:
                return True
    pace = run.pace_s_per_km
    if pace is not None and pace < config.hard_pace_s_per_km:
        return True
    return run.distance_m > config.hard_distance_m


def recovery_quality(score: float) -> RecoveryQuality:
    if score >= 30:
        return RecoveryQuality.POOR
    if score >= 15:
        return RecoveryQuality.FAIR
    if score >= 5:
        return RecoveryQuality.GOOD
    return RecoveryQuality.EXCELLENT


def assess_recovery_pattern(
    runs: list[ActivityRecord],
    profile: PhysiologyProfile | None,
    as_of: date,
    config: RiskConfig = DEFAULT_CONFIG.risk,
) -> RiskFactor:
    recent = [r for r in runs if (as_of - r.activity_date).days < 14]
    if len(recent) < 2:
        return _factor(
            RiskFactorName.RECOVERY_PATTERN, 0.0,
            "Recovery looks adequate (excellent)", [], config,
        )

    score = 0.0
    findings: list[str] = []
    gaps = [
        (b.timestamp - a.timestamp).total_seconds() / 3600.0
        for a, b in zip(recent, recent[1:])
    ]
    very_short = sum(1 for g in gaps if g < config.short_rest_hours)
    short = sum(1 for g in gaps if g < config.day_rest_hours)
    if very_short:
        score += config.short_rest_points
        findings.append(f"{very_short} run(s) with under {config.short_rest_hours:g} h of rest")
    elif short > 2:
        score += config.day_rest_points
        findings.append(f"{short} runs with under {config.day_rest_hours:g} h of rest")

    streak = longest = 0
    for r in recent:
        streak = streak + 1 if is_hard_effort(r, profile, config) else 0
        longest = max(longest, streak)
    if longest > config.hard_streak_high:
        score += config.hard_streak_points_high
        findings.append(f"{longest} hard efforts in a row")
    elif longest > 2:
        score += config.hard_streak_points
        findings.append(f"{longest} hard efforts in a row")

    last_week = sum(1 for r in recent if (as_of - r.activity_date).days < 7)
    if last_week > config.weekly_frequency_limit:
        score += config.frequency_points
        findings.append(f"{last_week} runs in the last 7 days")

    quality = recovery_quality(score)
    return _factor(
        RiskFactorName.RECOVERY_PATTERN, score,
        f"Recovery looks adequate ({quality.value})", findings, config,
        suffix=f" ({quality.value} recovery)",
    )


# ---------------------------------------------------------------------------
# Overreaching, warning level, guidance
# ---------------------------------------------------------------------------

def detect_overreaching(
    factors: dict[RiskFactorName, RiskFactor],
    acwr: ComprehensiveAcwr | None,
    negative_tsb_days: int,
    performance_trend: PerformanceTrend,
    config: RiskConfig = DEFAULT_CONFIG.risk,
) -> OverreachingAssessment:
    """Derive the overreaching state from the current indicators.

    Points accumulate from ACWR, factor severities and sustained negative TSB.
    Anything beyond functional overreaching also needs a declining
    performance trend on top of the sustained negative TSB.
    """
    indicators: list[OverreachingIndicator] = []

    if acwr is not None:
        if acwr.overall_status == AcwrStatus.HIGH_RISK:
            indicators.append(OverreachingIndicator("acwr", 3, "Workload ratio in the high-risk range"))
        elif acwr.overall_status == AcwrStatus.CAUTION:
            indicators.append(OverreachingIndicator("acwr", 2, "Workload ratio elevated"))

    perf = factors[RiskFactorName.PERFORMANCE_DECLINE]
    if perf.severity in (RiskSeverity.HIGH, RiskSeverity.CRITICAL) and perf.score > 20:
        points = 3 if perf.severity == RiskSeverity.CRITICAL else 2
        indicators.append(OverreachingIndicator("performance_decline", points, perf.description))

    if factors[RiskFactorName.RECOVERY_PATTERN].score > 25:
        indicators.append(OverreachingIndicator("recovery", 2, "Insufficient recovery between sessions"))

    if factors[RiskFactorName.HEART_RATE_ANOMALY].score > 15:
        indicators.append(OverreachingIndicator("heart_rate", 1, "Unusual heart rate pattern"))

    week = 7
    if negative_tsb_days >= 3 * week:
        tsb_points = 3
    elif negative_tsb_days >= 2 * week:
        tsb_points = 2
    elif negative_tsb_days >= week:
        tsb_points = 1
    else:
        tsb_points = 0
    if tsb_points:
        indicators.append(OverreachingIndicator(
            "negative_tsb", tsb_points,
            f"Training stress balance below {config.negative_tsb:g} on {negative_tsb_days} days",
        ))

    points = sum(i.points for i in indicators)
    functional, non_functional, overtraining = config.overreaching_levels
    if points >= overtraining:
        status = OverreachingStatus.OVERTRAINING
    elif points >= non_functional:
        status = OverreachingStatus.NON_FUNCTIONAL
    elif points >= functional:
        status = OverreachingStatus.FUNCTIONAL
    else:
        status = OverreachingStatus.NORMAL

    sustained = negative_tsb_days >= week
    if status in (OverreachingStatus.NON_FUNCTIONAL, OverreachingStatus.OVERTRAINING) and not (
        sustained and performance_trend == PerformanceTrend.DECLINING
    ):
        status = OverreachingStatus.FUNCTIONAL

    return OverreachingAssessment(
        status=status,
        points=points,
        indicators=tuple(indicators),
        negative_tsb_days=negative_tsb_days,
        performance_trend=performance_trend,
    )


def warning_level(risk_level: RiskSeverity, overreaching: OverreachingStatus) -> WarningLevel:
    if risk_level == RiskSeverity.CRITICAL or overreaching == OverreachingStatus.OVERTRAINING:
        return WarningLevel.IMMEDIATE_REST_RECOMMENDED
    if risk_level == RiskSeverity.HIGH or overreaching == OverreachingStatus.NON_FUNCTIONAL:
        return WarningLevel.CAUTION_ADVISED
    return WarningLevel.MONITOR_CLOSELY


_IMMEDIATE = {
    RiskSeverity.CRITICAL: (
        "Stop high-intensity training now",
        "Take 3-7 days of complete rest",
        "See a sports medicine professional if symptoms persist",
    ),
    RiskSeverity.HIGH: (
        "Halve training intensity this week",
        "Drop planned hard workouts",
        "Keep runs easy and prioritise sleep",
    ),
    RiskSeverity.MODERATE: (
        "Cut weekly volume by 20-30%",
        "Add an extra rest day",
    ),
    RiskSeverity.LOW: (
        "Continue current training and keep monitoring",
    ),
}


def build_recommendations(
    risk_level: RiskSeverity,
    factors: dict[RiskFactorName, RiskFactor],
    overreaching: OverreachingStatus,
) -> Recommendations:
    immediate = list(_IMMEDIATE[risk_level])
    if risk_level in (RiskSeverity.CRITICAL, RiskSeverity.HIGH):
        short_term = [
            "Return at about half of previous volume",
            "Avoid high-intensity sessions for 2 weeks",
        ]
    elif risk_level == RiskSeverity.MODERATE:
        short_term = [
            "Increase weekly load by no more than 10%",
            "Limit hard sessions to 1-2 per week",
        ]
    else:
        short_term = ["Keep progressing load gradually"]
    long_term = [
        "Schedule a recovery week every 3-4 weeks",
        "Track the acute:chronic workload ratio",
    ]
    monitoring = [
        "Monitor resting heart rate each morning",
        "Note persistent fatigue, poor sleep or low mood",
    ]

    def elevated(name: RiskFactorName) -> bool:
        return factors[name].severity in (RiskSeverity.HIGH, RiskSeverity.CRITICAL)

    if elevated(RiskFactorName.TRAINING_LOAD_SPIKE):
        short_term.append("Keep week-over-week distance increases under 10%")
    if elevated(RiskFactorName.RECOVERY_PATTERN):
        immediate.append("Leave at least 24 hours between hard efforts")
    if elevated(RiskFactorName.PERFORMANCE_DECLINE):
        immediate.append("Hold intensity down until pace stabilises")
        monitoring.append("Review performance metrics weekly")
    if overreaching != OverreachingStatus.NORMAL:
        monitoring.append("Check heart rate recovery after standard efforts")

    return Recommendations(
        immediate=tuple(immediate),
        short_term=tuple(short_term),
        long_term=tuple(long_term),
        monitoring=tuple(monitoring),
    )


def build_recovery_guidance(risk_level: RiskSeverity, overreaching: OverreachingStatus) -> RecoveryGuidance:
    severe = _OVERREACHING_ORDER.index(overreaching)
    if risk_level == RiskSeverity.CRITICAL:
        days = 21 if overreaching == OverreachingStatus.OVERTRAINING else 14
    elif risk_level == RiskSeverity.HIGH:
        days = 14 if severe >= 2 else 10
    elif risk_level == RiskSeverity.MODERATE:
        days = 7
    else:
        days = 3

    criteria = [
        "Resting heart rate back at baseline",
        "Easy runs feel easy again",
        "Sleep and motivation back to normal",
    ]
    if risk_level in (RiskSeverity.CRITICAL, RiskSeverity.HIGH):
        criteria.append("Medical clearance if symptoms persist")
    return RecoveryGuidance(estimated_recovery_days=days, return_criteria=tuple(criteria))


# ---------------------------------------------------------------------------
# Assessment
# ---------------------------------------------------------------------------

def _assessment_confidence(runs: list[ActivityRecord], as_of: date) -> float:
    confidence = 0.5
    if len(runs) >= 30:
        confidence += 0.2
    elif len(runs) >= 20:
        confidence += 0.1

    hr_share = sum(1 for r in runs if r.avg_hr) / len(runs)
    if len(runs) >= 30 and hr_share >= 0.7:
        confidence += 0.2
    elif len(runs) >= 20 and hr_share >= 0.5:
        confidence += 0.1

    span = (as_of - runs[0].activity_date).days
    if span <= 30:
        confidence += 0.1
    elif span <= 60:
        confidence += 0.05
    return clamp(confidence, 0.2, 0.95)


def _minimal_assessment(count: int, as_of: date | None, config: RiskConfig) -> InjuryRiskAssessment:
    factors = tuple(
        _factor(name, 5.0, "Not enough recent activities to assess", [], config)
        for name in RiskFactorName
    )
    overreaching = OverreachingAssessment(
        status=OverreachingStatus.NORMAL,
        points=0,
        indicators=(),
        negative_tsb_days=0,
        performance_trend=PerformanceTrend.STABLE,
    )
    return InjuryRiskAssessment(
        factors=factors,
        overall_score=5.0,
        risk_level=RiskSeverity.LOW,
        warning_level=WarningLevel.MONITOR_CLOSELY,
        overreaching=overreaching,
        recommendations=Recommendations(
            immediate=("Continue current training and keep monitoring",),
            short_term=("Log runs consistently, with heart rate where possible",),
            long_term=(),
            monitoring=("Reassess once at least 10 runs are recorded",),
        ),
        recovery=RecoveryGuidance(estimated_recovery_days=0, return_criteria=()),
        activity_count=count,
        as_of=as_of,
    )


def assess_injury_risk(
    activities: list[ActivityRecord],
    profile: PhysiologyProfile | None = None,
    sex: Sex | None = None,
    as_of: date | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
    aggregates: list[DailyLoadAggregate] | None = None,
) -> MetricResult[InjuryRiskAssessment]:
    """Full injury-risk assessment as of `as_of` (default: latest activity date).

    `aggregates` may be passed when the caller already aggregated the
    history; otherwise they are built from `activities`.
    """
    risk = config.risk
    if not activities:
        return insufficient_result(_minimal_assessment(0, as_of, risk), "No activities recorded")

    ordered = sorted(activities, key=lambda a: a.timestamp)
    as_of = as_of or ordered[-1].activity_date
    history = [a for a in ordered if a.activity_date <= as_of]
    window_start = as_of - timedelta(days=risk.window_days - 1)
    runs = [a for a in history if a.activity_date >= window_start]

    if len(runs) < risk.min_activities:
        logger.debug("injury risk on minimal data", extra={"ctx_activities": len(runs)})
        return insufficient_result(
            _minimal_assessment(len(runs), as_of, risk),
            f"{len(runs)} activities in the last {risk.window_days} days; {risk.min_activities} required",
            confidence=risk.minimal_confidence if runs else 0.0,
        )

    if aggregates is None:
        aggregates = aggregate_daily_loads(history, profile, sex, config.trimp)
    else:
        aggregates = [a for a in aggregates if a.day <= as_of]

    acwr_result = comprehensive_acwr(aggregates, as_of, config.acwr)
    acwr = acwr_result.value if acwr_result.confidence > 0 else None
    fitness_result = compute_fitness_state(aggregates, as_of, config.fitness)
    trend = fitness_trend(aggregates, risk.tsb_lookback_days, as_of, config.fitness)
    negative_tsb_days = sum(1 for p in trend if p.tsb < risk.negative_tsb)

    performance, perf_trend = assess_performance_decline(runs, risk)
    factors = {
        RiskFactorName.TRAINING_LOAD_SPIKE: assess_training_load_spike(aggregates, acwr, as_of, risk),
        RiskFactorName.PERFORMANCE_DECLINE: performance,
        RiskFactorName.HEART_RATE_ANOMALY: assess_heart_rate_anomalies(runs, risk),
        RiskFactorName.PACE_CONSISTENCY: assess_pace_consistency(runs, risk),
        RiskFactorName.RECOVERY_PATTERN: assess_recovery_pattern(runs, profile, as_of, risk),
    }

    score = round(overall_risk_score([f.score for f in factors.values()], risk), 1)
    level = severity_for(score, risk)
    overreaching = detect_overreaching(factors, acwr, negative_tsb_days, perf_trend, risk)

    assessment = InjuryRiskAssessment(
        factors=tuple(factors.values()),
        overall_score=score,
        risk_level=level,
        warning_level=warning_level(level, overreaching.status),
        overreaching=overreaching,
        recommendations=build_recommendations(level, factors, overreaching.status),
        recovery=build_recovery_guidance(level, overreaching.status),
        activity_count=len(runs),
        as_of=as_of,
    )

    confidence = bounded_confidence(
        _assessment_confidence(runs, as_of),
        acwr_result.confidence or None,
        fitness_result.confidence or None,
    )
    missing = [*acwr_result.data_quality.missing_data_impact]
    if not any(r.avg_hr for r in runs):
        missing.append("No heart rate data; heart rate anomalies not assessed")
    warnings = []
    if level in (RiskSeverity.HIGH, RiskSeverity.CRITICAL):
        warnings.append(f"Injury risk {level.value} (score {score:g})")
    if overreaching.status != OverreachingStatus.NORMAL:
        warnings.append(f"Overreaching: {overreaching.status.value}")

    logger.info(
        "injury risk assessed",
        extra={"ctx_score": score, "ctx_level": level.value, "ctx_overreaching": overreaching.status.value},
    )
    return make_result(
        assessment,
        confidence,
        CalculationMethod.COMPOSITE_RISK,
        flags=[*acwr_result.flags, *fitness_result.flags],
        missing=missing,
        warnings=warnings,
    )


def compare_risk_assessments(
    previous: InjuryRiskAssessment,
    current: InjuryRiskAssessment,
) -> RiskResolution:
    """Which factors resolved or worsened between two assessments."""
    improving, worsening, stable = [], [], []
    for name in RiskFactorName:
        change = current.factor(name).score - previous.factor(name).score
        if change < -10:
            improving.append(name)
        elif change > 10:
            worsening.append(name)
        else:
            stable.append(name)

    delta = current.overall_score - previous.overall_score
    if delta < -15:
        overall = RiskTrend.IMPROVING
    elif delta > 15:
        overall = RiskTrend.WORSENING
    else:
        overall = RiskTrend.STABLE

    ready = (
        current.risk_level == RiskSeverity.LOW
        and current.overreaching.status == OverreachingStatus.NORMAL
        and len(improving) >= len(worsening)
    )
    return RiskResolution(
        improving=tuple(improving),
        worsening=tuple(worsening),
        stable=tuple(stable),
        overall_trend=overall,
        ready_for_progression=ready,
    )
