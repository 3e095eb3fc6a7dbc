"""Tests for the composite injury-risk and overreaching assessment."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta

import pytest

from runmetrics.errors import QualityFlag
from runmetrics.models import ActivityRecord, PhysiologyProfile
from runmetrics.services.acwr import AcwrStatus, comprehensive_acwr
from runmetrics.services.injury_risk import (
    OverreachingStatus,
    PerformanceTrend,
    RiskFactor,
    RiskFactorName,
    RiskSeverity,
    RiskTrend,
    assess_injury_risk,
    compare_risk_assessments,
    detect_overreaching,
    overall_risk_score,
    severity_for,
)
from runmetrics.services.training_load import aggregate_daily_loads

PROFILE = PhysiologyProfile(resting_hr=50.0, max_hr=190.0)
START = datetime(2024, 1, 1, 7)


def _run(i, distance=10000.0, seconds=3000.0, avg_hr=150.0):
    return ActivityRecord(
        id=f"r{i}",
        timestamp=START + timedelta(days=i),
        distance_m=distance,
        moving_time_s=seconds,
        avg_hr=avg_hr,
    )


def _steady_history(days=40):
    return [_run(i) for i in range(days)]


def _spike_history():
    easy = [_run(i, 5000.0, 1800.0, 140.0) for i in range(30)]
    hard = [_run(i, 15000.0, 4500.0, 150.0) for i in range(30, 37)]
    return easy + hard


def test_severity_for_is_monotonic():
    assert severity_for(0) == RiskSeverity.LOW
    assert severity_for(29.9) == RiskSeverity.LOW
    assert severity_for(30) == RiskSeverity.MODERATE
    assert severity_for(55) == RiskSeverity.HIGH
    assert severity_for(80) == RiskSeverity.HIGH
    assert severity_for(80.1) == RiskSeverity.CRITICAL


def test_overall_risk_score_weights_by_rank():
    assert overall_risk_score([]) == 0.0
    assert overall_risk_score([40.0, 40.0]) == pytest.approx(40.0)
    assert overall_risk_score([0.0, 100.0]) == pytest.approx(100 / 1.8)


def test_no_activities():
    result = assess_injury_risk([], PROFILE)
    assert result.confidence == 0.0
    assert result.value.risk_level == RiskSeverity.LOW
    assert result.value.overreaching.status == OverreachingStatus.NORMAL


def test_few_activities_gives_minimal_assessment():
    result = assess_injury_risk(_steady_history(5), PROFILE)
    assert result.confidence == 0.3
    assert result.has_flag(QualityFlag.INSUFFICIENT_DATA)
    assert all(f.severity == RiskSeverity.LOW for f in result.value.factors)
    assert result.value.activity_count == 5


def test_steady_training_is_low_risk():
    runs = _steady_history()
    result = assess_injury_risk(runs, PROFILE)
    assessment = result.value
    assert assessment.risk_level == RiskSeverity.LOW
    assert assessment.overreaching.status == OverreachingStatus.NORMAL
    assert assessment.factor(RiskFactorName.TRAINING_LOAD_SPIKE).score == 0.0
    assert assessment.factor(RiskFactorName.PACE_CONSISTENCY).score == 0.0
    assert len(assessment.factors) == 5
    assert assessment.recommendations.immediate


def test_risk_confidence_bounded_by_inputs():
    runs = _steady_history()
    aggregates = aggregate_daily_loads(runs, PROFILE)
    acwr = comprehensive_acwr(aggregates)
    result = assess_injury_risk(runs, PROFILE)
    assert result.confidence <= acwr.confidence
    assert result.confidence <= 0.9


def test_load_spike_is_detected():
    result = assess_injury_risk(_spike_history(), PROFILE)
    spike = result.value.factor(RiskFactorName.TRAINING_LOAD_SPIKE)
    assert spike.score >= 55
    assert spike.severity in (RiskSeverity.HIGH, RiskSeverity.CRITICAL)
    assert spike.findings
    assert result.value.overreaching.status == OverreachingStatus.FUNCTIONAL


def test_as_of_ignores_later_activities():
    runs = _spike_history()
    before = assess_injury_risk(runs, PROFILE, as_of=date(2024, 1, 30))
    assert before.value.as_of == date(2024, 1, 30)
    assert before.value.activity_count == 30
    assert before.value.factor(RiskFactorName.TRAINING_LOAD_SPIKE).score < 55


def test_reuses_supplied_aggregates():
    runs = _steady_history()
    aggregates = aggregate_daily_loads(runs, PROFILE)
    assert assess_injury_risk(runs, PROFILE, aggregates=aggregates) == assess_injury_risk(runs, PROFILE)


def _factors(perf=0.0, recovery=0.0, hr=0.0):
    def factor(name, score):
        return RiskFactor(name=name, score=score, severity=severity_for(score), description="")
    return {
        RiskFactorName.TRAINING_LOAD_SPIKE: factor(RiskFactorName.TRAINING_LOAD_SPIKE, 0.0),
        RiskFactorName.PERFORMANCE_DECLINE: factor(RiskFactorName.PERFORMANCE_DECLINE, perf),
        RiskFactorName.HEART_RATE_ANOMALY: factor(RiskFactorName.HEART_RATE_ANOMALY, hr),
        RiskFactorName.PACE_CONSISTENCY: factor(RiskFactorName.PACE_CONSISTENCY, 0.0),
        RiskFactorName.RECOVERY_PATTERN: factor(RiskFactorName.RECOVERY_PATTERN, recovery),
    }


def test_overreaching_normal_without_indicators():
    status = detect_overreaching(_factors(), None, 0, PerformanceTrend.STABLE)
    assert status.status == OverreachingStatus.NORMAL
    assert status.points == 0


def test_overtraining_needs_declining_performance():
    factors = _factors(perf=90.0, recovery=30.0, hr=20.0)
    stable = detect_overreaching(factors, None, 21, PerformanceTrend.STABLE)
    declining = detect_overreaching(factors, None, 21, PerformanceTrend.DECLINING)
    assert stable.points == declining.points == 9
    assert stable.status == OverreachingStatus.FUNCTIONAL
    assert declining.status == OverreachingStatus.OVERTRAINING


def test_non_functional_overreaching():
    factors = _factors(perf=60.0, recovery=30.0)
    result = detect_overreaching(factors, None, 14, PerformanceTrend.DECLINING)
    assert result.points == 6
    assert result.status == OverreachingStatus.NON_FUNCTIONAL


def test_compare_risk_assessments():
    previous = assess_injury_risk(_steady_history(), PROFILE).value
    worse_factors = tuple(
        replace(f, score=f.score + 40.0) if f.name == RiskFactorName.RECOVERY_PATTERN else f
        for f in previous.factors
    )
    current = replace(previous, factors=worse_factors, overall_score=previous.overall_score + 20.0)
    resolution = compare_risk_assessments(previous, current)
    assert resolution.worsening == (RiskFactorName.RECOVERY_PATTERN,)
    assert resolution.overall_trend == RiskTrend.WORSENING

    back = compare_risk_assessments(current, previous)
    assert back.improving == (RiskFactorName.RECOVERY_PATTERN,)
    assert back.overall_trend == RiskTrend.IMPROVING
    assert back.ready_for_progression


def test_high_acwr_counts_toward_overreaching():
    acwr = comprehensive_acwr(aggregate_daily_loads(_spike_history(), PROFILE)).value
    assert acwr.overall_status == AcwrStatus.HIGH_RISK
    result = detect_overreaching(_factors(), acwr, 0, PerformanceTrend.STABLE)
    assert result.points == 3
    assert result.status == OverreachingStatus.FUNCTIONAL


def test_deterministic():
    runs = _spike_history()
    assert assess_injury_risk(runs, PROFILE) == assess_injury_risk(runs, PROFILE)
