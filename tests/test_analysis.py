"""Tests for single-activity and whole-history orchestration."""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta

from runmetrics.config import EngineConfig
from runmetrics.errors import QualityFlag
from runmetrics.models import ActivityRecord, PhysiologyProfile, Split, WeatherSnapshot
from runmetrics.quality import CalculationMethod
from runmetrics.services.analysis import (
    DataQualityLabel,
    analyze_history,
    process_activity,
    quality_label,
    resolve_profile,
)
from runmetrics.services.fitness import FitnessStatus
from runmetrics.services.injury_risk import RiskSeverity

PROFILE = PhysiologyProfile(resting_hr=50.0, max_hr=190.0, weight_kg=70.0)
START = datetime(2024, 1, 1, 7)


def _run(i, avg_hr=150.0, weather=None, splits=()):
    return ActivityRecord(
        id=f"r{i}",
        timestamp=START + timedelta(days=i),
        distance_m=10000.0,
        moving_time_s=3000.0,
        avg_hr=avg_hr,
        weather=weather,
        splits=splits,
    )


def test_resolve_profile_complete():
    ctx = resolve_profile(PROFILE)
    assert ctx.confidence_cap is None
    assert ctx.flags == ()


def test_resolve_profile_defaults():
    ctx = resolve_profile(None, age=30)
    assert ctx.profile.max_hr == 190.0
    assert QualityFlag.DEFAULTED_PHYSIOLOGY in ctx.flags
    assert ctx.confidence_cap == 0.7


def test_resolve_profile_invalid():
    ctx = resolve_profile(PhysiologyProfile(resting_hr=200.0, max_hr=180.0, weight_kg=70.0))
    assert QualityFlag.INVALID_PHYSIOLOGY in ctx.flags
    assert ctx.confidence_cap == 0.5


def test_quality_label():
    assert quality_label(0.9) == DataQualityLabel.HIGH
    assert quality_label(0.6) == DataQualityLabel.MEDIUM
    assert quality_label(0.2) == DataQualityLabel.LOW


def test_process_activity():
    result = process_activity(_run(0, weather=WeatherSnapshot(15.0, 50.0, 5.0)), PROFILE)
    summary = result.value
    assert summary.trimp.confidence == 0.9
    assert summary.decoupling.value is None
    assert summary.pace_adjustment.value.total_adjustment == 0.0
    # bounded by every metric that produced a value
    produced = [r.confidence for r in (summary.trimp, summary.vo2max, summary.pace_adjustment) if r.confidence > 0]
    assert result.confidence == min(produced)
    assert result.calculation_method == CalculationMethod.ACTIVITY_SUMMARY


def test_process_activity_with_defaulted_profile():
    result = process_activity(_run(0), None)
    assert result.value.trimp.has_flag(QualityFlag.DEFAULTED_PHYSIOLOGY)
    assert result.value.trimp.confidence <= 0.7
    assert result.confidence <= 0.7


def test_process_activity_with_invalid_profile_falls_back():
    profile = PhysiologyProfile(resting_hr=200.0, max_hr=180.0, weight_kg=70.0)
    result = process_activity(_run(0), profile)
    assert result.value.trimp.calculation_method == CalculationMethod.PACE_ESTIMATED_TRIMP
    assert result.value.trimp.has_flag(QualityFlag.INVALID_PHYSIOLOGY)
    assert result.confidence <= 0.5


def test_process_long_run_includes_decoupling():
    splits = (Split(6000.0, 1800.0, 150.0), Split(6000.0, 1800.0, 150.0))
    run = ActivityRecord("long", START, 12000.0, 3600.0, avg_hr=150.0, splits=splits)
    result = process_activity(run, PROFILE)
    assert result.value.decoupling.value.decoupling_pct == 0.0


def test_empty_history_is_neutral():
    analysis = analyze_history([], PROFILE)
    assert analysis.activity_count == 0
    assert analysis.fitness.confidence == 0.0
    assert analysis.fitness.value.status == FitnessStatus.NEUTRAL
    assert analysis.acwr.confidence == 0.0
    assert analysis.injury_risk.confidence == 0.0
    assert analysis.vo2max_trend.confidence == 0.0
    assert analysis.decoupling_trend.value is None
    json.dumps(analysis.to_dict())


def test_short_history_fitness_has_zero_confidence():
    analysis = analyze_history([_run(i) for i in range(4)], PROFILE)
    assert analysis.fitness.confidence == 0.0
    assert analysis.fitness.value.status == FitnessStatus.NEUTRAL
    assert analysis.training_windows is None


def test_analyze_history():
    runs = [_run(i) for i in range(50)]
    analysis = analyze_history(runs, PROFILE)
    assert analysis.as_of == date(2024, 2, 19)
    assert analysis.activity_count == 50
    assert len(analysis.daily_loads) == 50
    assert analysis.fitness.value.status == FitnessStatus.NEUTRAL
    assert analysis.injury_risk.value.risk_level == RiskSeverity.LOW
    assert analysis.training_windows is not None
    assert len(analysis.fitness_trend) == 30
    # never more confident than the daily loads it is built on
    assert analysis.fitness.confidence <= min(a.load_confidence for a in analysis.daily_loads)
    out = analysis.to_dict()
    assert out["fitness"]["calculationMethod"] == "ewma_ctl_atl"
    json.dumps(out)


def test_analyze_history_as_of():
    runs = [_run(i) for i in range(50)]
    analysis = analyze_history(runs, PROFILE, as_of=date(2024, 1, 20))
    assert analysis.activity_count == 20
    assert analysis.daily_loads[-1].day == date(2024, 1, 20)


def test_analyze_history_is_deterministic():
    runs = [_run(i, avg_hr=140.0 + i % 5 * 5) for i in range(45)]
    assert analyze_history(runs, PROFILE).to_dict() == analyze_history(list(reversed(runs)), PROFILE).to_dict()


def test_analyze_history_uses_config():
    runs = [_run(i) for i in range(50)]
    config = EngineConfig(fitness_trend_days=10)
    assert len(analyze_history(runs, PROFILE, config=config).fitness_trend) == 10


def test_zero_time_splits_do_not_break_history():
    run = ActivityRecord("z", START, 10000.0, 3000.0, avg_hr=150.0,
                         splits=(Split(5000.0, 0.0), Split(5000.0, 0.0)))
    analysis = analyze_history([run], PROFILE)
    assert analysis.activity_count == 1


def test_defaulted_profile_caps_decoupling():
    splits = (Split(6000.0, 1800.0, 150.0), Split(6000.0, 1800.0, 152.0))
    runs = [
        ActivityRecord(f"long{i}", START + timedelta(days=7 * i), 12000.0, 3600.0, avg_hr=151.0, splits=splits)
        for i in range(4)
    ]
    single = process_activity(runs[0], None, age=30)
    assert single.value.decoupling.value is not None
    assert single.value.decoupling.has_flag(QualityFlag.DEFAULTED_PHYSIOLOGY)
    assert 0 < single.value.decoupling.confidence <= 0.7

    trend = analyze_history(runs, None, age=30).decoupling_trend
    assert trend.value is not None
    assert trend.has_flag(QualityFlag.DEFAULTED_PHYSIOLOGY)
    assert trend.confidence <= 0.7
