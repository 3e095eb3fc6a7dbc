"""Tests for VO2max estimation, steady-state detection and trends."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from runmetrics.errors import QualityFlag
from runmetrics.models import ActivityRecord, PhysiologyProfile, Split
from runmetrics.quality import CalculationMethod
from runmetrics.services.vo2max import (
    FitnessLevel,
    Vo2maxTrendDirection,
    current_vo2max,
    detect_steady_state,
    estimate_vo2max,
    fitness_level,
    rolling_vo2max,
    vo2max_trend,
)

PROFILE = PhysiologyProfile(resting_hr=50.0, max_hr=190.0)
START = datetime(2024, 1, 1, 7)


def _run(id="r", when=START, distance=10000.0, seconds=3000.0, avg_hr=None, max_hr=None, elevation=None):
    return ActivityRecord(
        id=id,
        timestamp=when,
        distance_m=distance,
        moving_time_s=seconds,
        elevation_gain_m=elevation,
        avg_hr=avg_hr,
        max_hr=max_hr,
    )


def test_heart_rate_method_preferred():
    result = estimate_vo2max(_run(avg_hr=150.0), PROFILE)
    assert result.calculation_method == CalculationMethod.VO2MAX_HEART_RATE
    assert result.value.effort_ratio == pytest.approx(100 / 140, abs=1e-3)
    assert 25 < result.value.vo2max < 80


def test_heart_rate_estimate_increases_with_effort():
    values = [estimate_vo2max(_run(avg_hr=hr), PROFILE).value.vo2max for hr in (130.0, 140.0, 150.0, 160.0, 170.0)]
    assert all(b > a for a, b in zip(values, values[1:]))


def test_pace_method_without_heart_rate():
    result = estimate_vo2max(_run(), PROFILE)
    assert result.calculation_method == CalculationMethod.VO2MAX_PACE
    assert result.has_flag(QualityFlag.ESTIMATED)
    assert result.value.effort_ratio is None
    # 5:00/km sits in the 45 band, +1 for 10 km, scaled by steady-state quality
    assert result.value.vo2max == pytest.approx(43.9, abs=0.1)


def test_pace_method_rewards_distance():
    five_k = estimate_vo2max(_run(distance=5000.0, seconds=1500.0)).value.vo2max
    half = estimate_vo2max(_run(distance=21100.0, seconds=6330.0)).value.vo2max
    assert half > five_k


def test_pace_method_penalises_very_short_runs():
    short = estimate_vo2max(_run(distance=1500.0, seconds=450.0))
    longer = estimate_vo2max(_run(distance=3000.0, seconds=900.0))
    assert short.value.vo2max < longer.value.vo2max
    assert short.confidence < longer.confidence


def test_invalid_hr_falls_back_to_pace():
    result = estimate_vo2max(_run(avg_hr=200.0), PROFILE)
    assert result.calculation_method == CalculationMethod.VO2MAX_PACE
    assert result.has_flag(QualityFlag.INVALID_PHYSIOLOGY)


def test_too_short_without_hr_is_insufficient():
    result = estimate_vo2max(_run(distance=800.0, seconds=240.0))
    assert result.confidence == 0.0
    assert result.value.vo2max == 0.0


def test_implausible_estimate_is_flagged_not_dropped():
    profile = PhysiologyProfile(resting_hr=35.0, max_hr=200.0)
    result = estimate_vo2max(_run(avg_hr=190.0), profile)
    assert result.value.vo2max > 80
    assert result.has_flag(QualityFlag.IMPLAUSIBLE_ESTIMATE)
    assert result.warnings


def test_steady_state_short_run():
    steady = detect_steady_state(_run(seconds=300.0, distance=1000.0))
    assert not steady.is_steady
    assert steady.confidence == pytest.approx(0.2)


def test_steady_state_even_heart_rate():
    steady = detect_steady_state(_run(avg_hr=150.0, max_hr=155.0, elevation=50.0))
    assert steady.is_steady
    assert steady.confidence == pytest.approx(1.0)


def test_steady_state_hilly_route():
    flat = detect_steady_state(_run(elevation=50.0))
    hilly = detect_steady_state(_run(elevation=600.0))
    assert hilly.confidence < flat.confidence


def test_non_steady_run_attenuates_confidence():
    steady = estimate_vo2max(_run(avg_hr=150.0), PROFILE)
    varied = estimate_vo2max(_run(avg_hr=150.0, max_hr=200.0), PROFILE)
    assert varied.value.vo2max > 0
    assert varied.confidence < steady.confidence


def test_fitness_level():
    assert fitness_level(61.0) == FitnessLevel.SUPERIOR
    assert fitness_level(45.0) == FitnessLevel.GOOD
    assert fitness_level(30.0) == FitnessLevel.POOR


def _series(heart_rates, every_days=5):
    return [
        _run(f"r{i}", START + timedelta(days=i * every_days), avg_hr=hr)
        for i, hr in enumerate(heart_rates)
    ]


def test_rolling_vo2max_constant():
    points = rolling_vo2max(_series([150.0] * 10, every_days=2), PROFILE)
    assert len(points) == 9
    assert len({p.vo2max for p in points}) == 1
    assert all(p.trend == Vo2maxTrendDirection.STABLE for p in points)


def test_rolling_window_is_thirty_days():
    runs = _series([150.0] * 3, every_days=40)
    assert rolling_vo2max(runs, PROFILE) == []


def test_vo2max_trend_improving():
    hrs = [130.0 + i * 3 for i in range(14)]
    result = vo2max_trend(_series(hrs), PROFILE)
    assert result.value.direction == Vo2maxTrendDirection.IMPROVING
    assert result.value.change_per_month > 0.3


def test_vo2max_trend_declining():
    hrs = [170.0 - i * 3 for i in range(14)]
    result = vo2max_trend(_series(hrs), PROFILE)
    assert result.value.direction == Vo2maxTrendDirection.DECLINING


def test_vo2max_trend_empty():
    result = vo2max_trend([], PROFILE)
    assert result.confidence == 0.0
    assert result.value.direction == Vo2maxTrendDirection.STABLE


def test_current_vo2max():
    runs = _series([150.0, 155.0])
    result = current_vo2max(runs, PROFILE)
    assert result.value.activity_id == "r1"
    assert current_vo2max([], PROFILE).value is None


def test_deterministic():
    runs = _series([140.0, 150.0, 145.0, 160.0])
    assert vo2max_trend(runs, PROFILE) == vo2max_trend(runs, PROFILE)


def test_vo2max_trend_confidence_bounded_by_estimates():
    runs = _series([140.0 + i for i in range(14)])
    lowest = min(estimate_vo2max(r, PROFILE).confidence for r in runs)
    result = vo2max_trend(runs, PROFILE)
    assert result.confidence > 0
    assert result.confidence <= lowest
    assert all(p.min_confidence <= 1.0 for p in result.value.points)


def test_zero_time_splits_are_ignored():
    run = replace(_run(avg_hr=150.0), splits=(Split(5000.0, 0.0), Split(5000.0, 0.0)))
    steady = detect_steady_state(run)
    assert "Even pacing across splits" not in steady.reasons
    assert estimate_vo2max(run, PROFILE).value.vo2max > 0
