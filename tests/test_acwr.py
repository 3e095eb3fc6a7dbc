"""Tests for the acute:chronic workload ratio."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from runmetrics.errors import QualityFlag
from runmetrics.models import DailyLoadAggregate
from runmetrics.services.acwr import (
    AcwrStatus,
    LoadMetric,
    LoadTrend,
    acwr_trend,
    classify_acwr,
    compute_acwr,
    comprehensive_acwr,
)

START = date(2024, 1, 1)


def _days(loads, distances=None, start=START):
    distances = distances or [10000.0] * len(loads)
    return [
        DailyLoadAggregate(start + timedelta(days=i), float(d), float(load), 3000.0, 1)
        for i, (load, d) in enumerate(zip(loads, distances))
    ]


def test_classify_acwr_boundaries():
    assert classify_acwr(0.79) == AcwrStatus.DETRAINING
    assert classify_acwr(0.8) == AcwrStatus.OPTIMAL
    assert classify_acwr(1.3) == AcwrStatus.OPTIMAL
    assert classify_acwr(1.31) == AcwrStatus.CAUTION
    assert classify_acwr(1.5) == AcwrStatus.CAUTION
    assert classify_acwr(1.51) == AcwrStatus.HIGH_RISK


def test_constant_load_is_optimal():
    result = compute_acwr(_days([50] * 42))
    assert result.value.acwr == 1.0
    assert result.value.status == AcwrStatus.OPTIMAL
    assert result.confidence == 1.0


def test_new_training_with_no_chronic_base_is_high_risk():
    result = compute_acwr(_days([100] * 7))
    # acute 100/day against 700 spread over 28 days
    assert result.value.acute_load == 100.0
    assert result.value.chronic_load == 25.0
    assert result.value.acwr == 4.0
    assert result.value.status == AcwrStatus.HIGH_RISK
    assert result.data_quality.missing_data_impact
    assert result.warnings


def test_too_little_history():
    result = compute_acwr(_days([100] * 6))
    assert result.confidence == 0.0
    assert result.has_flag(QualityFlag.INSUFFICIENT_HISTORY)


def test_rest_after_training_is_detraining():
    aggregates = _days([100] * 28)
    result = compute_acwr(aggregates, as_of=START + timedelta(days=34))
    assert result.value.acute_load == 0.0
    assert result.value.status == AcwrStatus.DETRAINING


def test_rising_load_is_caution():
    result = compute_acwr(_days([50] * 21 + [80] * 7))
    assert result.value.acwr == pytest.approx(1.39, abs=0.01)
    assert result.value.status == AcwrStatus.CAUTION


def test_distance_metric():
    aggregates = _days([50] * 28, distances=[5000.0] * 21 + [15000.0] * 7)
    result = compute_acwr(aggregates, LoadMetric.DISTANCE)
    assert result.value.metric == LoadMetric.DISTANCE
    assert result.value.acwr == 2.0


def test_trimp_confidence_bounded_by_load_confidence():
    aggregates = [
        DailyLoadAggregate(START + timedelta(days=i), 10000.0, 50.0, 3000.0, 1, load_confidence=0.6)
        for i in range(42)
    ]
    assert compute_acwr(aggregates, LoadMetric.TRIMP).confidence == 0.6
    assert compute_acwr(aggregates, LoadMetric.DISTANCE).confidence == 1.0


def test_comprehensive_takes_conservative_status():
    aggregates = _days([50] * 21 + [150] * 7)
    result = comprehensive_acwr(aggregates)
    assert result.value.distance.status == AcwrStatus.OPTIMAL
    assert result.value.trimp.status == AcwrStatus.HIGH_RISK
    assert result.value.overall_status == AcwrStatus.HIGH_RISK
    assert "disagree" in result.value.recommendation


def test_comprehensive_empty():
    result = comprehensive_acwr([])
    assert result.confidence == 0.0


def test_acwr_trend_increasing():
    trend = acwr_trend(_days([50] * 35 + [150] * 14))
    assert trend.trend == LoadTrend.INCREASING
    assert len(trend.points) == 28


def test_acwr_trend_stable():
    trend = acwr_trend(_days([50] * 60))
    assert trend.trend == LoadTrend.STABLE
    assert trend.change_pct == 0.0


def test_later_days_do_not_lower_confidence():
    history = _days([50.0] * 50) + [
        DailyLoadAggregate(START + timedelta(days=50 + i), 10000.0, 50.0, 3000.0, 1, load_confidence=0.6)
        for i in range(5)
    ]
    result = compute_acwr(history, LoadMetric.TRIMP, as_of=START + timedelta(days=49))
    assert result.confidence == 1.0
    assert compute_acwr(history, LoadMetric.TRIMP).confidence == 0.6
