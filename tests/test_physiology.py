"""Tests for physiology defaults and plausibility checks."""

from __future__ import annotations

import pytest

from runmetrics.errors import InsufficientData, InvalidPhysiology, QualityFlag
from runmetrics.models import PhysiologyProfile, Sex
from runmetrics.services.physiology import default_physiology, resolve_physiology, validate_physiology


def test_default_physiology_uses_age_predicted_max():
    p = default_physiology(age=40, sex=Sex.FEMALE)
    assert p.max_hr == 180.0
    assert p.resting_hr == 65.0
    assert p.weight_kg == 65.0


def test_default_physiology_without_age_or_sex():
    p = default_physiology()
    assert p.max_hr == 185.0
    assert p.resting_hr == 60.0


def test_resolve_none_substitutes_everything():
    profile, substituted = resolve_physiology(None)
    assert profile.has_heart_rate_bounds
    assert set(substituted) == {"resting_hr", "max_hr", "weight_kg"}


def test_resolve_keeps_recorded_fields():
    profile, substituted = resolve_physiology(PhysiologyProfile(resting_hr=48.0))
    assert profile.resting_hr == 48.0
    assert substituted == ("max_hr", "weight_kg")


def test_validate_rejects_resting_above_max():
    v = validate_physiology(PhysiologyProfile(resting_hr=70.0, max_hr=60.0))
    assert not v.is_valid


def test_validate_rejects_impossible_resting():
    v = validate_physiology(PhysiologyProfile(resting_hr=25.0))
    assert not v.is_valid


def test_validate_warns_on_unusual_values():
    v = validate_physiology(PhysiologyProfile(resting_hr=95.0, max_hr=190.0))
    assert v.is_valid
    assert v.warnings


def test_validate_warns_on_small_reserve():
    v = validate_physiology(PhysiologyProfile(resting_hr=80.0, max_hr=125.0))
    assert v.is_valid
    assert any("reserve" in w for w in v.warnings)


def test_heart_rate_reserve():
    assert PhysiologyProfile(resting_hr=50.0, max_hr=190.0).heart_rate_reserve() == 140.0
    with pytest.raises(InvalidPhysiology):
        PhysiologyProfile(resting_hr=190.0, max_hr=190.0).heart_rate_reserve()
    with pytest.raises(InsufficientData):
        PhysiologyProfile(max_hr=190.0).heart_rate_reserve()


def test_reserve_fraction_outside_range():
    profile = PhysiologyProfile(resting_hr=50.0, max_hr=190.0)
    assert profile.reserve_fraction(120.0) == 0.5
    with pytest.raises(InvalidPhysiology):
        profile.reserve_fraction(200.0)


def test_errors_carry_their_quality_flag():
    with pytest.raises(InvalidPhysiology) as exc_info:
        PhysiologyProfile(resting_hr=190.0, max_hr=190.0).heart_rate_reserve()
    assert exc_info.value.flag == QualityFlag.INVALID_PHYSIOLOGY
    with pytest.raises(InsufficientData) as exc_info:
        PhysiologyProfile(max_hr=190.0).heart_rate_reserve()
    assert exc_info.value.flag == QualityFlag.INSUFFICIENT_DATA
