"""Physiology defaults and plausibility checks.

When an athlete has not recorded resting/max heart rate or weight, the
engine substitutes population defaults (age-predicted max HR, sex-specific
resting HR and weight) and reports which fields were substituted.

Reference: Fox et al. (1971) age-predicted maximum heart rate, 220 - age.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from runmetrics.models import PhysiologyProfile, Sex

DEFAULT_AGE = 35

_DEFAULT_RESTING_HR = {Sex.MALE: 60.0, Sex.FEMALE: 65.0}
_DEFAULT_WEIGHT_KG = {Sex.MALE: 75.0, Sex.FEMALE: 65.0}

# (warn range, invalid range)
_RESTING_HR_RANGES = ((40.0, 90.0), (30.0, 120.0))
_MAX_HR_RANGES = ((150.0, 210.0), (120.0, 250.0))
_WEIGHT_RANGES = ((40.0, 150.0), (30.0, 200.0))
_MIN_HR_RESERVE = 50.0


@dataclass(frozen=True)
class PhysiologyValidation:
    is_valid: bool
    errors: tuple[str, ...]
    warnings: tuple[str, ...]


def default_physiology(age: int | None = None, sex: Sex | None = None) -> PhysiologyProfile:
    """Population defaults. Unknown sex uses the male values."""
    sex = sex or Sex.MALE
    age = age if age and age > 0 else DEFAULT_AGE
    return PhysiologyProfile(
        resting_hr=_DEFAULT_RESTING_HR[sex],
        max_hr=float(220 - age),
        weight_kg=_DEFAULT_WEIGHT_KG[sex],
    )


def resolve_physiology(
    profile: PhysiologyProfile | None,
    age: int | None = None,
    sex: Sex | None = None,
) -> tuple[PhysiologyProfile, tuple[str, ...]]:
    """Fill missing profile fields with defaults.

    Returns the completed profile and the names of substituted fields.
    """
    defaults = default_physiology(age, sex)
    if profile is None:
        return defaults, ("resting_hr", "max_hr", "weight_kg")

    substituted: list[str] = []
    updates: dict[str, float] = {}
    for name in ("resting_hr", "max_hr", "weight_kg"):
        if getattr(profile, name) is None:
            updates[name] = getattr(defaults, name)
            substituted.append(name)
    return replace(profile, **updates), tuple(substituted)


def _check_range(label: str, value: float, ranges, errors: list[str], warnings: list[str]) -> None:
    (warn_low, warn_high), (bad_low, bad_high) = ranges
    if value < bad_low or value > bad_high:
        errors.append(f"{label} {value:g} outside plausible range {bad_low:g}-{bad_high:g}")
    elif value < warn_low or value > warn_high:
        warnings.append(f"{label} {value:g} is unusual (typical {warn_low:g}-{warn_high:g})")


def validate_physiology(profile: PhysiologyProfile) -> PhysiologyValidation:
    """Check a profile against plausible human ranges. Absent fields are skipped."""
    errors: list[str] = []
    warnings: list[str] = []

    if profile.resting_hr is not None:
        _check_range("resting heart rate", profile.resting_hr, _RESTING_HR_RANGES, errors, warnings)
    if profile.max_hr is not None:
        _check_range("max heart rate", profile.max_hr, _MAX_HR_RANGES, errors, warnings)
    if profile.weight_kg is not None:
        _check_range("weight", profile.weight_kg, _WEIGHT_RANGES, errors, warnings)

    if profile.has_heart_rate_bounds:
        if profile.resting_hr >= profile.max_hr:
            errors.append("resting heart rate must be below max heart rate")
        elif profile.max_hr - profile.resting_hr < _MIN_HR_RESERVE:
            warnings.append("heart rate reserve is unusually small")

    return PhysiologyValidation(is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings))
