"""Engine configuration with environment-specific profiles.

Threshold tables live in frozen dataclasses, one per calculator, and are
passed into each calculator explicitly so tests can substitute them without
touching module state. Settings are resolved from APP_ENV profiles and can be
overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace


# ---------------------------------------------------------------------------
# Calculator threshold tables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrimpConfig:
    weighting_factor: float = 1.8           # Banister k when sex is unknown
    male_weighting_factor: float = 1.92
    female_weighting_factor: float = 1.67
    intensity_scale: float = 0.64
    hr_confidence: float = 0.9
    estimated_confidence: float = 0.6
    # (pace upper bound s/km, RPE); slower than the last band → slowest_rpe
    pace_rpe_bands: tuple[tuple[float, float], ...] = (
        (210.0, 8.0), (240.0, 7.0), (270.0, 6.0), (300.0, 5.0),
        (330.0, 4.0), (360.0, 3.5), (420.0, 3.0),
    )
    slowest_rpe: float = 2.0
    reference_duration_min: float = 30.0
    duration_factor_span_min: float = 180.0
    max_duration_factor: float = 1.2
    # upper bounds for very_easy, easy, moderate, hard
    interpretation_bounds: tuple[float, float, float, float] = (30.0, 60.0, 100.0, 150.0)


@dataclass(frozen=True)
class FitnessConfig:
    ctl_span: int = 42
    atl_span: int = 7
    min_history_days: int = 7
    full_confidence_days: int = 42
    limited_history_confidence: float = 0.8
    fresh_above: float = 25.0
    neutral_floor: float = -5.0
    very_fatigued_at: float = -30.0
    # (TSB upper bound, recovery days) checked in order
    recovery_bands: tuple[tuple[float, int], ...] = ((-30.0, 7), (-10.0, 3), (5.0, 1))


@dataclass(frozen=True)
class AcwrConfig:
    acute_days: int = 7
    chronic_days: int = 28
    min_history_days: int = 7
    full_confidence_days: int = 42
    optimal_low: float = 0.8
    optimal_high: float = 1.3
    caution_high: float = 1.5
    trend_change: float = 0.10


@dataclass(frozen=True)
class RiskConfig:
    window_days: int = 90
    min_activities: int = 10
    minimal_confidence: float = 0.3
    # upper bounds for low, moderate, high; anything above is critical
    severity_bounds: tuple[float, float, float] = (30.0, 55.0, 80.0)
    factor_weight_decay: float = 0.8

    # load spike
    spike_weeks: int = 8
    spike_recent_weeks: int = 3
    spike_count_above: float = 0.10
    spike_moderate: float = 0.20
    spike_major: float = 0.30
    spike_extreme: float = 0.50
    acwr_high_risk_points: float = 45.0
    acwr_caution_points: float = 25.0
    acwr_detraining_points: float = 10.0
    spike_extreme_points: float = 35.0
    spike_major_points: float = 25.0
    spike_moderate_points: float = 15.0
    chronic_rise_points: float = 10.0

    # performance decline (s/km change across the recent runs)
    decline_runs: int = 10
    decline_min_runs: int = 8
    decline_steps: tuple[tuple[float, float], ...] = ((30.0, 45.0), (20.0, 30.0), (10.0, 15.0))
    improving_below: float = -5.0
    pace_variability_limit: float = 30.0
    pace_variability_points: float = 15.0

    # heart-rate anomaly
    hr_min_runs: int = 5
    hr_compare_runs: int = 8
    hr_drift_bpm: float = 10.0
    hr_elevated_points: float = 25.0
    hr_declining_points: float = 15.0
    hr_pace_bucket_s: float = 30.0
    hr_bucket_stdev_limit: float = 15.0
    hr_bucket_points: float = 15.0

    # pace consistency
    consistency_min_runs: int = 8
    cv_high: float = 0.15
    cv_moderate: float = 0.10
    cv_high_points: float = 20.0
    cv_moderate_points: float = 10.0
    recent_pace_stdev_limit: float = 45.0
    recent_pace_points: float = 25.0

    # recovery pattern
    short_rest_hours: float = 12.0
    day_rest_hours: float = 24.0
    short_rest_points: float = 30.0
    day_rest_points: float = 15.0
    hard_reserve_fraction: float = 0.8
    hard_pace_s_per_km: float = 270.0
    hard_distance_m: float = 15000.0
    hard_streak_high: int = 3
    hard_streak_points_high: float = 25.0
    hard_streak_points: float = 10.0
    weekly_frequency_limit: int = 6
    frequency_points: float = 10.0

    # overreaching
    tsb_lookback_days: int = 28
    negative_tsb: float = -10.0
    overreaching_levels: tuple[int, int, int] = (3, 6, 8)


@dataclass(frozen=True)
class Vo2maxConfig:
    hr_coefficient: float = 15.3
    effort_base: float = 0.7
    effort_weight: float = 0.3
    hr_steady_floor: float = 0.9
    pace_steady_floor: float = 0.85
    # (pace upper bound s/km, VO2max); slower than the last band → slowest_vo2max
    pace_table: tuple[tuple[float, float], ...] = (
        (180.0, 70.0), (210.0, 65.0), (240.0, 60.0), (270.0, 55.0),
        (300.0, 50.0), (330.0, 45.0), (360.0, 40.0), (420.0, 35.0),
    )
    slowest_vo2max: float = 30.0
    distance_bonus: tuple[tuple[float, float], ...] = ((15000.0, 3.0), (10000.0, 2.0), (5000.0, 1.0))
    short_distance_m: float = 2000.0
    short_distance_penalty: float = 2.0
    min_distance_m: float = 1000.0
    plausible_low: float = 25.0
    plausible_high: float = 80.0
    steady_threshold: float = 0.6
    qualifying_confidence: float = 0.6
    rolling_window_days: int = 30
    rolling_span: int = 30
    rolling_min_estimates: int = 2
    point_trend_change: float = 0.5
    trend_per_month: float = 0.3
    current_lookback: int = 10
    # (lower bound, level) checked in order
    fitness_levels: tuple[tuple[float, str], ...] = (
        (60.0, "superior"), (52.0, "excellent"), (47.0, "very_good"),
        (42.0, "good"), (37.0, "fair"),
    )


@dataclass(frozen=True)
class EnvironmentConfig:
    optimal_temp_low: float = 10.0
    optimal_temp_high: float = 20.0
    heat_s_per_degree: float = 2.5
    cold_s_per_degree: float = 1.5
    humidity_threshold: float = 60.0
    humidity_s_per_10pct: float = 1.5
    wind_threshold_kmh: float = 15.0
    wind_s_per_kmh: float = 0.4
    elevation_threshold_m_per_km: float = 20.0
    elevation_s_per_10m: float = 12.5
    max_adjustment_fraction: float = 0.5
    base_confidence: float = 0.8
    plausible_temp: tuple[float, float] = (-20.0, 50.0)
    plausible_wind_max: float = 50.0
    moderate_temp: tuple[float, float] = (10.0, 30.0)
    moderate_humidity: tuple[float, float] = (30.0, 80.0)
    missing_field_penalty: float = 0.1
    # temperature band edges for environmental comparisons
    comparison_bands: tuple[float, ...] = (-60.0, 10.0, 15.0, 20.0, 25.0, 60.0)
    comparison_labels: tuple[str, ...] = ("cold", "cool", "optimal", "warm", "hot")


@dataclass(frozen=True)
class DecouplingConfig:
    min_duration_min: float = 60.0
    # upper bounds for excellent, good, fair
    efficiency_bounds: tuple[float, float, float] = (5.0, 10.0, 15.0)
    hot_above_c: float = 25.0
    hot_per_degree: float = 0.3
    humid_above_pct: float = 70.0
    humid_per_pct: float = 0.05
    windy_above_kmh: float = 15.0
    windy_per_kmh: float = 0.1
    cool_below_c: float = 15.0
    cool_per_degree: float = 0.1
    max_estimated_drift_bpm: float = 10.0
    base_confidence: float = 0.5
    hr_bonus: float = 0.3
    splits_bonus: float = 0.2
    long_bonus: float = 0.1
    very_long_bonus: float = 0.2
    trend_window_days: int = 90
    trend_min_runs: int = 3
    trend_change: float = 2.0


@dataclass(frozen=True)
class EngineConfig:
    trimp: TrimpConfig = field(default_factory=TrimpConfig)
    fitness: FitnessConfig = field(default_factory=FitnessConfig)
    acwr: AcwrConfig = field(default_factory=AcwrConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    vo2max: Vo2maxConfig = field(default_factory=Vo2maxConfig)
    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)
    decoupling: DecouplingConfig = field(default_factory=DecouplingConfig)
    # confidence caps for results computed from a substituted or implausible profile
    defaulted_physiology_confidence: float = 0.7
    invalid_physiology_confidence: float = 0.5
    vo2max_trend_days: int = 90
    fitness_trend_days: int = 30


DEFAULT_CONFIG = EngineConfig()


# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings resolved from environment."""

    app_env: str = "dev"
    log_level: str = "INFO"
    calculation_version: str = "2.0"
    risk_window_days: int = 90
    trimp_weighting_factor: float = 1.8

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
    },
    "staging": {
        "log_level": "INFO",
    },
    "production": {
        "log_level": "WARNING",
    },
}


def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])

    return Settings(
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        calculation_version=os.getenv("CALCULATION_VERSION", "2.0"),
        risk_window_days=int(os.getenv("RISK_WINDOW_DAYS", str(profile.get("risk_window_days", 90)))),
        trimp_weighting_factor=float(os.getenv("TRIMP_WEIGHTING_FACTOR", "1.8")),
    )


def get_engine_config(settings: Settings | None = None) -> EngineConfig:
    """Default EngineConfig with the settings-level overrides applied."""
    settings = settings or get_settings()
    return replace(
        DEFAULT_CONFIG,
        trimp=replace(DEFAULT_CONFIG.trimp, weighting_factor=settings.trimp_weighting_factor),
        risk=replace(DEFAULT_CONFIG.risk, window_days=settings.risk_window_days),
    )
