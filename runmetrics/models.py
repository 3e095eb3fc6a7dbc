"""Immutable value types consumed by the metrics engine.

ActivityRecord and PhysiologyProfile are snapshots handed over by the
ingestion layer; the engine reads them and never mutates them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from runmetrics.errors import InsufficientData, InvalidPhysiology


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


@dataclass(frozen=True)
class WeatherSnapshot:
    """Weather summary recorded with an activity. Any field may be missing."""
    temp_c: float | None = None
    humidity_pct: float | None = None
    wind_kmh: float | None = None

    @property
    def is_empty(self) -> bool:
        return self.temp_c is None and self.humidity_pct is None and self.wind_kmh is None


@dataclass(frozen=True)
class Split:
    """Summary of one lap or split within an activity."""
    distance_m: float
    moving_time_s: float
    avg_hr: float | None = None


@dataclass(frozen=True)
class ActivityRecord:
    """Per-activity summary statistics (no raw GPS/HR streams)."""
    id: str
    timestamp: datetime
    distance_m: float
    moving_time_s: float
    elevation_gain_m: float | None = None
    avg_hr: float | None = None
    max_hr: float | None = None
    weather: WeatherSnapshot | None = None
    splits: tuple[Split, ...] = ()
    user_id: str | None = None

    @property
    def activity_date(self) -> date:
        return self.timestamp.date()

    @property
    def duration_min(self) -> float:
        return max(0.0, self.moving_time_s) / 60.0

    @property
    def distance_km(self) -> float:
        return max(0.0, self.distance_m) / 1000.0

    @property
    def pace_s_per_km(self) -> float | None:
        """Average pace in seconds per km, or None without distance/time."""
        if self.distance_m <= 0 or self.moving_time_s <= 0:
            return None
        return self.moving_time_s / (self.distance_m / 1000.0)

    @property
    def elevation_per_km(self) -> float:
        if not self.elevation_gain_m or self.distance_m <= 0:
            return 0.0
        return self.elevation_gain_m / (self.distance_m / 1000.0)


@dataclass(frozen=True)
class PhysiologyProfile:
    """Athlete physiology snapshot. Any field may be absent."""
    resting_hr: float | None = None
    max_hr: float | None = None
    weight_kg: float | None = None
    last_updated: datetime | None = None

    @property
    def has_heart_rate_bounds(self) -> bool:
        return self.resting_hr is not None and self.max_hr is not None

    def heart_rate_reserve(self) -> float:
        """Max HR minus resting HR.

        Raises InsufficientData when either bound is missing and
        InvalidPhysiology when resting >= max.
        """
        if not self.has_heart_rate_bounds:
            raise InsufficientData("resting and max heart rate are both required")
        if self.resting_hr >= self.max_hr:
            raise InvalidPhysiology(
                f"resting heart rate {self.resting_hr} is not below max heart rate {self.max_hr}"
            )
        return self.max_hr - self.resting_hr

    def reserve_fraction(self, avg_hr: float) -> float:
        """Fraction of heart-rate reserve used at avg_hr (Karvonen)."""
        reserve = self.heart_rate_reserve()
        if avg_hr < self.resting_hr or avg_hr > self.max_hr:
            raise InvalidPhysiology(
                f"average heart rate {avg_hr} outside [{self.resting_hr}, {self.max_hr}]"
            )
        return (avg_hr - self.resting_hr) / reserve


@dataclass(frozen=True)
class DailyLoadAggregate:
    """All activities of one (user, date) summed into a single row."""
    day: date
    total_distance_m: float
    total_load: float           # summed TRIMP
    total_moving_time_s: float
    activity_count: int
    user_id: str | None = None
    load_confidence: float = 1.0  # lowest TRIMP confidence of the day
    estimated_count: int = 0      # activities whose load came from pace
