"""Pydantic row models for denormalized activity and physiology rows.

Rows arrive from a store or a CSV export as flat dicts (or DataFrame
records). Unparseable rows raise pydantic.ValidationError; parseable but
implausible values are passed through so the calculators can degrade them.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from runmetrics.models import ActivityRecord, PhysiologyProfile, Split, WeatherSnapshot


def _blank_to_none(v):
    if v is None:
        return None
    if isinstance(v, float) and math.isnan(v):
        return None
    if isinstance(v, str) and not v.strip():
        return None
    return v


class SplitRow(BaseModel):
    distance_m: float
    moving_time_s: float
    avg_hr: Optional[float] = None

    @field_validator("avg_hr", mode="before")
    @classmethod
    def blank_hr(cls, v):
        return _blank_to_none(v)


class WeatherRow(BaseModel):
    temp_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    wind_kmh: Optional[float] = None

    @field_validator("temp_c", "humidity_pct", "wind_kmh", mode="before")
    @classmethod
    def blank_reading(cls, v):
        return _blank_to_none(v)


class ActivityRow(BaseModel):
    id: str = Field(min_length=1)
    timestamp: datetime
    distance_m: float
    moving_time_s: float
    elevation_gain_m: Optional[float] = None
    avg_hr: Optional[float] = None
    max_hr: Optional[float] = None
    temp_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    wind_kmh: Optional[float] = None
    weather: Optional[WeatherRow] = None
    splits: list[SplitRow] = Field(default_factory=list)
    user_id: Optional[str] = None

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        v = _blank_to_none(v)
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        return str(v) if v is not None else None

    @field_validator(
        "elevation_gain_m", "avg_hr", "max_hr", "temp_c", "humidity_pct", "wind_kmh", "weather",
        mode="before",
    )
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)

    @field_validator("splits", mode="before")
    @classmethod
    def blank_splits(cls, v):
        v = _blank_to_none(v)
        return [] if v is None else v

    def to_record(self) -> ActivityRecord:
        weather = None
        if self.weather is not None:
            weather = WeatherSnapshot(self.weather.temp_c, self.weather.humidity_pct, self.weather.wind_kmh)
        elif any(v is not None for v in (self.temp_c, self.humidity_pct, self.wind_kmh)):
            weather = WeatherSnapshot(self.temp_c, self.humidity_pct, self.wind_kmh)
        return ActivityRecord(
            id=self.id,
            timestamp=self.timestamp,
            distance_m=self.distance_m,
            moving_time_s=self.moving_time_s,
            elevation_gain_m=self.elevation_gain_m,
            avg_hr=self.avg_hr,
            max_hr=self.max_hr,
            weather=weather,
            splits=tuple(Split(s.distance_m, s.moving_time_s, s.avg_hr) for s in self.splits),
            user_id=self.user_id,
        )


class PhysiologyRow(BaseModel):
    resting_hr: Optional[float] = None
    max_hr: Optional[float] = None
    weight_kg: Optional[float] = None
    last_updated: Optional[datetime] = None

    @field_validator("resting_hr", "max_hr", "weight_kg", "last_updated", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)

    def to_profile(self) -> PhysiologyProfile:
        return PhysiologyProfile(
            resting_hr=self.resting_hr,
            max_hr=self.max_hr,
            weight_kg=self.weight_kg,
            last_updated=self.last_updated,
        )


def _as_rows(data) -> list[dict[str, Any]]:
    if hasattr(data, "to_dict"):
        return data.to_dict("records")
    if isinstance(data, list):
        return data
    return []


def parse_activities(data) -> list[ActivityRecord]:
    """Activity records from a list of dicts or a DataFrame, sorted by time."""
    records = [ActivityRow.model_validate(row).to_record() for row in _as_rows(data)]
    return sorted(records, key=lambda r: r.timestamp)


def parse_physiology(data: dict[str, Any] | None) -> PhysiologyProfile | None:
    if not data:
        return None
    return PhysiologyRow.model_validate(data).to_profile()
