"""Tests for the pydantic row models."""

from __future__ import annotations

from datetime import datetime

import pandas as pd
import pytest
from pydantic import ValidationError

from runmetrics.validators import ActivityRow, PhysiologyRow, parse_activities, parse_physiology


def _row(**overrides):
    row = {
        "id": "a1",
        "timestamp": "2024-01-02T07:00:00",
        "distance_m": 10000,
        "moving_time_s": 3000,
    }
    row.update(overrides)
    return row


def test_activity_row_minimal():
    record = ActivityRow.model_validate(_row()).to_record()
    assert record.id == "a1"
    assert record.timestamp == datetime(2024, 1, 2, 7)
    assert record.weather is None
    assert record.splits == ()
    assert record.pace_s_per_km == 300.0


def test_numeric_id_is_coerced():
    assert ActivityRow.model_validate(_row(id=17)).id == "17"
    assert ActivityRow.model_validate(_row(id=17.0)).id == "17"


def test_flat_weather_columns():
    record = ActivityRow.model_validate(_row(temp_c=22.0, humidity_pct=70.0)).to_record()
    assert record.weather.temp_c == 22.0
    assert record.weather.humidity_pct == 70.0
    assert record.weather.wind_kmh is None


def test_nested_weather_and_splits():
    row = _row(
        weather={"temp_c": 18.0, "humidity_pct": 55.0, "wind_kmh": 8.0},
        splits=[{"distance_m": 5000, "moving_time_s": 1500, "avg_hr": 148}],
    )
    record = ActivityRow.model_validate(row).to_record()
    assert record.weather.wind_kmh == 8.0
    assert record.splits[0].avg_hr == 148.0


def test_blank_values_become_none():
    record = ActivityRow.model_validate(_row(avg_hr=float("nan"), elevation_gain_m="")).to_record()
    assert record.avg_hr is None
    assert record.elevation_gain_m is None


def test_unparseable_row_raises():
    with pytest.raises(ValidationError):
        ActivityRow.model_validate(_row(distance_m="far"))
    with pytest.raises(ValidationError):
        ActivityRow.model_validate({"id": "x"})


def test_implausible_values_pass_through():
    record = ActivityRow.model_validate(_row(avg_hr=400.0, distance_m=-5.0)).to_record()
    assert record.avg_hr == 400.0
    assert record.pace_s_per_km is None


def test_parse_activities_from_dataframe():
    df = pd.DataFrame([
        _row(id="late", timestamp="2024-01-03T07:00:00", avg_hr=150.0),
        _row(id="early", timestamp="2024-01-01T07:00:00", avg_hr=None),
    ])
    records = parse_activities(df)
    assert [r.id for r in records] == ["early", "late"]
    assert records[0].avg_hr is None
    assert records[1].avg_hr == 150.0


def test_parse_activities_from_dicts():
    assert len(parse_activities([_row(), _row(id="a2")])) == 2
    assert parse_activities(None) == []


def test_parse_physiology():
    assert parse_physiology(None) is None
    profile = parse_physiology({"resting_hr": 52, "max_hr": 188, "weight_kg": None})
    assert profile.resting_hr == 52.0
    assert profile.weight_kg is None
    assert PhysiologyRow().to_profile().max_hr is None
