"""Tests for the CSV export command."""

from __future__ import annotations

import json

import pandas as pd

from scripts.analyze_export import main


def test_main_prints_history_analysis(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("CALCULATION_VERSION", "2.1")
    csv = tmp_path / "activities.csv"
    pd.DataFrame([
        {"id": i, "timestamp": f"2024-01-{i + 1:02d}T07:00:00", "distance_m": 10000,
         "moving_time_s": 3000, "avg_hr": 150, "temp_c": 15.0}
        for i in range(10)
    ]).to_csv(csv, index=False)

    assert main([str(csv), "--resting-hr", "50", "--max-hr", "190"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["calculationVersion"] == "2.1"
    assert out["activity_count"] == 10
    assert out["as_of"] == "2024-01-10"
    assert out["fitness"]["confidence"] > 0
