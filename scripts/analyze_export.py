from __future__ import annotations

import argparse
import json
import sys
from datetime import date

import pandas as pd

from runmetrics.config import get_engine_config, get_settings
from runmetrics.logging_config import setup_logging
from runmetrics.models import Sex
from runmetrics.services.analysis import analyze_history
from runmetrics.validators import parse_activities, parse_physiology


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Analyse an activities CSV export and print the result as JSON.")
    parser.add_argument("csv", help="CSV with id, timestamp, distance_m, moving_time_s and optional HR/weather columns")
    parser.add_argument("--resting-hr", type=float, default=None)
    parser.add_argument("--max-hr", type=float, default=None)
    parser.add_argument("--weight-kg", type=float, default=None)
    parser.add_argument("--age", type=int, default=None)
    parser.add_argument("--sex", choices=[s.value for s in Sex], default=None)
    parser.add_argument("--as-of", type=date.fromisoformat, default=None, help="YYYY-MM-DD (default: last activity)")
    args = parser.parse_args(argv)

    settings = get_settings()
    # stdout carries the JSON result
    setup_logging(settings.log_level, settings.calculation_version, stream=sys.stderr)

    df = pd.read_csv(args.csv, parse_dates=["timestamp"])
    activities = parse_activities(df)
    profile = parse_physiology({
        "resting_hr": args.resting_hr,
        "max_hr": args.max_hr,
        "weight_kg": args.weight_kg,
    })

    analysis = analyze_history(
        activities,
        profile,
        as_of=args.as_of,
        age=args.age,
        sex=Sex(args.sex) if args.sex else None,
        config=get_engine_config(settings),
    )
    out = {"calculationVersion": settings.calculation_version, **analysis.to_dict()}
    print(json.dumps(out, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
