#!/usr/bin/env python3
"""Sample workbook generator for demos and load tests.

Writes a billing spreadsheet in the 5-row block layout read by
billing_recon.excel.reader:

- Row 1: "Lokal", "Data", metric names...
- then per apartment and period: start readings, end readings, reported
  consumption, rate, reported total

Readings are continuous across periods, so a generated file reconciles
cleanly unless ``--error-rate`` injects mismatching consumption values.
"""
from __future__ import annotations

import argparse
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

DEFAULT_METRICS = ["Woda zimna", "Woda ciepła", "Ogrzewanie", "Opłata stała"]
FIXED_FEE_METRIC = "opłata stała"

# Base rate and mean consumption per period (fixed fee: 1 unit per period)
_METRIC_PROFILE = {
    "woda zimna": (12.5, 18.0),
    "woda ciepła": (31.2, 9.0),
    "ogrzewanie": (2.1, 240.0),
}


def period_bounds(year_from: int, year_to: int, months_per_period: int) -> list[tuple[date, date]]:
    """Consecutive periods of ``months_per_period`` months covering the years."""
    periods = []
    for year in range(year_from, year_to + 1):
        for start_month in range(1, 13, months_per_period):
            start = date(year, start_month, 1)
            end_month = start_month + months_per_period
            if end_month > 12:
                end = date(year, 12, 31)
            else:
                end = date(year, end_month, 1) - timedelta(days=1)
            periods.append((start, end))
    return periods


def generate_block_rows(
    apartments: int,
    metrics: list[str],
    periods: list[tuple[date, date]],
    *,
    street: str = "Kwiatowa 5",
    error_rate: float = 0.0,
    seed: int = 42,
) -> list[list[Any]]:
    rng = np.random.default_rng(seed)
    rows: list[list[Any]] = [["Lokal", "Data", *metrics]]

    for unit in range(1, apartments + 1):
        label = f"{street}/{unit}"
        readings = {m: float(np.round(rng.uniform(0, 500), 2)) for m in metrics}
        for start, end in periods:
            block = [[label, start.isoformat()], ["", end.isoformat()], ["", ""], ["", ""], ["", ""]]
            for metric in metrics:
                profile = _METRIC_PROFILE.get(metric.lower())
                if metric.lower() == FIXED_FEE_METRIC or profile is None:
                    consumption, rate = 1.0, 45.0
                else:
                    rate, mean = profile
                    consumption = float(np.round(max(rng.normal(mean, mean * 0.25), 0.0), 2))
                begin = readings[metric]
                finish = round(begin + consumption, 2)
                readings[metric] = finish
                reported = consumption
                if error_rate and rng.random() < error_rate:
                    reported = round(consumption + float(rng.uniform(0.5, 5.0)), 2)
                block[0].append(begin)
                block[1].append(finish)
                block[2].append(reported)
                block[3].append(rate)
                block[4].append(round(reported * rate, 2))
            rows.extend(block)
    return rows


def write_workbook(output_path: Path, rows: list[list[Any]]) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name="Rozliczenie", header=False, index=False)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate a synthetic block-format billing workbook",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 20 apartments, half-year periods, 2022-2023
  %(prog)s data/sample.xlsx

  # Monthly periods for a large building with 2% reporting errors
  %(prog)s data/large.xlsx --apartments 400 --months-per-period 1 --error-rate 0.02
        """,
    )
    parser.add_argument("output", type=Path, help="Output .xlsx path")
    parser.add_argument("--apartments", type=int, default=20, help="Number of apartments (default: 20)")
    parser.add_argument("--year-from", type=int, default=2022, help="First year (default: 2022)")
    parser.add_argument("--year-to", type=int, default=2023, help="Last year (default: 2023)")
    parser.add_argument(
        "--months-per-period",
        type=int,
        choices=(1, 2, 3, 4, 6, 12),
        default=6,
        help="Billing period length in months (default: 6)",
    )
    parser.add_argument("--metrics", nargs="+", default=DEFAULT_METRICS, help="Metric column names")
    parser.add_argument("--error-rate", type=float, default=0.0, help="Share of mismatching consumption cells")
    parser.add_argument("--street", default="Kwiatowa 5", help="Address part of apartment labels")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.apartments <= 0:
        print("Error: --apartments must be positive", file=sys.stderr)
        return 1
    if args.year_to < args.year_from:
        print("Error: --year-to must not precede --year-from", file=sys.stderr)
        return 1

    periods = period_bounds(args.year_from, args.year_to, args.months_per_period)
    rows = generate_block_rows(
        args.apartments,
        args.metrics,
        periods,
        street=args.street,
        error_rate=args.error_rate,
        seed=args.seed,
    )
    write_workbook(args.output, rows)

    print(f"Created workbook: {args.output}")
    print(f"  Apartments: {args.apartments}")
    print(f"  Periods: {len(periods)} ({args.months_per_period} months each)")
    print(f"  Metrics: {', '.join(args.metrics)}")
    print(f"  Worksheet rows: {len(rows):,}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
