# Shared pytest fixtures
from __future__ import annotations

import tempfile
from io import BytesIO
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from billing_recon.logging.init import reset_logging
from billing_recon.models.detailed_row import DetailedRow
from billing_recon.models.workbook import ParsedMetric, ParsedRecord
from billing_recon.services.filtering import build_detailed_row


def block(apartment: str, date_from: str, date_to: str, metrics: list[tuple[Any, Any, Any, Any, Any]]) -> list[list[Any]]:
    """One 5-row block; ``metrics`` holds (start, end, consumption, rate, total) per metric column."""
    rows: list[list[Any]] = [[apartment, date_from], [None, date_to], [None, None], [None, None], [None, None]]
    for values in metrics:
        for row, value in zip(rows, values):
            row.append(value)
    return rows


def sheet(metric_names: list[str], *blocks: list[list[Any]]) -> list[list[Any]]:
    rows: list[list[Any]] = [["Lokal", "Data", *metric_names]]
    for b in blocks:
        rows.extend(b)
    return rows


def detailed(
    apartment: str,
    date_from: str,
    date_to: str,
    metric: str,
    values: tuple[Any, Any, Any, Any, Any],
) -> DetailedRow:
    """DetailedRow built through the real validation path; ``values`` as in ``block``."""
    start, end, consumption, rate, total = ("" if v is None else str(v) for v in values)
    parsed = ParsedMetric(metric, start, end, consumption, rate, total)
    record = ParsedRecord(apartment=apartment, date_from=date_from, date_to=date_to, metrics=(parsed,))
    return build_detailed_row(record, parsed)


def xlsx_bytes(rows: list[list[Any]]) -> bytes:
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name="Rozliczenie", header=False, index=False)
    return buf.getvalue()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
output_directory: ./out
logs_directory: ./logs
validation_tolerance: 0.05
sessions:
  max_sessions: 8
  ttl_seconds: 3600
export:
  include_yearly_summary: true
  comparison_month: 12
archive:
  enabled: false
  table: excel_uploads
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "recon.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def clean_logging():
    # The stdout handler binds sys.stdout at setup time; capsys swaps it per test
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def half_year_rows() -> list[list[Any]]:
    """Apartment 5/3, metric Woda, two valid half-year periods of 2023."""
    return sheet(
        ["Woda"],
        block("5/3", "2023-01-01", "2023-06-30", [(100, 110, 10, 5, 50)]),
        block("5/3", "2023-07-01", "2023-12-31", [(110, 125, 15, 5, 75)]),
    )
