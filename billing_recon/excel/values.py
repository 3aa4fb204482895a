from __future__ import annotations

import math
import re
from datetime import date, datetime

import pandas as pd

from ..models.workbook import CellValue

"""Cell value interpretation helpers.

Spreadsheet cells reach the engine as ``CellValue`` (str | int | float | None).
Everything here is lenient: text that cannot be interpreted becomes None
instead of raising, so a bad cell degrades to "N/D" in reports.
"""

__all__ = [
    "to_cell_value",
    "cell_text",
    "parse_number",
    "normalize_date",
    "to_utc_day",
    "round_to_2",
    "within_tolerance",
]

_WHITESPACE_RE = re.compile(r"\s+")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DAY_FIRST_DATE_RE = re.compile(r"^(\d{1,2})[./-](\d{1,2})[./-](\d{4})$")

# Absorbs binary floating point noise in tolerance comparisons
# (10.05 - 10.0 == 0.05000000000000071).
_FLOAT_EPSILON = 1e-9


def to_cell_value(raw: object) -> CellValue:
    """Convert a raw pandas/openpyxl cell into the typed CellValue variant."""
    if raw is None:
        return None
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (datetime, date)):  # pd.Timestamp is a datetime
        if pd.isna(raw):
            return None
        return raw.strftime("%Y-%m-%d")
    if isinstance(raw, bool):
        return str(raw)
    if hasattr(raw, "item") and not isinstance(raw, (int, float)):
        raw = raw.item()  # numpy scalar
    if isinstance(raw, float):
        return None if math.isnan(raw) else raw
    if isinstance(raw, int):
        return raw
    if pd.isna(raw):
        return None
    return str(raw)


def cell_text(value: CellValue) -> str:
    """Display text of a cell, the way a spreadsheet would show it."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value).strip()


def parse_number(raw: str | None) -> float | None:
    """Parse a locale formatted number.

    ``"1 234,56"`` -> 1234.56, ``"12.345,67"`` -> 12345.67, ``"12.5"`` -> 12.5.
    When both separators appear ``.`` groups thousands and ``,`` is the
    decimal mark.
    """
    if not raw:
        return None
    trimmed = raw.strip()
    if not trimmed:
        return None

    normalized = _WHITESPACE_RE.sub("", trimmed)
    if "," in normalized and "." in normalized:
        normalized = normalized.replace(".", "").replace(",", ".", 1)
    elif "," in normalized:
        normalized = normalized.replace(",", ".", 1)

    try:
        parsed = float(normalized)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def normalize_date(raw: str | None) -> str | None:
    """Normalize a period boundary to ``YYYY-MM-DD`` or return None."""
    if not raw:
        return None
    trimmed = raw.strip()
    if not trimmed:
        return None

    if _ISO_DATE_RE.match(trimmed):
        return trimmed

    day_first = _DAY_FIRST_DATE_RE.match(trimmed)
    if day_first:
        day, month, year = (int(part) for part in day_first.groups())
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            pass  # not a calendar date, try the generic parser below

    parsed = pd.to_datetime(trimmed, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.strftime("%Y-%m-%d")


def to_utc_day(raw: str | None) -> int | None:
    """Day number (proleptic Gregorian ordinal) of a period boundary."""
    normalized = normalize_date(raw)
    if normalized is None:
        return None
    try:
        return date.fromisoformat(normalized).toordinal()
    except ValueError:
        return None


def round_to_2(value: float) -> float:
    """Round half up to 2 decimals."""
    return math.floor(value * 100 + 0.5) / 100


def within_tolerance(difference: float, tolerance: float) -> bool:
    return abs(difference) <= tolerance + _FLOAT_EPSILON
