from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime

from ..excel.values import round_to_2, within_tolerance
from ..models.detailed_row import DetailedRow
from ..models.export_payload import (
    ExportCell,
    ExportColumn,
    ExportPayload,
    ExportRow,
    Period,
    StyleTag,
)
from .annual_rollup import YEARLY_HEADERS, build_yearly_rows, consumption_style
from .apartments import apartment_sort_key
from .filtering import VALIDATION_TOLERANCE

"""Pivot export builder.

Lays detailed rows out as one line per (address, apartment, metric) with a
block of columns per billing period, tags every cell with a StyleTag, marks
rate outliers and rolls up fixed fees. The result is a pure description;
billing_recon.excel.writer renders it.
"""

__all__ = [
    "FIXED_FEE_METRIC",
    "FIXED_HEADERS",
    "resolve_export_columns",
    "collect_periods",
    "resolve_export_cell",
    "build_dominant_rate_map",
    "find_rate_outliers",
    "build_fixed_fee_summary",
    "build_export_payload",
]

logger = logging.getLogger(__name__)

FIXED_FEE_METRIC = "opłata stała"
FIXED_HEADERS = ("Adres", "Lokal", "Metryka")

STATUS_OK = "OK"
STATUS_ERROR = "Błąd"
STATUS_NOT_DETERMINED = "N/D"
STATUS_NEGATIVE = "Ujemne"
STATUS_ZERO = "Zero"

# Columns rendered as the bare DetailedRow value without a style
_PLAIN_VALUE_FIELDS = {
    ExportColumn.PREVIOUS_READING: "start_value",
    ExportColumn.CURRENT_READING: "end_value",
    ExportColumn.RATE: "rate",
    ExportColumn.REPORTED_TOTAL: "reported_total",
    ExportColumn.COMPUTED_TOTAL: "computed_total",
}


def resolve_export_columns(requested: Sequence[str]) -> tuple[ExportColumn, ...]:
    """Known column keys in request order without repeats; all columns if none."""
    picked: list[ExportColumn] = []
    known = {column.value: column for column in ExportColumn}
    for key in requested:
        column = known.get(key.strip())
        if column is not None and column not in picked:
            picked.append(column)
    return tuple(picked) if picked else tuple(ExportColumn)


def collect_periods(rows: Sequence[DetailedRow], column_count: int) -> tuple[Period, ...]:
    """Distinct periods of the rows ordered by start, then end date."""
    periods: dict[str, Period] = {}
    for row in rows:
        if row.period_key not in periods:
            periods[row.period_key] = Period(
                key=row.period_key,
                date_from=row.date_from,
                date_to=row.date_to,
                column_count=column_count,
            )
    return tuple(sorted(periods.values(), key=lambda p: (p.date_from, p.date_to)))


def _consumption_status(row: DetailedRow) -> ExportCell:
    style = consumption_style(row.consumption_reported)
    if style is StyleTag.NEGATIVE:
        return ExportCell(STATUS_NEGATIVE, StyleTag.NEGATIVE)
    if style is StyleTag.ZERO:
        return ExportCell(STATUS_ZERO, StyleTag.ZERO)
    return _validity_status(row.consumption_is_valid)


def _validity_status(valid: bool | None) -> ExportCell:
    if valid is True:
        return ExportCell(STATUS_OK, StyleTag.OK)
    if valid is False:
        return ExportCell(STATUS_ERROR, StyleTag.ERROR)
    return ExportCell(STATUS_NOT_DETERMINED, StyleTag.WARNING)


def resolve_export_cell(row: DetailedRow | None, column: ExportColumn) -> ExportCell:
    """Value and style of one export column for one period (None = no data)."""
    if row is None:
        return ExportCell()
    if column is ExportColumn.CONSUMPTION_REPORTED:
        return ExportCell(row.consumption_reported, consumption_style(row.consumption_reported))
    if column is ExportColumn.CONSUMPTION_COMPUTED:
        return ExportCell(row.consumption_computed, consumption_style(row.consumption_computed))
    if column is ExportColumn.CONSUMPTION_STATUS:
        return _consumption_status(row)
    if column is ExportColumn.TOTAL_STATUS:
        return _validity_status(row.total_is_valid)
    return ExportCell(getattr(row, _PLAIN_VALUE_FIELDS[column]))


def build_dominant_rate_map(rows: Sequence[DetailedRow]) -> dict[tuple[str, str], float]:
    """Most frequent rate per (metric, period key); ties go to the first seen rate."""
    rates: dict[tuple[str, str], list[float]] = {}
    for row in rows:
        if row.rate is not None:
            rates.setdefault((row.metric, row.period_key), []).append(row.rate)
    return {key: Counter(values).most_common(1)[0][0] for key, values in rates.items()}


def find_rate_outliers(
    export_rows: Sequence[ExportRow],
    periods: Sequence[Period],
    columns: Sequence[ExportColumn],
    dominant_rates: dict[tuple[str, str], float],
    tolerance: float = VALIDATION_TOLERANCE,
) -> frozenset[tuple[int, int]]:
    """(row index, cell index) of rate cells further than ``tolerance`` from the mode."""
    if ExportColumn.RATE not in columns:
        return frozenset()
    rate_index = columns.index(ExportColumn.RATE)

    outliers: set[tuple[int, int]] = set()
    for row_idx, export_row in enumerate(export_rows):
        for period_idx, period in enumerate(periods):
            cell_idx = period_idx * len(columns) + rate_index
            value = export_row.cells[cell_idx].value
            if not isinstance(value, (int, float)):
                continue
            dominant = dominant_rates.get((export_row.metric, period.key))
            if dominant is not None and not within_tolerance(value - dominant, tolerance):
                outliers.add((row_idx, cell_idx))
    return frozenset(outliers)


def build_fixed_fee_summary(rows: Sequence[DetailedRow]) -> dict[str, float]:
    """Reported totals of the fixed fee metric summed per period key."""
    sums: dict[str, float] = {}
    for row in rows:
        if row.metric.lower() == FIXED_FEE_METRIC and row.reported_total is not None:
            sums[row.period_key] = sums.get(row.period_key, 0.0) + row.reported_total
    return {key: round_to_2(value) for key, value in sums.items()}


def build_export_payload(
    rows: Sequence[DetailedRow],
    export_columns: Sequence[str] = (),
    include_yearly_summary: bool = True,
    tolerance: float = VALIDATION_TOLERANCE,
) -> ExportPayload:
    columns = resolve_export_columns(export_columns)
    periods = collect_periods(rows, len(columns))

    headers = FIXED_HEADERS + tuple(
        f"{period.label} | {column.label}" for period in periods for column in columns
    )

    # Later rows for the same group and period replace earlier ones
    groups: dict[tuple[str, str, str], dict[str, DetailedRow]] = {}
    for row in rows:
        groups.setdefault((row.address, row.apartment, row.metric), {})[row.period_key] = row

    ordered = sorted(
        groups.items(),
        key=lambda item: (item[0][0], apartment_sort_key(item[0][1]), item[0][2]),
    )
    export_rows = tuple(
        ExportRow(
            address=address,
            apartment=apartment,
            metric=metric,
            cells=tuple(
                resolve_export_cell(by_period.get(period.key), column)
                for period in periods
                for column in columns
            ),
        )
        for (address, apartment, metric), by_period in ordered
    )

    outliers = find_rate_outliers(export_rows, periods, columns, build_dominant_rate_map(rows), tolerance)
    logger.debug(
        "export payload periods=%d rows=%d outliers=%d", len(periods), len(export_rows), len(outliers)
    )

    return ExportPayload(
        headers=headers,
        periods=periods,
        columns=columns,
        rows=export_rows,
        rate_outliers=outliers,
        yearly_headers=YEARLY_HEADERS,
        yearly_rows=build_yearly_rows(rows, tolerance) if include_yearly_summary else (),
        fixed_fee_summary=build_fixed_fee_summary(rows),
        generated_at=datetime.now(UTC),
    )
