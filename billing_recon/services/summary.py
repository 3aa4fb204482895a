from __future__ import annotations

from collections.abc import Sequence

from ..excel.values import normalize_date, round_to_2
from ..models.detailed_row import DetailedRow
from ..models.requests import SummaryRequest
from ..models.summary_result import (
    MetricTotals,
    SelectedFilters,
    SummaryResult,
    SummaryRow,
    SummaryStats,
)

"""On-screen summary aggregation and the CLI SUMMARY line.

Sums are rounded to 2 decimals once per metric so repeated float additions do
not leak noise into the totals. With validation disabled every
validation-derived field is None.
"""

__all__ = [
    "combined_validity",
    "build_summary",
    "format_number",
    "render_summary_line",
]


def combined_validity(row: DetailedRow) -> bool | None:
    """False if either check failed, True if the charge check passed, else None."""
    if row.consumption_is_valid is False or row.total_is_valid is False:
        return False
    if row.total_is_valid is True:
        return True
    return None


def _summary_row(row: DetailedRow, include_validation: bool) -> SummaryRow:
    return SummaryRow(
        apartment=row.apartment_full,
        date_from=row.date_from,
        date_to=row.date_to,
        metric=row.metric,
        consumption=row.consumption_reported,
        rate=row.rate,
        reported_total=row.reported_total,
        computed_total=row.computed_total if include_validation else None,
        difference=row.total_difference if include_validation else None,
        consumption_is_valid=row.consumption_is_valid if include_validation else None,
        is_valid=combined_validity(row) if include_validation else None,
    )


def _metric_totals(metric: str, rows: Sequence[DetailedRow], include_validation: bool) -> MetricTotals:
    consumption = round_to_2(sum(r.consumption_reported or 0.0 for r in rows))
    reported = round_to_2(sum(r.reported_total or 0.0 for r in rows))
    computed = round_to_2(sum(r.computed_total or 0.0 for r in rows))
    return MetricTotals(
        metric=metric,
        row_count=len(rows),
        total_consumption=consumption,
        reported_total=reported,
        computed_total=computed if include_validation else None,
        difference=round_to_2(reported - computed) if include_validation else None,
    )


def build_summary(
    session_id: str,
    rows: Sequence[DetailedRow],
    request: SummaryRequest,
    metrics: Sequence[str],
) -> SummaryResult:
    """Aggregate detailed rows into per-row values and per-metric totals.

    Args:
        session_id: session the rows were derived from
        rows: filtered detailed rows
        request: the originating request (filters are echoed back)
        metrics: resolved metric selection; one totals entry per metric
    """
    include_validation = request.include_validation
    summary_rows = tuple(_summary_row(r, include_validation) for r in rows)

    totals = tuple(
        _metric_totals(metric, [r for r in rows if r.metric == metric], include_validation)
        for metric in metrics
    )

    valid = sum(1 for r in summary_rows if r.is_valid is True)
    invalid = sum(1 for r in summary_rows if r.is_valid is False)

    return SummaryResult(
        session_id=session_id,
        selected=SelectedFilters(
            apartment=(request.apartment or "").strip() or None,
            date_from=normalize_date(request.date_from),
            date_to=normalize_date(request.date_to),
            metrics=tuple(metrics),
            include_validation=include_validation,
            include_only_mismatches=request.include_only_mismatches,
        ),
        stats=SummaryStats(rows_count=len(summary_rows), valid_rows=valid, invalid_rows=invalid),
        totals_by_metric=totals,
        rows=summary_rows,
    )


def format_number(value: float) -> str:
    """Compact number for the SUMMARY line (no scientific notation, no trailing .0)."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if abs(value) < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(value)


def render_summary_line(
    total_files: int,
    parsed_files: int,
    failed_files: int,
    records: int,
    invalid_rows: int,
    elapsed_seconds: float,
) -> str:
    """Render the SUMMARY line printed at the end of a CLI run.

    Format:
    SUMMARY files={parsed}/{total} failed={failed} records={records}
    invalid_rows={invalid} elapsed_sec={elapsed}

    >>> render_summary_line(2, 2, 0, 4, 0, 1.5)
    'SUMMARY files=2/2 failed=0 records=4 invalid_rows=0 elapsed_sec=1.5'
    """
    return (
        f"SUMMARY files={parsed_files}/{total_files} "
        f"failed={failed_files} "
        f"records={records} "
        f"invalid_rows={invalid_rows} "
        f"elapsed_sec={format_number(elapsed_seconds)}"
    )
