from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from ..excel.values import round_to_2, to_utc_day, within_tolerance
from ..models.detailed_row import DetailedRow
from ..models.export_payload import AnnualRollupRow, StyleTag
from .apartments import apartment_sort_key
from .filtering import VALIDATION_TOLERANCE

"""Annual rollup: one row per (address, apartment, metric, year) whose billing
periods cover the whole calendar year without gaps.

Periods crossing a year boundary are ignored here; they belong to no single
calendar year.
"""

__all__ = [
    "YEARLY_HEADERS",
    "STATUS_OK",
    "STATUS_NEEDS_REVIEW",
    "consumption_style",
    "is_full_year_coverage",
    "build_yearly_rows",
]

YEARLY_HEADERS = (
    "Adres",
    "Lokal",
    "Metryka",
    "Rok",
    "Zużycie",
    "Zużycie wyliczone",
    "Suma raportowana",
    "Suma wyliczona",
    "Różnica sumy",
    "Liczba okresów",
    "Status roczny",
)

STATUS_OK = "OK"
STATUS_NEEDS_REVIEW = "Wymaga sprawdzenia"


def consumption_style(value: float | None) -> StyleTag:
    if value is None:
        return StyleTag.NONE
    if value < 0:
        return StyleTag.NEGATIVE
    if value == 0:
        return StyleTag.ZERO
    return StyleTag.NONE


def is_full_year_coverage(intervals: Sequence[tuple[int, int]], year: int) -> bool:
    """Check that day intervals (inclusive ordinals) cover ``year`` entirely.

    Intervals are clipped to the year, sorted, and merged when they overlap
    or touch (next start at most one day after the previous end).
    """
    year_start = date(year, 1, 1).toordinal()
    year_end = date(year, 12, 31).toordinal()

    clipped = sorted(
        (max(start, year_start), min(end, year_end))
        for start, end in intervals
        if max(start, year_start) <= min(end, year_end)
    )
    if not clipped:
        return False

    merged = [list(clipped[0])]
    for start, end in clipped[1:]:
        last = merged[-1]
        if start <= last[1] + 1:
            last[1] = max(last[1], end)
        else:
            merged.append([start, end])

    return len(merged) == 1 and merged[0][0] <= year_start and merged[0][1] >= year_end


def _group_key(row: DetailedRow) -> tuple[str, str, str]:
    return row.address, row.apartment, row.metric


def _has_row_issue(row: DetailedRow) -> bool:
    return row.has_validation_issue or row.has_value_issue


def build_yearly_rows(
    rows: Sequence[DetailedRow], tolerance: float = VALIDATION_TOLERANCE
) -> tuple[AnnualRollupRow, ...]:
    groups: dict[tuple[str, str, str, int], list[tuple[DetailedRow, int, int]]] = {}
    for row in rows:
        start = to_utc_day(row.date_from)
        end = to_utc_day(row.date_to)
        if start is None or end is None:
            continue
        year_from = date.fromordinal(start).year
        if year_from != date.fromordinal(end).year:
            continue
        groups.setdefault((*_group_key(row), year_from), []).append((row, start, end))

    ordered = sorted(
        groups.items(),
        key=lambda item: (item[0][0], apartment_sort_key(item[0][1]), item[0][2], item[0][3]),
    )

    result: list[AnnualRollupRow] = []
    for (address, apartment, metric, year), members in ordered:
        if not is_full_year_coverage([(s, e) for _, s, e in members], year):
            continue
        group_rows = [r for r, _, _ in members]
        consumption_reported = round_to_2(sum(r.consumption_reported or 0.0 for r in group_rows))
        consumption_computed = round_to_2(sum(r.consumption_computed or 0.0 for r in group_rows))
        total_reported = round_to_2(sum(r.reported_total or 0.0 for r in group_rows))
        total_computed = round_to_2(sum(r.computed_total or 0.0 for r in group_rows))
        difference = round_to_2(total_reported - total_computed)
        difference_ok = within_tolerance(difference, tolerance)
        has_issues = any(_has_row_issue(r) for r in group_rows) or not difference_ok

        result.append(
            AnnualRollupRow(
                address=address,
                apartment=apartment,
                metric=metric,
                year=year,
                consumption_reported=consumption_reported,
                consumption_computed=consumption_computed,
                total_reported=total_reported,
                total_computed=total_computed,
                difference=difference,
                period_count=len(group_rows),
                status=STATUS_NEEDS_REVIEW if has_issues else STATUS_OK,
                has_issues=has_issues,
                difference_ok=difference_ok,
                consumption_reported_style=consumption_style(consumption_reported),
                consumption_computed_style=consumption_style(consumption_computed),
            )
        )
    return tuple(result)
