from __future__ import annotations

import logging
from collections.abc import Sequence

from ..excel.values import normalize_date, parse_number, round_to_2, within_tolerance
from ..models.detailed_row import DetailedRow
from ..models.requests import SummaryRequest
from ..models.workbook import ParsedMetric, ParsedRecord, ParsedWorkbook
from .apartments import split_apartment

"""Filter & validation engine.

Turns the records of a session workbook into DetailedRow values for one
request: apartment and date range filters, metric selection, numeric
interpretation and the two reconciliation checks

- consumption: reported vs. (end reading - start reading)
- charge: reported total vs. (reported consumption * rate)

both accepted within ``tolerance``. Unparsable numbers leave the affected
values and flags as None; they never raise.
"""

__all__ = [
    "VALIDATION_TOLERANCE",
    "resolve_selected_metrics",
    "is_record_inside_range",
    "build_detailed_row",
    "build_detailed_rows",
]

logger = logging.getLogger(__name__)

VALIDATION_TOLERANCE = 0.05


def resolve_selected_metrics(headers: Sequence[str], requested: Sequence[str]) -> tuple[str, ...]:
    """Requested metrics (trimmed, de-duplicated), or all headers when empty."""
    selected: list[str] = []
    for name in requested:
        name = name.strip()
        if name and name not in selected:
            selected.append(name)
    return tuple(selected) if selected else tuple(headers)


def is_record_inside_range(
    record: ParsedRecord, range_from: str | None, range_to: str | None
) -> bool:
    """True unless the record's period certainly lies outside the range.

    ``range_from``/``range_to`` are normalized ISO dates (or None for an
    open end). Records whose dates cannot be interpreted are kept.
    """
    if range_from is None and range_to is None:
        return True
    record_from = normalize_date(record.date_from)
    record_to = normalize_date(record.date_to)
    if record_from is None or record_to is None:
        return True
    if range_from is not None and record_to < range_from:
        return False
    if range_to is not None and record_from > range_to:
        return False
    return True


def build_detailed_row(
    record: ParsedRecord, metric: ParsedMetric, tolerance: float = VALIDATION_TOLERANCE
) -> DetailedRow:
    address, unit = split_apartment(record.apartment)
    date_from = normalize_date(record.date_from) or record.date_from.strip()
    date_to = normalize_date(record.date_to) or record.date_to.strip()

    start = parse_number(metric.start_value)
    end = parse_number(metric.end_value)
    reported = parse_number(metric.consumption)
    rate = parse_number(metric.rate)
    total = parse_number(metric.total)

    consumption_computed = consumption_difference = consumption_is_valid = None
    if start is not None and end is not None:
        consumption_computed = round_to_2(end - start)
        if reported is not None:
            raw_difference = reported - (end - start)
            consumption_difference = round_to_2(raw_difference)
            consumption_is_valid = within_tolerance(raw_difference, tolerance)

    computed_total = total_difference = total_is_valid = None
    if reported is not None and rate is not None:
        raw_total = reported * rate
        computed_total = round_to_2(raw_total)
        if total is not None:
            total_difference = round_to_2(total - raw_total)
            total_is_valid = within_tolerance(total - raw_total, tolerance)

    return DetailedRow(
        address=address,
        apartment=unit,
        apartment_full=record.apartment,
        date_from=date_from,
        date_to=date_to,
        period_key=f"{date_from}|{date_to}",
        metric=metric.metric,
        start_value=start,
        end_value=end,
        consumption_reported=reported,
        consumption_computed=consumption_computed,
        consumption_difference=consumption_difference,
        consumption_is_valid=consumption_is_valid,
        rate=rate,
        reported_total=total,
        computed_total=computed_total,
        total_difference=total_difference,
        total_is_valid=total_is_valid,
    )


def build_detailed_rows(
    workbook: ParsedWorkbook,
    request: SummaryRequest,
    tolerance: float = VALIDATION_TOLERANCE,
) -> tuple[DetailedRow, ...]:
    """Filtered and validated rows for one request, in workbook record order."""
    apartment = (request.apartment or "").strip()
    range_from = normalize_date(request.date_from)
    range_to = normalize_date(request.date_to)
    selected = set(resolve_selected_metrics(workbook.headers, request.metrics))

    filtered_by_apartment = filtered_by_range = filtered_by_mismatch = 0
    rows: list[DetailedRow] = []
    for record in workbook.records:
        if apartment and record.apartment != apartment:
            filtered_by_apartment += 1
            continue
        if not is_record_inside_range(record, range_from, range_to):
            filtered_by_range += 1
            continue
        for metric in record.metrics:
            if metric.metric not in selected:
                continue
            row = build_detailed_row(record, metric, tolerance)
            if request.include_only_mismatches and not row.needs_attention:
                filtered_by_mismatch += 1
                continue
            rows.append(row)

    logger.debug(
        "detailed rows=%d filtered_by_apartment=%d filtered_by_range=%d filtered_by_mismatch=%d",
        len(rows),
        filtered_by_apartment,
        filtered_by_range,
        filtered_by_mismatch,
    )
    return tuple(rows)
