from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from ..excel.values import normalize_date
from ..models.workbook import ParsedMetric, ParsedRecord, ParsedWorkbook

"""Multi-workbook merger.

Combines the workbooks of one upload batch into a single canonical workbook:
headers are unioned in first-seen order, every record is re-aligned to that
header set and records are ordered by apartment and period.
"""

__all__ = [
    "merge_workbooks",
    "record_sort_key",
]

logger = logging.getLogger(__name__)


def record_sort_key(record: ParsedRecord) -> tuple[str, str, str]:
    """Apartment label, then normalized period start and end (ISO order)."""
    return (
        record.apartment,
        normalize_date(record.date_from) or record.date_from,
        normalize_date(record.date_to) or record.date_to,
    )


def _align_metrics(record: ParsedRecord, headers: tuple[str, ...]) -> tuple[ParsedMetric, ...]:
    by_name = {m.metric: m for m in record.metrics}
    return tuple(by_name.get(name) or ParsedMetric.placeholder(name) for name in headers)


def _dedupe_within_file(records: Sequence[ParsedRecord]) -> list[ParsedRecord]:
    # Same apartment and period repeated inside one file: the later block wins
    latest: dict[tuple[str, str, str], ParsedRecord] = {}
    for record in records:
        latest[(record.apartment, record.date_from, record.date_to)] = record
    return list(latest.values())


def merge_workbooks(workbooks: Sequence[ParsedWorkbook]) -> ParsedWorkbook:
    """Merge the parsed workbooks of one batch.

    Records from different files are never deduplicated against each other;
    each keeps the index of the file it came from in ``source_index``.

    Raises:
        ValueError: when no workbook is given.
    """
    if not workbooks:
        raise ValueError("Cannot merge zero workbooks")

    headers: list[str] = []
    seen: set[str] = set()
    for workbook in workbooks:
        for name in workbook.headers:
            if name not in seen:
                seen.add(name)
                headers.append(name)
    header_tuple = tuple(headers)

    records: list[ParsedRecord] = []
    for index, workbook in enumerate(workbooks):
        for record in _dedupe_within_file(workbook.records):
            records.append(
                replace(record, metrics=_align_metrics(record, header_tuple), source_index=index)
            )

    records.sort(key=record_sort_key)
    logger.debug(
        "merged workbooks=%d headers=%d records=%d", len(workbooks), len(header_tuple), len(records)
    )
    return ParsedWorkbook(headers=header_tuple, records=tuple(records))
