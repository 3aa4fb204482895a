from __future__ import annotations

from dataclasses import dataclass, field

"""Parsed workbook models for the billing reconciliation engine.

A billing spreadsheet is a sequence of 5-row blocks, one per apartment and
billing period. The block parser turns each block into a ParsedRecord whose
metric values are kept as raw display strings; numbers and dates are only
interpreted later by the filter & validation engine.
"""

__all__ = [
    "CellValue",
    "ParsedMetric",
    "ParsedRecord",
    "ParsedWorkbook",
]

# Typed cell variant produced at the ingestion boundary. Date cells are
# already converted to ISO "YYYY-MM-DD" strings when they reach this type.
CellValue = str | int | float | None


@dataclass(frozen=True)
class ParsedMetric:
    """Raw readings of one metric column inside one apartment-period block."""
    metric: str
    start_value: str = ""  # block row 0
    end_value: str = ""  # block row 1
    consumption: str = ""  # block row 2, reported consumption
    rate: str = ""  # block row 3
    total: str = ""  # block row 4, reported total

    @classmethod
    def placeholder(cls, metric: str) -> ParsedMetric:
        """Empty metric used to align records to a merged header set."""
        return cls(metric=metric)


@dataclass(frozen=True)
class ParsedRecord:
    """One apartment-period block."""
    apartment: str  # raw label, may encode "address/unit"
    date_from: str
    date_to: str
    metrics: tuple[ParsedMetric, ...] = ()
    source_index: int = 0  # index of the source file inside an upload batch

    def metric(self, name: str) -> ParsedMetric | None:
        for item in self.metrics:
            if item.metric == name:
                return item
        return None


@dataclass(frozen=True)
class ParsedWorkbook:
    headers: tuple[str, ...]
    records: tuple[ParsedRecord, ...] = field(default_factory=tuple)

    @property
    def record_count(self) -> int:
        return len(self.records)
