from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

"""Export table description models.

The pivot and year-over-year builders produce these pure data structures;
turning them into a binary spreadsheet is the job of billing_recon.excel.writer.
"""

__all__ = [
    "StyleTag",
    "ExportColumn",
    "ExportCell",
    "ExportRow",
    "Period",
    "AnnualRollupRow",
    "YearOverYearRow",
    "ExportPayload",
]


class StyleTag(Enum):
    """Closed set of cell styles understood by the spreadsheet writer."""
    NONE = "none"
    OK = "ok"
    ERROR = "error"
    ZERO = "zero"
    NEGATIVE = "negative"
    WARNING = "warning"


class ExportColumn(Enum):
    """Per-period export columns. Value = request key."""
    PREVIOUS_READING = "previousReading"
    CURRENT_READING = "currentReading"
    CONSUMPTION_REPORTED = "consumptionReported"
    CONSUMPTION_COMPUTED = "consumptionComputed"
    CONSUMPTION_STATUS = "consumptionStatus"
    RATE = "rate"
    REPORTED_TOTAL = "reportedTotal"
    COMPUTED_TOTAL = "computedTotal"
    TOTAL_STATUS = "totalStatus"

    @property
    def label(self) -> str:
        return _COLUMN_LABELS[self]


_COLUMN_LABELS = {
    ExportColumn.PREVIOUS_READING: "Odczyt poprzedni",
    ExportColumn.CURRENT_READING: "Odczyt końcowy",
    ExportColumn.CONSUMPTION_REPORTED: "Zużycie",
    ExportColumn.CONSUMPTION_COMPUTED: "Zużycie wyliczone",
    ExportColumn.CONSUMPTION_STATUS: "Status zużycia",
    ExportColumn.RATE: "Stawka",
    ExportColumn.REPORTED_TOTAL: "Suma raportowana",
    ExportColumn.COMPUTED_TOTAL: "Suma wyliczona",
    ExportColumn.TOTAL_STATUS: "Status sumy",
}


@dataclass(frozen=True)
class ExportCell:
    value: str | int | float | None = None
    style: StyleTag = StyleTag.NONE


@dataclass(frozen=True)
class ExportRow:
    address: str
    apartment: str
    metric: str
    cells: tuple[ExportCell, ...]


@dataclass(frozen=True)
class Period:
    key: str  # "date_from|date_to"
    date_from: str
    date_to: str
    column_count: int = 0

    @property
    def label(self) -> str:
        return f"{self.date_from} - {self.date_to}"


@dataclass(frozen=True)
class AnnualRollupRow:
    """Aggregates of one fully covered calendar year for one group."""
    address: str
    apartment: str
    metric: str
    year: int
    consumption_reported: float
    consumption_computed: float
    total_reported: float
    total_computed: float
    difference: float
    period_count: int
    status: str  # "OK" | "Wymaga sprawdzenia"
    has_issues: bool
    difference_ok: bool
    consumption_reported_style: StyleTag = StyleTag.NONE
    consumption_computed_style: StyleTag = StyleTag.NONE

    def cells(self) -> tuple[ExportCell, ...]:
        """Row laid out in the yearly section column order."""
        return (
            ExportCell(self.address),
            ExportCell(self.apartment),
            ExportCell(self.metric),
            ExportCell(self.year),
            ExportCell(self.consumption_reported, self.consumption_reported_style),
            ExportCell(self.consumption_computed, self.consumption_computed_style),
            ExportCell(self.total_reported),
            ExportCell(self.total_computed),
            ExportCell(self.difference, StyleTag.OK if self.difference_ok else StyleTag.ERROR),
            ExportCell(self.period_count),
            ExportCell(self.status, StyleTag.ERROR if self.has_issues else StyleTag.OK),
        )


@dataclass(frozen=True)
class YearOverYearRow:
    address: str
    apartment: str
    metric: str
    base_year: int
    compare_year: int
    base_consumption: float
    compare_consumption: float
    difference: float
    change_percent: float | None
    trend: str  # "Wzrost" | "Spadek" | "Bez zmian"
    note: str | None = None


@dataclass(frozen=True)
class ExportPayload:
    headers: tuple[str, ...]
    periods: tuple[Period, ...]
    columns: tuple[ExportColumn, ...]
    rows: tuple[ExportRow, ...]
    rate_outliers: frozenset[tuple[int, int]]  # (row index, cell index)
    yearly_headers: tuple[str, ...]
    yearly_rows: tuple[AnnualRollupRow, ...]
    fixed_fee_summary: dict[str, float] = field(default_factory=dict)  # period key -> sum
    generated_at: datetime | None = None

    @property
    def column_labels(self) -> tuple[str, ...]:
        return tuple(column.label for column in self.columns)
