from __future__ import annotations

from dataclasses import dataclass

"""On-screen summary models produced by the summary aggregator."""

__all__ = [
    "SelectedFilters",
    "SummaryStats",
    "MetricTotals",
    "SummaryRow",
    "SummaryResult",
]


@dataclass(frozen=True)
class SelectedFilters:
    apartment: str | None
    date_from: str | None
    date_to: str | None
    metrics: tuple[str, ...]
    include_validation: bool
    include_only_mismatches: bool


@dataclass(frozen=True)
class SummaryStats:
    rows_count: int
    valid_rows: int
    invalid_rows: int


@dataclass(frozen=True)
class MetricTotals:
    metric: str
    row_count: int
    total_consumption: float
    reported_total: float
    computed_total: float | None  # None when validation is disabled
    difference: float | None


@dataclass(frozen=True)
class SummaryRow:
    apartment: str  # full raw label
    date_from: str
    date_to: str
    metric: str
    consumption: float | None
    rate: float | None
    reported_total: float | None
    computed_total: float | None
    difference: float | None
    consumption_is_valid: bool | None
    is_valid: bool | None


@dataclass(frozen=True)
class SummaryResult:
    session_id: str
    selected: SelectedFilters
    stats: SummaryStats
    totals_by_metric: tuple[MetricTotals, ...]
    rows: tuple[SummaryRow, ...]
