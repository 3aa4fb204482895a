from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .workbook import ParsedWorkbook

"""Analysis session and draft models.

An AnalysisSession owns the merged workbook of one upload batch. The
AnalysisDraft is the lightweight description returned to the caller right
after upload so filters can be offered without re-sending the workbook.
"""

__all__ = [
    "AnalysisSession",
    "AnalysisDraft",
    "PeriodRange",
]


@dataclass(frozen=True)
class AnalysisSession:
    session_id: str
    workbook: ParsedWorkbook
    source_files: tuple[str, ...]  # provenance (uploaded file names)
    requested_by_user_id: str
    created_at: datetime  # UTC


@dataclass(frozen=True)
class PeriodRange:
    min: str | None
    max: str | None


@dataclass(frozen=True)
class AnalysisDraft:
    session_id: str
    apartments: tuple[str, ...]
    addresses: tuple[str, ...]
    available_metrics: tuple[str, ...]
    period_range: PeriodRange
    records_count: int
    source_files: tuple[str, ...]
    generated_at: datetime

    @property
    def files_count(self) -> int:
        return len(self.source_files)
