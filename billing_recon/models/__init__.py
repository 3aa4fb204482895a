"""Domain models for the utility billing reconciliation engine.

Workbook models come out of the block parser, session models are owned by the
session store, and everything else is derived per request.
"""

from .detailed_row import DetailedRow
from .error_record import ErrorRecord
from .export_payload import (
    AnnualRollupRow,
    ExportCell,
    ExportColumn,
    ExportPayload,
    ExportRow,
    Period,
    StyleTag,
    YearOverYearRow,
)
from .requests import RequestedBy, SummaryRequest
from .session import AnalysisDraft, AnalysisSession, PeriodRange
from .summary_result import MetricTotals, SelectedFilters, SummaryResult, SummaryRow, SummaryStats
from .upload_result import FileUploadRecord, UploadedFile, UploadResult
from .workbook import CellValue, ParsedMetric, ParsedRecord, ParsedWorkbook

__all__ = [
    # Ingestion models
    "CellValue",
    "ParsedMetric",
    "ParsedRecord",
    "ParsedWorkbook",
    "UploadedFile",
    "FileUploadRecord",
    "UploadResult",
    # Session models
    "AnalysisSession",
    "AnalysisDraft",
    "PeriodRange",
    # Request / derived models
    "RequestedBy",
    "SummaryRequest",
    "DetailedRow",
    "SelectedFilters",
    "SummaryStats",
    "MetricTotals",
    "SummaryRow",
    "SummaryResult",
    # Export models
    "StyleTag",
    "ExportColumn",
    "ExportCell",
    "ExportRow",
    "Period",
    "AnnualRollupRow",
    "YearOverYearRow",
    "ExportPayload",
    # Error log
    "ErrorRecord",
]
