from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..config.loader import ReconConfig
from ..db.archive import DatabaseArchive
from ..excel.writer import XLSX_MEDIA_TYPE, render_pivot_workbook, render_year_over_year_workbook
from ..models.detailed_row import DetailedRow
from ..models.export_payload import ExportPayload, YearOverYearRow
from ..models.requests import RequestedBy, SummaryRequest
from ..models.session import AnalysisSession
from ..models.summary_result import SummaryResult
from ..models.upload_result import UploadedFile, UploadResult
from .filtering import VALIDATION_TOLERANCE, build_detailed_rows, resolve_selected_metrics
from .ingest import ingest_files
from .pivot_export import build_export_payload
from .session_store import AnalysisSessionStore
from .summary import build_summary
from .year_over_year import build_year_over_year_rows

"""Reconciliation service facade.

Single entry point used by the CLI (and any transport layer): upload a batch,
then ask for summaries and exports by session id. Every derived structure is
computed per call from the session workbook; nothing is cached.
"""

__all__ = [
    "ExportedFile",
    "ReconciliationService",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportedFile:
    file_name: str
    content: bytes = field(repr=False)
    media_type: str = XLSX_MEDIA_TYPE


class ReconciliationService:
    def __init__(
        self,
        store: AnalysisSessionStore | None = None,
        *,
        archive: DatabaseArchive | None = None,
        tolerance: float = VALIDATION_TOLERANCE,
        logs_dir: Path | str = "./logs",
    ) -> None:
        self.store = store if store is not None else AnalysisSessionStore()
        self.archive = archive
        self.tolerance = tolerance
        self.logs_dir = logs_dir

    @classmethod
    def from_config(cls, config: ReconConfig, archive: DatabaseArchive | None = None) -> ReconciliationService:
        return cls(
            AnalysisSessionStore(
                max_sessions=config.sessions.max_sessions,
                ttl_seconds=config.sessions.ttl_seconds,
            ),
            archive=archive,
            tolerance=config.validation_tolerance,
            logs_dir=config.logs_directory,
        )

    def upload_files(self, uploads: Sequence[UploadedFile], requested_by: RequestedBy) -> UploadResult:
        return ingest_files(uploads, requested_by, self.store, archive=self.archive, logs_dir=self.logs_dir)

    def _detailed_rows(self, request: SummaryRequest) -> tuple[AnalysisSession, tuple[DetailedRow, ...]]:
        session = self.store.require(request.session_id)
        return session, build_detailed_rows(session.workbook, request, self.tolerance)

    def build_summary(self, request: SummaryRequest) -> SummaryResult:
        session, rows = self._detailed_rows(request)
        metrics = resolve_selected_metrics(session.workbook.headers, request.metrics)
        return build_summary(session.session_id, rows, request, metrics)

    def build_export_payload(self, request: SummaryRequest) -> ExportPayload:
        _, rows = self._detailed_rows(request)
        return build_export_payload(
            rows,
            request.export_columns,
            include_yearly_summary=request.include_yearly_summary,
            tolerance=self.tolerance,
        )

    def build_summary_excel_file(self, request: SummaryRequest) -> ExportedFile:
        started = time.perf_counter()
        logger.info(f"[export:{request.label}] building pivot export")
        payload = self.build_export_payload(request)
        logger.info(
            f"[export:{request.label}] payload prepared periods={len(payload.periods)} "
            f"rows={len(payload.rows)} yearly_rows={len(payload.yearly_rows)}"
        )
        content = render_pivot_workbook(payload)
        logger.info(
            f"[export:{request.label}] rendered {len(content)} bytes in {time.perf_counter() - started:.3f}s"
        )
        return ExportedFile(file_name=f"podsumowanie-{request.label}.xlsx", content=content)

    def build_year_over_year_rows(self, request: SummaryRequest) -> tuple[YearOverYearRow, ...]:
        _, rows = self._detailed_rows(request)
        return build_year_over_year_rows(rows, request.comparison_month, self.tolerance)

    def build_year_over_year_excel_file(self, request: SummaryRequest) -> ExportedFile:
        started = time.perf_counter()
        logger.info(f"[yoy:{request.label}] building year over year export month={request.comparison_month}")
        rows = self.build_year_over_year_rows(request)
        logger.info(f"[yoy:{request.label}] rows prepared={len(rows)}")
        content = render_year_over_year_workbook(rows, request.comparison_month, self.tolerance)
        logger.info(f"[yoy:{request.label}] rendered {len(content)} bytes in {time.perf_counter() - started:.3f}s")
        return ExportedFile(file_name=f"rok-do-roku-{request.label}.xlsx", content=content)
