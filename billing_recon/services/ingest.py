from __future__ import annotations

import logging
import mimetypes
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from ..db.archive import DatabaseArchive, UpstreamStorageError
from ..excel.reader import MalformedWorkbookError, parse_workbook
from ..excel.values import normalize_date
from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import MALFORMED_WORKBOOK, UPSTREAM_STORAGE_FAILURE, ErrorRecord
from ..models.requests import RequestedBy
from ..models.session import AnalysisDraft, PeriodRange
from ..models.upload_result import FileUploadRecord, UploadedFile, UploadResult
from ..models.workbook import ParsedWorkbook
from .apartments import apartment_sort_key, extract_address
from .merger import merge_workbooks
from .progress import ProgressTracker
from .session_store import AnalysisSessionStore

"""Upload batch ingestion.

For one batch of uploaded files:
1. reject the batch if any file is not a spreadsheet (before touching anything)
2. archive each file in its own transaction (skipped in mock mode)
3. parse each file; a malformed file is logged and skipped, not fatal
4. merge the parsed workbooks, open an analysis session and build its draft
5. flush the per-batch JSON Lines error log once
"""

__all__ = [
    "IngestError",
    "UnsupportedFileTypeError",
    "SUPPORTED_EXTENSIONS",
    "SUPPORTED_MIME_TYPES",
    "is_supported_upload",
    "validate_uploads",
    "scan_upload_directory",
    "load_uploads",
    "build_analysis_draft",
    "ingest_files",
]

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".xls", ".csv")
SUPPORTED_MIME_TYPES = frozenset(
    {
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel",
        "text/csv",
        "application/csv",
    }
)

_FALLBACK_MIME_TYPE = "application/octet-stream"


class IngestError(Exception):
    """Batch-level ingestion failure (nothing was parsed or archived)."""


class UnsupportedFileTypeError(IngestError):
    def __init__(self, file_name: str):
        super().__init__(f"Only .xlsx, .xls or .csv files are allowed (got {file_name!r})")
        self.file_name = file_name


def is_supported_upload(upload: UploadedFile) -> bool:
    return upload.suffix in SUPPORTED_EXTENSIONS or upload.mime_type in SUPPORTED_MIME_TYPES


def validate_uploads(uploads: Sequence[UploadedFile]) -> None:
    """Raises IngestError for an empty batch, UnsupportedFileTypeError for a bad file."""
    if not uploads:
        raise IngestError("At least one file is required")
    for upload in uploads:
        if not is_supported_upload(upload):
            raise UnsupportedFileTypeError(upload.name)


def scan_upload_directory(directory: Path) -> list[Path]:
    """Spreadsheet files directly inside ``directory``, sorted by name.

    Raises:
        IngestError: if the directory does not exist or cannot be read
    """
    if not directory.exists():
        raise IngestError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise IngestError(f"Path is not a directory: {directory}")
    try:
        return sorted(
            p
            for p in directory.iterdir()
            if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS and not p.name.startswith("~$")
        )
    except OSError as e:
        raise IngestError(f"Error reading directory {directory}: {e}") from e


def load_uploads(paths: Sequence[Path]) -> list[UploadedFile]:
    uploads = []
    for path in paths:
        mime_type, _ = mimetypes.guess_type(path.name)
        uploads.append(
            UploadedFile(name=path.name, mime_type=mime_type or _FALLBACK_MIME_TYPE, content=path.read_bytes())
        )
    return uploads


def build_analysis_draft(
    session_id: str, workbook: ParsedWorkbook, source_files: Sequence[str]
) -> AnalysisDraft:
    apartments = sorted({r.apartment for r in workbook.records if r.apartment}, key=apartment_sort_key)
    addresses = sorted({extract_address(a) for a in apartments})
    dates = sorted(
        d
        for record in workbook.records
        for d in (normalize_date(record.date_from), normalize_date(record.date_to))
        if d
    )
    return AnalysisDraft(
        session_id=session_id,
        apartments=tuple(apartments),
        addresses=tuple(addresses),
        available_metrics=workbook.headers,
        period_range=PeriodRange(min=dates[0] if dates else None, max=dates[-1] if dates else None),
        records_count=workbook.record_count,
        source_files=tuple(source_files),
        generated_at=datetime.now(UTC),
    )


def _archive_one(
    upload: UploadedFile,
    archive: DatabaseArchive | None,
    requested_by: RequestedBy,
    error_log: ErrorLogBuffer,
) -> FileUploadRecord:
    if archive is None:
        return FileUploadRecord(upload.name, upload.mime_type, upload.size, stored=False)
    try:
        archived = archive.store(upload, requested_by.user_id)
    except UpstreamStorageError as e:
        logger.error(f"Archive failed for {upload.name}: {e}")
        error_log.append(ErrorRecord.create(upload.name, UPSTREAM_STORAGE_FAILURE, str(e)))
        return FileUploadRecord(upload.name, upload.mime_type, upload.size, stored=False, error=str(e))
    return FileUploadRecord(
        upload.name,
        upload.mime_type,
        upload.size,
        stored=True,
        location=archived.location(archive.table),
    )


def ingest_files(
    uploads: Sequence[UploadedFile],
    requested_by: RequestedBy,
    store: AnalysisSessionStore,
    *,
    archive: DatabaseArchive | None = None,
    logs_dir: Path | str = "./logs",
) -> UploadResult:
    """Archive, parse and merge one upload batch into a new analysis session.

    Args:
        uploads: raw files of the batch
        requested_by: identity of the uploader
        store: session store receiving the merged workbook
        archive: archive adapter (None = mock mode, nothing is stored)
        logs_dir: directory of the per-batch error log

    Returns:
        UploadResult; ``analysis_draft`` is None when no file could be parsed

    Raises:
        IngestError / UnsupportedFileTypeError: before any file is processed
    """
    validate_uploads(uploads)
    start = time.perf_counter()
    error_log = ErrorLogBuffer(logs_dir)
    if archive is None:
        logger.debug("archive disabled (mock mode); uploads are parsed only")

    records: list[FileUploadRecord] = []
    workbooks: list[ParsedWorkbook] = []
    parsed_names: list[str] = []
    parse_errors: list[str] = []

    with ProgressTracker(len(uploads), description="Parsing files") as progress:
        for upload in uploads:
            progress.start_file(upload.name)
            records.append(_archive_one(upload, archive, requested_by, error_log))
            try:
                workbook = parse_workbook(upload.content, upload.name, upload.mime_type)
            except MalformedWorkbookError as e:
                logger.warning(f"Skipping {upload.name}: {e}")
                error_log.append(ErrorRecord.create(upload.name, MALFORMED_WORKBOOK, str(e)))
                parse_errors.append(f"{upload.name}: {e}")
                progress.finish_file(success=False)
                continue
            logger.info(f"Parsed {upload.name}: metrics={len(workbook.headers)} records={workbook.record_count}")
            workbooks.append(workbook)
            parsed_names.append(upload.name)
            progress.finish_file(success=True)

    draft = None
    if workbooks:
        merged = merge_workbooks(workbooks)
        session_id = store.create(merged, parsed_names, requested_by.user_id)
        draft = build_analysis_draft(session_id, merged, parsed_names)
        logger.info(
            f"Opened session {session_id[:8]} files={len(parsed_names)} records={merged.record_count}"
        )

    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"Error log written: {log_path}")

    return UploadResult(
        uploaded=all(r.error is None for r in records),
        files_count=len(uploads),
        uploaded_files=tuple(records),
        analysis_draft=draft,
        analysis_draft_error=" | ".join(parse_errors) or None,
        parsed_files=len(workbooks),
        failed_files=len(parse_errors),
        elapsed_seconds=time.perf_counter() - start,
    )
