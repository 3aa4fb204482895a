from __future__ import annotations

import json
from pathlib import Path

import pytest

from billing_recon.db.archive import ArchivedFile, UpstreamStorageError
from billing_recon.models.requests import RequestedBy
from billing_recon.models.upload_result import UploadedFile
from billing_recon.models.workbook import ParsedMetric, ParsedRecord, ParsedWorkbook
from billing_recon.services.ingest import (
    IngestError,
    UnsupportedFileTypeError,
    build_analysis_draft,
    ingest_files,
    load_uploads,
    scan_upload_directory,
    validate_uploads,
)
from billing_recon.services.session_store import AnalysisSessionStore
from conftest import block, sheet, xlsx_bytes

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
USER = RequestedBy(user_id="user-1", email="u@example.com")


def _upload(name: str, rows) -> UploadedFile:
    return UploadedFile(name=name, mime_type=XLSX, content=xlsx_bytes(rows))


def _first_half():
    return sheet(["Woda"], block("5/3", "2023-01-01", "2023-06-30", [(100, 110, 10, 5, 50)]))


def _second_half():
    return sheet(["Woda"], block("5/3", "2023-07-01", "2023-12-31", [(110, 125, 15, 5, 75)]))


class FakeArchive:
    table = "excel_uploads"

    def __init__(self, failing: set[str] = frozenset()) -> None:
        self.failing = failing
        self.stored: list[tuple[str, str]] = []

    def store(self, upload: UploadedFile, user_id: str) -> ArchivedFile:
        if upload.name in self.failing:
            raise UpstreamStorageError(f"archive write failed for {upload.name}: disk full")
        self.stored.append((upload.name, user_id))
        return ArchivedFile(id=len(self.stored), name=upload.name, mime_type=upload.mime_type, size=upload.size)


def test_validate_uploads_rejects_empty_batch():
    with pytest.raises(IngestError):
        validate_uploads([])


def test_validate_uploads_rejects_unsupported_file():
    uploads = [_upload("a.xlsx", _first_half()), UploadedFile("notes.txt", "text/plain", b"hi")]
    with pytest.raises(UnsupportedFileTypeError) as exc:
        validate_uploads(uploads)
    assert exc.value.file_name == "notes.txt"
    assert str(exc.value) == "Only .xlsx, .xls or .csv files are allowed (got 'notes.txt')"


def test_supported_by_mime_type_alone():
    validate_uploads([UploadedFile("upload", "text/csv", b"")])


def test_unsupported_file_aborts_batch_before_anything_happens(tmp_path):
    store = AnalysisSessionStore()
    archive = FakeArchive()
    uploads = [_upload("a.xlsx", _first_half()), UploadedFile("x.pdf", "application/pdf", b"%PDF")]
    with pytest.raises(UnsupportedFileTypeError):
        ingest_files(uploads, USER, store, archive=archive, logs_dir=tmp_path)
    assert len(store) == 0
    assert archive.stored == []


def test_ingest_merges_files_into_one_session(tmp_path):
    store = AnalysisSessionStore()
    result = ingest_files(
        [_upload("h1.xlsx", _first_half()), _upload("h2.xlsx", _second_half())], USER, store, logs_dir=tmp_path
    )

    assert result.uploaded is True
    assert result.files_count == 2
    assert result.parsed_files == 2
    assert result.failed_files == 0
    assert result.analysis_draft_error is None
    assert all(not r.stored and r.location is None for r in result.uploaded_files)

    draft = result.analysis_draft
    assert draft.records_count == 2
    assert draft.source_files == ("h1.xlsx", "h2.xlsx")
    assert draft.files_count == 2
    assert draft.available_metrics == ("Woda",)
    assert draft.apartments == ("5/3",)
    assert draft.addresses == ("5",)
    assert (draft.period_range.min, draft.period_range.max) == ("2023-01-01", "2023-12-31")

    session = store.require(draft.session_id)
    assert session.requested_by_user_id == "user-1"
    assert session.workbook.record_count == 2
    assert not list(tmp_path.iterdir())  # no errors, no error log


def test_malformed_file_is_skipped_and_logged(tmp_path):
    store = AnalysisSessionStore()
    result = ingest_files(
        [_upload("good.xlsx", _first_half()), UploadedFile("bad.xlsx", XLSX, b"garbage")],
        USER,
        store,
        logs_dir=tmp_path,
    )

    assert result.parsed_files == 1
    assert result.failed_files == 1
    assert result.uploaded is True
    assert result.analysis_draft.source_files == ("good.xlsx",)
    assert result.analysis_draft_error.startswith("bad.xlsx: Unsupported Excel shape.")

    (log_file,) = tmp_path.glob("recon-errors-*.log")
    (line,) = log_file.read_text(encoding="utf-8").splitlines()
    record = json.loads(line)
    assert record["file"] == "bad.xlsx"
    assert record["error_type"] == "MALFORMED_WORKBOOK"
    assert record["row"] == -1


def test_all_files_malformed_opens_no_session(tmp_path):
    store = AnalysisSessionStore()
    result = ingest_files(
        [UploadedFile("a.xlsx", XLSX, b"x"), UploadedFile("b.csv", "text/csv", b"")],
        USER,
        store,
        logs_dir=tmp_path,
    )
    assert result.analysis_draft is None
    assert result.failed_files == 2
    assert result.analysis_draft_error.count(" | ") == 1
    assert len(store) == 0


def test_archive_records_locations(tmp_path):
    archive = FakeArchive()
    result = ingest_files(
        [_upload("h1.xlsx", _first_half()), _upload("h2.xlsx", _second_half())],
        USER,
        AnalysisSessionStore(),
        archive=archive,
        logs_dir=tmp_path,
    )
    assert [r.location for r in result.uploaded_files] == ["excel_uploads:1", "excel_uploads:2"]
    assert all(r.stored for r in result.uploaded_files)
    assert archive.stored == [("h1.xlsx", "user-1"), ("h2.xlsx", "user-1")]


def test_archive_failure_does_not_stop_analysis(tmp_path):
    archive = FakeArchive(failing={"h2.xlsx"})
    result = ingest_files(
        [_upload("h1.xlsx", _first_half()), _upload("h2.xlsx", _second_half())],
        USER,
        AnalysisSessionStore(),
        archive=archive,
        logs_dir=tmp_path,
    )
    assert result.uploaded is False
    failed = result.uploaded_files[1]
    assert failed.stored is False
    assert "disk full" in failed.error
    assert result.parsed_files == 2
    assert result.analysis_draft.records_count == 2

    (log_file,) = tmp_path.glob("recon-errors-*.log")
    record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[0])
    assert record["error_type"] == "UPSTREAM_STORAGE_FAILURE"


def test_scan_upload_directory(tmp_path):
    for name in ("b.csv", "a.xlsx", "c.txt", "~$a.xlsx", "D.XLS"):
        (tmp_path / name).write_bytes(b"")
    (tmp_path / "nested.xlsx").mkdir()
    assert [p.name for p in scan_upload_directory(tmp_path)] == ["D.XLS", "a.xlsx", "b.csv"]


def test_scan_missing_directory(tmp_path):
    with pytest.raises(IngestError):
        scan_upload_directory(tmp_path / "missing")


def test_load_uploads_guesses_mime_types(tmp_path):
    csv_path = tmp_path / "a.csv"
    csv_path.write_bytes(b"x")
    xls_path = tmp_path / "b.xls"
    xls_path.write_bytes(b"yy")
    uploads = load_uploads([csv_path, xls_path])
    assert [(u.name, u.mime_type, u.size) for u in uploads] == [
        ("a.csv", "text/csv", 1),
        ("b.xls", "application/vnd.ms-excel", 2),
    ]


def test_build_analysis_draft_orders_apartments_numerically():
    def record(label: str, date_from: str, date_to: str) -> ParsedRecord:
        return ParsedRecord(label, date_from, date_to, (ParsedMetric("Woda"),))

    workbook = ParsedWorkbook(
        headers=("Woda",),
        records=(
            record("10/1", "2023-01-01", "2023-06-30"),
            record("2/1", "01.07.2023", "31.12.2023"),
            record("2/1", "bad", "2024-01-31"),
        ),
    )
    draft = build_analysis_draft("sid", workbook, ["f.xlsx"])
    assert draft.apartments == ("2/1", "10/1")
    assert draft.addresses == ("10", "2")
    assert (draft.period_range.min, draft.period_range.max) == ("2023-01-01", "2024-01-31")
    assert draft.records_count == 3
