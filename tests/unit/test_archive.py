from __future__ import annotations

from typing import Any

import psycopg2
import pytest

from billing_recon.db.archive import (
    DatabaseArchive,
    UpstreamStorageError,
    ensure_archive_table,
    fetch_archived_file,
    validate_table_name,
)
from billing_recon.models.upload_result import UploadedFile


class DummyCursor:
    """Records executed statements; optionally fails on statements containing ``fail_on``."""

    def __init__(self, fetch_result: Any = (42,), fail_on: str | None = None) -> None:
        self.executed: list[tuple[str, Any]] = []
        self.fetch_result = fetch_result
        self.fail_on = fail_on

    def execute(self, sql: str, params: Any = None) -> None:
        self.executed.append((sql, params))
        if self.fail_on and self.fail_on in sql:
            raise psycopg2.Error(f"simulated failure on {self.fail_on}")

    def fetchone(self) -> Any:
        return self.fetch_result

    @property
    def statements(self) -> list[str]:
        return [sql.split()[0] for sql, _ in self.executed]


UPLOAD = UploadedFile(name="a.xlsx", mime_type="text/csv", content=b"abc")


@pytest.mark.parametrize("name", ["excel_uploads", "Uploads2", "_t"])
def test_valid_table_names(name):
    assert validate_table_name(name) == name


@pytest.mark.parametrize("name", ["", "bad-name", "1abc", "x; DROP TABLE y"])
def test_invalid_table_names(name):
    with pytest.raises(UpstreamStorageError):
        validate_table_name(name)


def test_store_commits_one_transaction_per_file():
    cursor = DummyCursor(fetch_result=(7,))
    archived = DatabaseArchive(cursor, "excel_uploads").store(UPLOAD, "user-1")

    assert cursor.statements == ["BEGIN", "INSERT", "COMMIT"]
    _, params = cursor.executed[1]
    assert params[:4] == ("a.xlsx", "text/csv", 3, "user-1")
    assert params[4].adapted == b"abc"
    assert (archived.id, archived.name, archived.size) == (7, "a.xlsx", 3)
    assert archived.elapsed_seconds >= 0
    assert archived.location("excel_uploads") == "excel_uploads:7"


def test_store_failure_rolls_back():
    cursor = DummyCursor(fail_on="INSERT")
    with pytest.raises(UpstreamStorageError, match="a.xlsx"):
        DatabaseArchive(cursor).store(UPLOAD, "user-1")
    assert cursor.statements == ["BEGIN", "INSERT", "ROLLBACK"]


def test_store_without_returned_id_fails():
    cursor = DummyCursor(fetch_result=None)
    with pytest.raises(UpstreamStorageError, match="returned no id"):
        DatabaseArchive(cursor).store(UPLOAD, "user-1")


def test_archive_rejects_invalid_table():
    with pytest.raises(UpstreamStorageError):
        DatabaseArchive(DummyCursor(), "bad table")


def test_ensure_archive_table():
    cursor = DummyCursor()
    ensure_archive_table(cursor, "excel_uploads")
    assert cursor.statements == ["CREATE", "COMMIT"]
    assert "CREATE TABLE IF NOT EXISTS excel_uploads" in cursor.executed[0][0]


def test_ensure_archive_table_failure():
    cursor = DummyCursor(fail_on="CREATE")
    with pytest.raises(UpstreamStorageError):
        ensure_archive_table(cursor, "excel_uploads")
    assert cursor.statements[-1] == "ROLLBACK"


def test_fetch_archived_file():
    cursor = DummyCursor(fetch_result=(3, "a.xlsx", memoryview(b"xyz")))
    assert fetch_archived_file(cursor, "excel_uploads", 3) == ("a.xlsx", b"xyz")
    assert cursor.executed[0][1] == (3,)


def test_fetch_unknown_id():
    with pytest.raises(UpstreamStorageError):
        fetch_archived_file(DummyCursor(fetch_result=None), "excel_uploads", 99)
