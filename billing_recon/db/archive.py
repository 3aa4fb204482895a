from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import psycopg2

from ..models.upload_result import UploadedFile

"""Raw upload archival into PostgreSQL.

Every uploaded file is stored as one row (name, MIME type, size, uploader,
bytes) in its own transaction, so one failing file never rolls back the
others. Archival failures are reported as UpstreamStorageError and never stop
the analysis of the batch.

Table layout (created on demand by ``ensure_archive_table``)::

    id serial primary key, name text, mime_type text, size integer,
    uploaded_by text, uploaded_at timestamptz default now(), file bytea
"""

__all__ = [
    "UpstreamStorageError",
    "ArchivedFile",
    "DatabaseArchive",
    "validate_table_name",
    "ensure_archive_table",
    "fetch_archived_file",
]

logger = logging.getLogger(__name__)


class UpstreamStorageError(Exception):
    pass


@dataclass(frozen=True)
class ArchivedFile:
    id: int
    name: str
    mime_type: str
    size: int
    elapsed_seconds: float = 0.0

    def location(self, table: str) -> str:
        return f"{table}:{self.id}"


def validate_table_name(table: str) -> str:
    """Table names are interpolated into SQL; only [A-Za-z0-9_] is accepted."""
    if not table or not table.replace("_", "").isalnum() or table[0].isdigit():
        raise UpstreamStorageError(
            f"Invalid table name {table!r}. Only alphanumeric characters and underscores are allowed."
        )
    return table


def ensure_archive_table(cursor: Any, table: str) -> None:
    validate_table_name(table)
    try:
        cursor.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("
            "id serial PRIMARY KEY, name text NOT NULL, mime_type text, size integer, "
            "uploaded_by text, uploaded_at timestamptz NOT NULL DEFAULT now(), file bytea NOT NULL)"
        )
        cursor.execute("COMMIT")
    except psycopg2.Error as e:
        cursor.execute("ROLLBACK")
        raise UpstreamStorageError(f"failed to prepare archive table {table}: {e}") from e


class DatabaseArchive:
    """Stores raw uploads through an open psycopg2 cursor."""

    def __init__(self, cursor: Any, table: str = "excel_uploads") -> None:
        self.cursor = cursor
        self.table = validate_table_name(table)

    def store(self, upload: UploadedFile, user_id: str) -> ArchivedFile:
        """Insert one file in its own transaction.

        Raises:
            UpstreamStorageError: when the insert or commit fails (the
                transaction is rolled back first).
        """
        start = time.perf_counter()
        self.cursor.execute("BEGIN")
        try:
            self.cursor.execute(
                f"INSERT INTO {self.table} (name, mime_type, size, uploaded_by, file) "
                "VALUES (%s, %s, %s, %s, %s) RETURNING id",
                (upload.name, upload.mime_type, upload.size, user_id, psycopg2.Binary(upload.content)),
            )
            row = self.cursor.fetchone()
            self.cursor.execute("COMMIT")
        except Exception as e:
            self.cursor.execute("ROLLBACK")
            raise UpstreamStorageError(f"archive write failed for {upload.name}: {e}") from e
        if not row:
            raise UpstreamStorageError(f"archive write for {upload.name} returned no id")

        archived = ArchivedFile(
            id=int(row[0]),
            name=upload.name,
            mime_type=upload.mime_type,
            size=upload.size,
            elapsed_seconds=time.perf_counter() - start,
        )
        logger.debug(f"archived {upload.name} as {archived.location(self.table)} ({archived.size} bytes)")
        return archived


def fetch_archived_file(cursor: Any, table: str, file_id: int) -> tuple[str, bytes]:
    """Return (name, content) of an archived upload.

    Raises:
        UpstreamStorageError: unknown id or invalid table name.
    """
    validate_table_name(table)
    cursor.execute(f"SELECT id, name, file FROM {table} WHERE id = %s", (file_id,))
    row = cursor.fetchone()
    if row is None:
        raise UpstreamStorageError(f"no archived file with id {file_id} in {table}")
    return row[1], bytes(row[2])
