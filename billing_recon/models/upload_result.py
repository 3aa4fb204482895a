from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePath

from .session import AnalysisDraft

"""Upload models: incoming raw files and the per-batch upload result."""

__all__ = [
    "UploadedFile",
    "FileUploadRecord",
    "UploadResult",
]


@dataclass(frozen=True)
class UploadedFile:
    """Raw file handed over by the transport layer."""
    name: str
    mime_type: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def suffix(self) -> str:
        return PurePath(self.name).suffix.lower()


@dataclass(frozen=True)
class FileUploadRecord:
    """Archival outcome of one uploaded file."""
    source_file_name: str
    mime_type: str
    size: int
    stored: bool  # False in mock mode or on archival failure
    location: str | None = None  # e.g. "excel_uploads:42"
    error: str | None = None


@dataclass(frozen=True)
class UploadResult:
    uploaded: bool
    files_count: int
    uploaded_files: tuple[FileUploadRecord, ...]
    analysis_draft: AnalysisDraft | None
    analysis_draft_error: str | None = None
    parsed_files: int = 0
    failed_files: int = 0
    elapsed_seconds: float = 0.0
