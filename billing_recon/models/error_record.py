from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the per-batch error log.

Per-file failures that do not abort an upload batch (malformed workbook
layout, archive write failure) are written as one JSON line each. ``row`` is
the 1-based worksheet row when known and -1 for file-level failures.
"""

__all__ = [
    "ErrorRecord",
    "FILE_LEVEL",
    "MALFORMED_WORKBOOK",
    "UPSTREAM_STORAGE_FAILURE",
]

FILE_LEVEL = "<FILE_LEVEL>"

MALFORMED_WORKBOOK = "MALFORMED_WORKBOOK"
UPSTREAM_STORAGE_FAILURE = "UPSTREAM_STORAGE_FAILURE"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: uploaded file name
        sheet: worksheet name, or FILE_LEVEL when the sheet is unknown
        row: 1-based row number, -1 when unknown
        error_type: classification in UPPER_SNAKE_CASE
        message: human readable reason
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, error_type: str, message: str, *, sheet: str = FILE_LEVEL, row: int = -1) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # asdict keeps the key set fixed to the dataclass fields
        return json.dumps(asdict(self), ensure_ascii=False)
