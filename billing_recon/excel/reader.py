from __future__ import annotations

from io import BytesIO, StringIO
from pathlib import PurePath

import pandas as pd

from ..models.workbook import CellValue, ParsedMetric, ParsedRecord, ParsedWorkbook

from .values import cell_text, to_cell_value

"""Block-format billing spreadsheet reader.

Layout of the first worksheet:

- row 0: column 0 apartment, column 1 period start, columns 2+ metric names
- then one 5-row block per apartment and billing period::

    apartment | period start | start reading per metric
              | period end   | end reading per metric
              |              | reported consumption per metric
              |              | rate per metric
              |              | reported total per metric

Rows without an apartment label or a period start are skipped one at a time,
so stray notes between blocks do not break parsing.
"""

__all__ = [
    "BLOCK_HEIGHT",
    "FIRST_METRIC_COLUMN",
    "MalformedWorkbookError",
    "read_first_sheet",
    "parse_worksheet_blocks",
    "parse_workbook",
]

BLOCK_HEIGHT = 5
FIRST_METRIC_COLUMN = 2

CSV_MIME_TYPES = {"text/csv", "application/csv"}


class MalformedWorkbookError(Exception):
    """Raised when a file does not have the apartment settlement block layout."""


def _is_csv(file_name: str, mime_type: str | None) -> bool:
    return PurePath(file_name).suffix.lower() == ".csv" or (mime_type or "").lower() in CSV_MIME_TYPES


def read_first_sheet(content: bytes, file_name: str, mime_type: str | None = None) -> list[list[CellValue]]:
    """Read the first worksheet of an uploaded file as rows of CellValue.

    CSV files are read as text so cells keep their original formatting;
    Excel files go through pandas (xlrd for legacy .xls, openpyxl otherwise).
    Strings such as "NA" or "null" are kept as text in both cases.
    """
    if _is_csv(file_name, mime_type):
        text = content.decode("utf-8-sig")
        df = pd.read_csv(
            StringIO(text),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
            sep=None,
            engine="python",
        )
    else:
        engine = "xlrd" if PurePath(file_name).suffix.lower() == ".xls" else "openpyxl"
        xls = pd.ExcelFile(BytesIO(content), engine=engine)
        if not xls.sheet_names:
            raise MalformedWorkbookError("Workbook has no worksheets")
        # Raw read without header; the block parser interprets row 0 itself
        df = xls.parse(xls.sheet_names[0], header=None, keep_default_na=False)
    return [[to_cell_value(v) for v in row] for row in df.itertuples(index=False, name=None)]


def _text_at(rows: list[list[CellValue]], row: int, col: int) -> str:
    if row >= len(rows) or col >= len(rows[row]):
        return ""
    return cell_text(rows[row][col])


def parse_worksheet_blocks(rows: list[list[CellValue]]) -> ParsedWorkbook:
    """Parse 5-row apartment blocks out of worksheet rows."""
    if not rows:
        raise MalformedWorkbookError("Worksheet is empty")

    header_columns = [
        (name, col)
        for col in range(FIRST_METRIC_COLUMN, len(rows[0]))
        if (name := _text_at(rows, 0, col))
    ]
    if not header_columns:
        raise MalformedWorkbookError("Header row is missing metric columns")

    records: list[ParsedRecord] = []
    row = 1
    while row < len(rows):
        apartment = _text_at(rows, row, 0)
        date_from = _text_at(rows, row, 1)
        if not apartment or not date_from:
            row += 1
            continue
        if row + BLOCK_HEIGHT > len(rows):
            break

        metrics = tuple(
            ParsedMetric(
                metric=name,
                start_value=_text_at(rows, row, col),
                end_value=_text_at(rows, row + 1, col),
                consumption=_text_at(rows, row + 2, col),
                rate=_text_at(rows, row + 3, col),
                total=_text_at(rows, row + 4, col),
            )
            for name, col in header_columns
        )
        records.append(
            ParsedRecord(
                apartment=apartment,
                date_from=date_from,
                date_to=_text_at(rows, row + 1, 1),
                metrics=metrics,
            )
        )
        row += BLOCK_HEIGHT

    return ParsedWorkbook(headers=tuple(name for name, _ in header_columns), records=tuple(records))


def parse_workbook(content: bytes, file_name: str, mime_type: str | None = None) -> ParsedWorkbook:
    """Parse uploaded bytes into a ParsedWorkbook.

    Raises:
        MalformedWorkbookError: for any unreadable file or unexpected layout.
    """
    try:
        rows = read_first_sheet(content, file_name, mime_type)
        return parse_worksheet_blocks(rows)
    except Exception as e:
        reason = str(e) or type(e).__name__
        raise MalformedWorkbookError(
            f"Unsupported Excel shape. Expected worksheet with apartment settlement blocks. ({reason})"
        ) from e
