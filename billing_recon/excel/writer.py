from __future__ import annotations

import logging
from collections.abc import Sequence
from io import BytesIO

from openpyxl import Workbook
from openpyxl.cell.cell import Cell
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ..models.export_payload import ExportColumn, ExportPayload, StyleTag, YearOverYearRow
from ..services.annual_rollup import consumption_style
from ..services.filtering import VALIDATION_TOLERANCE
from ..services.year_over_year import YEAR_OVER_YEAR_HEADERS, resolve_difference_style

"""openpyxl rendering of export descriptions into .xlsx bytes.

All conditional formatting goes through STYLE_TABLE, keyed by StyleTag.
"""

__all__ = [
    "XLSX_MEDIA_TYPE",
    "STYLE_TABLE",
    "REPORT_SHEET",
    "YEAR_OVER_YEAR_SHEET",
    "FIXED_FEE_LABEL",
    "YEARLY_SECTION_TITLE",
    "NO_YEAR_OVER_YEAR_DATA",
    "apply_style",
    "render_pivot_workbook",
    "render_year_over_year_workbook",
]

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

REPORT_SHEET = "Raport"
YEAR_OVER_YEAR_SHEET = "Rok do roku"
FIXED_FEE_LABEL = "SUMA opłat stałych"
YEARLY_SECTION_TITLE = "Podsumowanie roczne (automatyczne przy pełnym pokryciu roku)"
NO_YEAR_OVER_YEAR_DATA = (
    "Brak danych do porownania rok do roku. Potrzebne sa dane dla co najmniej 2 kolejnych lat."
)

# StyleTag -> (fill colour, font colour); every tagged cell is bold
STYLE_TABLE: dict[StyleTag, tuple[str, str]] = {
    StyleTag.OK: ("C6EFCE", "006100"),
    StyleTag.ERROR: ("FFC7CE", "9C0006"),
    StyleTag.ZERO: ("FFEB9C", "9C6500"),
    StyleTag.NEGATIVE: ("F4CCCC", "660066"),
    StyleTag.WARNING: ("DDEBF7", "1F4E79"),
}

FIXED_COLUMNS = 3
PIVOT_HEADER_FILL = "D9E1F2"
SECTION_HEADER_FILL = "E2EFDA"
FIXED_FEE_FILL = "FFF2CC"
ZERO_FONT_COLOR = "FF0000"

PIVOT_FIXED_WIDTHS = (28, 14, 18)
PIVOT_PERIOD_WIDTH = 18
YEAR_OVER_YEAR_WIDTHS = (26, 14, 20, 12, 16, 15, 20, 14, 12, 12, 36)

_MEDIUM_BLACK = Side(style="medium", color="000000")
_MEDIUM_RED = Side(style="medium", color=ZERO_FONT_COLOR)


def _solid(color: str) -> PatternFill:
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


def apply_style(cell: Cell, style: StyleTag) -> None:
    if style is StyleTag.NONE:
        return
    fill, font = STYLE_TABLE[style]
    cell.fill = _solid(fill)
    cell.font = Font(bold=True, color=font)


def _is_exact_zero(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, str):
        return value.strip() == "0"
    return False


def _apply_zero_font(cell: Cell, value: object) -> None:
    """Exact zeros are always shown in red, on top of any other style."""
    if _is_exact_zero(value):
        font = cell.font
        cell.font = Font(name=font.name, size=font.size, bold=font.bold, italic=font.italic, color=ZERO_FONT_COLOR)


def _with_top(cell: Cell, side: Side) -> None:
    b = cell.border
    cell.border = Border(left=b.left, right=b.right, top=side, bottom=b.bottom)


def _with_left(cell: Cell, side: Side) -> None:
    b = cell.border
    cell.border = Border(left=side, right=b.right, top=b.top, bottom=b.bottom)


def _to_bytes(wb: Workbook) -> bytes:
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _write_pivot_header(ws: Worksheet, payload: ExportPayload) -> None:
    header_fill = _solid(PIVOT_HEADER_FILL)
    bold = Font(bold=True)

    for col, label in enumerate(("Adres", "Lokal", "Metryka"), start=1):
        cell = ws.cell(row=1, column=col, value=label)
        cell.font = bold
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", vertical="center")

    # Row 2 is written before merging; merged cells become read-only
    col = FIXED_COLUMNS + 1
    for period in payload.periods:
        cell = ws.cell(row=1, column=col, value=period.label)
        cell.font = bold
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")
        for offset, label in enumerate(payload.column_labels):
            sub = ws.cell(row=2, column=col + offset, value=label)
            sub.font = bold
            sub.fill = header_fill
        if period.column_count > 1:
            ws.merge_cells(start_row=1, start_column=col, end_row=1, end_column=col + period.column_count - 1)
        col += period.column_count

    for c in range(1, FIXED_COLUMNS + 1):
        ws.merge_cells(start_row=1, start_column=c, end_row=2, end_column=c)


def _write_pivot_rows(ws: Worksheet, payload: ExportPayload) -> None:
    previous = None
    for row_idx, export_row in enumerate(payload.rows):
        excel_row = ws.max_row + 1
        for col, value in enumerate((export_row.address, export_row.apartment, export_row.metric), start=1):
            ws.cell(row=excel_row, column=col, value=value)

        for cell_idx, export_cell in enumerate(export_row.cells):
            cell = ws.cell(row=excel_row, column=FIXED_COLUMNS + 1 + cell_idx, value=export_cell.value)
            apply_style(cell, export_cell.style)
            if (row_idx, cell_idx) in payload.rate_outliers:
                cell.border = Border(left=_MEDIUM_RED, right=_MEDIUM_RED, top=_MEDIUM_RED, bottom=_MEDIUM_RED)
            _apply_zero_font(cell, export_cell.value)

        # Separator goes last so styles and outlier borders do not overwrite it
        if previous is None or (previous.address, previous.apartment) != (export_row.address, export_row.apartment):
            for col in range(1, FIXED_COLUMNS + len(export_row.cells) + 1):
                _with_top(ws.cell(row=excel_row, column=col), _MEDIUM_BLACK)
        previous = export_row


def _write_fixed_fee_row(ws: Worksheet, payload: ExportPayload) -> None:
    if not payload.fixed_fee_summary:
        return
    column_count = len(payload.columns)
    cell_count = len(payload.periods) * column_count
    values: list[object] = [None] * cell_count
    if ExportColumn.REPORTED_TOTAL in payload.columns:
        reported_idx = payload.columns.index(ExportColumn.REPORTED_TOTAL)
        for period_idx, period in enumerate(payload.periods):
            amount = payload.fixed_fee_summary.get(period.key)
            if amount is not None:
                values[period_idx * column_count + reported_idx] = amount

    excel_row = ws.max_row + 2  # one blank row before the summary
    ws.cell(row=excel_row, column=2, value=FIXED_FEE_LABEL)
    fill = _solid(FIXED_FEE_FILL)
    for col in range(1, FIXED_COLUMNS + cell_count + 1):
        cell = ws.cell(row=excel_row, column=col)
        cell.font = Font(bold=True)
        cell.border = Border(top=_MEDIUM_BLACK, bottom=_MEDIUM_BLACK)
        if col <= FIXED_COLUMNS:
            cell.fill = fill
            continue
        value = values[col - FIXED_COLUMNS - 1]
        if value is not None:
            cell.value = value
            cell.fill = fill


def _write_yearly_section(ws: Worksheet, payload: ExportPayload) -> None:
    if not payload.yearly_rows:
        return
    title_row = ws.max_row + 3  # two blank rows
    ws.cell(row=title_row, column=1, value=YEARLY_SECTION_TITLE).font = Font(bold=True, size=12)

    header_row = title_row + 1
    fill = _solid(SECTION_HEADER_FILL)
    for col, label in enumerate(payload.yearly_headers, start=1):
        cell = ws.cell(row=header_row, column=col, value=label)
        cell.font = Font(bold=True)
        cell.fill = fill

    for offset, yearly in enumerate(payload.yearly_rows, start=1):
        for col, export_cell in enumerate(yearly.cells(), start=1):
            cell = ws.cell(row=header_row + offset, column=col, value=export_cell.value)
            apply_style(cell, export_cell.style)
            _apply_zero_font(cell, export_cell.value)


def render_pivot_workbook(payload: ExportPayload) -> bytes:
    """Render the pivot export (sheet ``Raport``) into .xlsx bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = REPORT_SHEET
    logger.debug(
        f"writing main table headers={len(payload.headers)} rows={len(payload.rows)} periods={len(payload.periods)}"
    )

    _write_pivot_header(ws, payload)
    _write_pivot_rows(ws, payload)
    _write_fixed_fee_row(ws, payload)

    for col, width in enumerate(PIVOT_FIXED_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(col)].width = width
    for col in range(FIXED_COLUMNS + 1, len(payload.headers) + 1):
        ws.column_dimensions[get_column_letter(col)].width = PIVOT_PERIOD_WIDTH

    _write_yearly_section(ws, payload)
    return _to_bytes(wb)


def render_year_over_year_workbook(
    rows: Sequence[YearOverYearRow],
    comparison_month: int,
    tolerance: float = VALIDATION_TOLERANCE,
) -> bytes:
    """Render year-over-year rows (sheet ``Rok do roku``) into .xlsx bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = YEAR_OVER_YEAR_SHEET
    logger.debug(f"writing year over year rows={len(rows)} month={comparison_month}")

    ws.cell(row=1, column=1, value=f"Raport rok do roku (odczyty konca miesiaca {comparison_month})").font = Font(
        bold=True, size=12
    )
    fill = _solid(SECTION_HEADER_FILL)
    for col, label in enumerate(YEAR_OVER_YEAR_HEADERS, start=1):
        cell = ws.cell(row=3, column=col, value=label)
        cell.font = Font(bold=True)
        cell.fill = fill

    if not rows:
        ws.cell(row=4, column=1, value=NO_YEAR_OVER_YEAR_DATA)
        ws.column_dimensions["A"].width = 110
        return _to_bytes(wb)

    previous_apartment = None
    for excel_row, row in enumerate(rows, start=4):
        values = (
            row.address,
            row.apartment,
            row.metric,
            row.base_year,
            row.base_consumption,
            row.compare_year,
            row.compare_consumption,
            row.difference,
            row.change_percent,
            row.trend,
            row.note,
        )
        cells = [ws.cell(row=excel_row, column=col, value=value) for col, value in enumerate(values, start=1)]

        if row.apartment != previous_apartment:
            _with_left(cells[0], _MEDIUM_BLACK)

        apply_style(cells[4], consumption_style(row.base_consumption))
        apply_style(cells[6], consumption_style(row.compare_consumption))
        difference_style = resolve_difference_style(row.difference, tolerance)
        apply_style(cells[7], difference_style)
        apply_style(cells[9], difference_style)
        if row.note:
            apply_style(cells[10], StyleTag.WARNING)
        for idx in (4, 6, 7, 8):
            _apply_zero_font(cells[idx], values[idx])

        previous_apartment = row.apartment

    for col, width in enumerate(YEAR_OVER_YEAR_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(col)].width = width
    return _to_bytes(wb)
