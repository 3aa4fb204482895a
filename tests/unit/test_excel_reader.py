from __future__ import annotations

import pandas as pd
import pytest

from billing_recon.excel.reader import (
    MalformedWorkbookError,
    parse_workbook,
    parse_worksheet_blocks,
    read_first_sheet,
)
from conftest import block, sheet, xlsx_bytes


def _blocks(n: int) -> list[list]:
    return [
        block(f"Lipowa 1/{i}", "2023-01-01", "2023-06-30", [(i, i + 10, 10, 2, 20), (0, 1, 1, 45, 45)])
        for i in range(1, n + 1)
    ]


def test_parse_n_blocks_yields_n_records():
    rows = sheet(["Woda", "Opłata stała"], *_blocks(4))
    wb = parse_worksheet_blocks(rows)
    assert wb.headers == ("Woda", "Opłata stała")
    assert wb.record_count == 4
    first = wb.records[0]
    assert first.apartment == "Lipowa 1/1"
    assert first.date_from == "2023-01-01"
    assert first.date_to == "2023-06-30"
    woda = first.metric("Woda")
    assert (woda.start_value, woda.end_value, woda.consumption, woda.rate, woda.total) == ("1", "11", "10", "2", "20")


def test_stray_rows_are_skipped_one_at_a_time():
    rows = sheet(["Woda"], [["note", None, None]], block("A/1", "2023-01-01", "2023-01-31", [(1, 2, 1, 1, 1)]),
                 [[None, None, None]], block("A/2", "2023-01-01", "2023-01-31", [(1, 3, 2, 1, 2)]))
    wb = parse_worksheet_blocks(rows)
    assert [r.apartment for r in wb.records] == ["A/1", "A/2"]


def test_trailing_partial_block_is_dropped():
    rows = sheet(["Woda"], block("A/1", "2023-01-01", "2023-01-31", [(1, 2, 1, 1, 1)]))
    rows.extend([["A/2", "2023-02-01", 2], [None, "2023-02-28", 3]])
    wb = parse_worksheet_blocks(rows)
    assert wb.record_count == 1


def test_empty_sheet_is_malformed():
    with pytest.raises(MalformedWorkbookError):
        parse_worksheet_blocks([])


def test_header_without_metrics_is_malformed():
    with pytest.raises(MalformedWorkbookError):
        parse_worksheet_blocks([["Lokal", "Data", None, "  "]])


def test_parse_workbook_from_xlsx_bytes(half_year_rows):
    wb = parse_workbook(xlsx_bytes(half_year_rows), "rozliczenie.xlsx")
    assert wb.headers == ("Woda",)
    assert wb.record_count == 2
    assert wb.records[1].metric("Woda").end_value == "125"


def test_parse_workbook_keeps_decimal_display():
    rows = sheet(["Prąd"], block("B/7", "2023-01-01", "2023-12-31", [(10.5, 20.25, 9.75, 0.8, 7.8)]))
    metric = parse_workbook(xlsx_bytes(rows), "b.xlsx").records[0].metric("Prąd")
    assert metric.start_value == "10.5"
    assert metric.end_value == "20.25"


def test_parse_workbook_wraps_reader_errors():
    with pytest.raises(MalformedWorkbookError) as exc:
        parse_workbook(b"definitely not a spreadsheet", "broken.xlsx")
    assert str(exc.value).startswith(
        "Unsupported Excel shape. Expected worksheet with apartment settlement blocks. ("
    )


def test_csv_is_read_as_text():
    content = (
        "Lokal,Data,Woda\n"
        "5/3,2023-01-01,100\n"
        ",2023-06-30,110\n"
        ",,10\n"
        ",,5\n"
        ",,50\n"
    ).encode("utf-8")
    rows = read_first_sheet(content, "dane.csv")
    assert rows[1][0] == "5/3"
    wb = parse_workbook(content, "dane.csv", "text/csv")
    assert wb.record_count == 1
    assert wb.records[0].metric("Woda").total == "50"


def test_na_like_labels_survive_xlsx_read():
    rows = sheet(["null"], block("NA", "2023-01-01", "2023-06-30", [(100, 110, 10, 5, 50)]))
    wb = parse_workbook(xlsx_bytes(rows), "na.xlsx")
    assert wb.headers == ("null",)
    assert wb.record_count == 1
    assert wb.records[0].apartment == "NA"


def test_na_like_labels_survive_csv_read():
    content = "Lokal,Data,N/A\nNone,2023-01-01,1\n,2023-06-30,2\n,,1\n,,1\n,,1\n".encode("utf-8")
    wb = parse_workbook(content, "na.csv")
    assert wb.headers == ("N/A",)
    assert wb.records[0].apartment == "None"


class _RecordingExcelFile:
    engines: list[str | None] = []

    def __init__(self, source, engine=None):
        type(self).engines.append(engine)
        self.sheet_names = ["Arkusz1"]

    def parse(self, sheet_name, header=None, keep_default_na=True):
        assert keep_default_na is False
        return pd.DataFrame(
            sheet(["Woda"], block("A/1", "2023-01-01", "2023-06-30", [(1, 2, 1, 1, 1)]))
        )


@pytest.mark.parametrize(
    ("file_name", "engine"),
    [("stary.xls", "xlrd"), ("STARY.XLS", "xlrd"), ("nowy.xlsx", "openpyxl"), ("makro.xlsm", "openpyxl")],
)
def test_excel_engine_follows_extension(monkeypatch, file_name, engine):
    _RecordingExcelFile.engines = []
    monkeypatch.setattr(pd, "ExcelFile", _RecordingExcelFile)
    wb = parse_workbook(b"\xd0\xcf\x11\xe0", file_name)
    assert _RecordingExcelFile.engines == [engine]
    assert wb.record_count == 1


def test_xls_engine_is_installed():
    xlrd = pytest.importorskip("xlrd")
    assert int(xlrd.__version__.split(".")[0]) >= 2
