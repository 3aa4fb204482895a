from __future__ import annotations

import pytest

from billing_recon.excel.reader import parse_worksheet_blocks
from billing_recon.services.merger import merge_workbooks
from conftest import block, sheet


def _wb(names, *blocks):
    return parse_worksheet_blocks(sheet(names, *blocks))


def test_merge_zero_workbooks_fails():
    with pytest.raises(ValueError):
        merge_workbooks([])


def test_headers_are_unioned_in_first_seen_order_and_metrics_aligned():
    first = _wb(["Woda", "Gaz"], block("A/1", "2023-01-01", "2023-06-30", [(1, 2, 1, 1, 1), (5, 6, 1, 2, 2)]))
    second = _wb(["Prąd", "Woda"], block("A/1", "2023-07-01", "2023-12-31", [(7, 9, 2, 1, 2), (2, 3, 1, 1, 1)]))

    merged = merge_workbooks([first, second])

    assert merged.headers == ("Woda", "Gaz", "Prąd")
    for record in merged.records:
        assert tuple(m.metric for m in record.metrics) == merged.headers
    later = merged.records[1]
    assert later.source_index == 1
    assert later.metric("Gaz").start_value == ""  # placeholder
    assert later.metric("Prąd").start_value == "7"


def test_merge_with_itself_keeps_headers_and_all_records():
    wb = _wb(["Woda"], block("A/1", "2023-01-01", "2023-06-30", [(1, 2, 1, 1, 1)]))
    merged = merge_workbooks([wb, wb])
    assert merged.headers == wb.headers
    assert merged.record_count == 2
    assert {r.source_index for r in merged.records} == {0, 1}


def test_records_sorted_by_apartment_then_normalized_dates():
    wb = _wb(
        ["Woda"],
        block("B/1", "2023-01-01", "2023-01-31", [(1, 2, 1, 1, 1)]),
        block("A/1", "01.02.2023", "28.02.2023", [(1, 2, 1, 1, 1)]),
        block("A/1", "2023-01-15", "2023-01-31", [(1, 2, 1, 1, 1)]),
    )
    merged = merge_workbooks([wb])
    assert [(r.apartment, r.date_from) for r in merged.records] == [
        ("A/1", "2023-01-15"),
        ("A/1", "01.02.2023"),
        ("B/1", "2023-01-01"),
    ]


def test_duplicate_block_within_one_file_keeps_the_last():
    wb = _wb(
        ["Woda"],
        block("A/1", "2023-01-01", "2023-01-31", [(1, 2, 1, 1, 1)]),
        block("A/1", "2023-01-01", "2023-01-31", [(1, 3, 2, 1, 2)]),
    )
    merged = merge_workbooks([wb])
    assert merged.record_count == 1
    assert merged.records[0].metric("Woda").end_value == "3"
