from __future__ import annotations

from billing_recon.models.requests import SummaryRequest
from billing_recon.services.summary import (
    build_summary,
    combined_validity,
    format_number,
    render_summary_line,
)
from conftest import detailed


def _rows():
    return [
        detailed("A/1", "2023-01-01", "2023-06-30", "Woda", (100, 110, 10, 5, 50)),
        detailed("A/1", "2023-07-01", "2023-12-31", "Woda", (110, 125, 15, 5, 80)),
        detailed("A/1", "2023-01-01", "2023-06-30", "Gaz", (1, 2, 1, "?", 3)),
    ]


def test_combined_validity():
    valid, invalid, unknown = _rows()
    assert combined_validity(valid) is True
    assert combined_validity(invalid) is False
    assert combined_validity(unknown) is None


def test_build_summary_stats_and_totals():
    request = SummaryRequest(session_id="abc", metrics=("Woda", "Gaz"))
    result = build_summary("abc", _rows(), request, ("Woda", "Gaz"))

    assert result.session_id == "abc"
    assert result.stats.rows_count == 3
    assert result.stats.valid_rows == 1
    assert result.stats.invalid_rows == 1
    woda, gaz = result.totals_by_metric
    assert woda.metric == "Woda"
    assert woda.row_count == 2
    assert woda.total_consumption == 25.0
    assert woda.reported_total == 130.0
    assert woda.computed_total == 125.0
    assert woda.difference == 5.0
    assert gaz.computed_total == 0.0
    assert result.rows[1].difference == 5.0
    assert result.selected.metrics == ("Woda", "Gaz")
    assert result.selected.apartment is None


def test_build_summary_without_validation_hides_derived_fields():
    request = SummaryRequest(session_id="abc", include_validation=False)
    result = build_summary("abc", _rows(), request, ("Woda",))
    assert result.stats.valid_rows == 0
    assert result.stats.invalid_rows == 0
    assert all(r.computed_total is None and r.is_valid is None for r in result.rows)
    assert result.totals_by_metric[0].computed_total is None
    assert result.totals_by_metric[0].difference is None
    assert result.totals_by_metric[0].reported_total == 130.0


def test_metric_without_rows_has_zero_totals():
    result = build_summary("abc", [], SummaryRequest(session_id="abc"), ("Prąd",))
    assert result.totals_by_metric[0].row_count == 0
    assert result.totals_by_metric[0].total_consumption == 0.0


def test_format_number():
    assert format_number(0) == "0"
    assert format_number(3.0) == "3"
    assert format_number(1.25) == "1.25"
    assert format_number(0.0012) == "0.0012"


def test_render_summary_line():
    line = render_summary_line(3, 2, 1, 10, 4, 0.75)
    assert line == "SUMMARY files=2/3 failed=1 records=10 invalid_rows=4 elapsed_sec=0.75"


def test_selected_filters_echo_normalized_dates():
    request = SummaryRequest(session_id="abc", apartment=" A/1 ", date_from="01.01.2023", date_to="koniec")
    selected = build_summary("abc", _rows(), request, ("Woda",)).selected
    assert selected.apartment == "A/1"
    assert selected.date_from == "2023-01-01"
    assert selected.date_to is None
