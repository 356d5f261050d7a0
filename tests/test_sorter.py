"""Unit tests for row ordering and derived metrics"""

from datetime import date

import pytest

from telesales_reports.constants import SortDirection
from telesales_reports.definitions import BANK_SUBMISSION_REPORT
from telesales_reports.exceptions import InvalidFilterError
from telesales_reports.metrics import approval_rate, conversion_rate, rate
from telesales_reports.models import SummaryRow
from telesales_reports.sorter import sort_by_keys, sort_rows


def _row(day, bank, submitted=1, approved=0):
    return SummaryRow(
        key=(day, bank),
        dimensions={"date": day, "bank_name": bank},
        counters={"submitted": submitted, "approved": approved},
    )


def test_dates_sort_chronologically_not_by_display_text():
    """Test 15/01/2024 comes before 02/02/2024"""
    rows = [_row(date(2024, 2, 2), "RAK"), _row(date(2024, 1, 15), "RAK")]

    ordered = sort_rows(rows, field="date")

    assert [row.dimensions["date"] for row in ordered] == [date(2024, 1, 15), date(2024, 2, 2)]


def test_sort_is_stable_in_both_directions():
    """Test rows with equal values keep their incoming order"""
    rows = [
        _row(date(2024, 1, 1), "RAK", submitted=5),
        _row(date(2024, 1, 2), "NBF", submitted=3),
        _row(date(2024, 1, 3), "UBL", submitted=5),
    ]

    ascending = sort_rows(rows, field="submitted")
    descending = sort_rows(rows, field="submitted", direction=SortDirection.DESC)

    assert [row.dimensions["bank_name"] for row in ascending] == ["NBF", "RAK", "UBL"]
    assert [row.dimensions["bank_name"] for row in descending] == ["RAK", "UBL", "NBF"]


def test_sort_by_metric_recomputes_rate():
    """Test sorting on approval rate uses counters, not a stored value"""
    rows = [
        _row(date(2024, 1, 1), "RAK", submitted=4, approved=1),
        _row(date(2024, 1, 1), "NBF", submitted=2, approved=2),
        _row(date(2024, 1, 1), "UBL", submitted=0, approved=0),
    ]

    ordered = sort_rows(
        rows,
        field="approval_rate",
        direction=SortDirection.DESC,
        metrics=BANK_SUBMISSION_REPORT.metrics,
    )

    assert [row.dimensions["bank_name"] for row in ordered] == ["NBF", "RAK", "UBL"]


def test_strings_sort_case_insensitively():
    """Test bank names are ordered ignoring case"""
    rows = [_row(date(2024, 1, 1), "ubl"), _row(date(2024, 1, 1), "Mashreq"), _row(date(2024, 1, 1), "NBF")]

    ordered = sort_rows(rows, field="bank_name")

    assert [row.dimensions["bank_name"] for row in ordered] == ["Mashreq", "NBF", "ubl"]


def test_missing_values_sort_last():
    """Test rows without a value stay at the end in both directions"""
    rows = [_row(date(2024, 1, 1), None), _row(date(2024, 1, 1), "RAK"), _row(date(2024, 1, 1), "NBF")]

    for direction in SortDirection:
        ordered = sort_rows(rows, field="bank_name", direction=direction)
        assert ordered[-1].dimensions["bank_name"] is None


def test_unknown_sort_field_is_rejected():
    """Test sorting by a field the rows do not have raises"""
    with pytest.raises(InvalidFilterError):
        sort_rows([_row(date(2024, 1, 1), "RAK")], field="nope")


def test_sort_by_keys_orders_by_date_then_bank():
    """Test the default bank report order"""
    rows = [
        _row(date(2024, 1, 2), "NBF"),
        _row(date(2024, 1, 1), "UBL"),
        _row(date(2024, 1, 1), "RAK"),
    ]

    ordered = sort_by_keys(rows, BANK_SUBMISSION_REPORT.default_sort)

    assert [(row.dimensions["date"].day, row.dimensions["bank_name"]) for row in ordered] == [
        (1, "RAK"),
        (1, "UBL"),
        (2, "NBF"),
    ]


def test_zero_denominator_rate_is_zero():
    """Test approval rate with nothing submitted is 0, not NaN"""
    assert approval_rate(approved=0, submitted=0) == 0
    assert conversion_rate(interested=0, total_calls=0) == 0
    assert rate(1, 4) == 25.0
