"""Unit tests for event aggregation"""

from datetime import date

from telesales_reports.aggregator import aggregate, field_dimension, subject_dimension
from telesales_reports.definitions import (
    BANK_SUBMISSION_REPORT,
    DAILY_AGENT_CALL_REPORT,
    TEAM_DAILY_CALL_STATUS_REPORT,
)
from telesales_reports.models import RawEventRow


def _rows_by(result, *names):
    return {tuple(row.dimensions[name] for name in names): row for row in result.summary_rows}


def test_bank_submissions_grouped_by_day_and_bank(bank_records):
    """Test two submissions on one day/bank and one on another form two rows"""
    events = BANK_SUBMISSION_REPORT.to_events(bank_records)
    result = BANK_SUBMISSION_REPORT.aggregate(events)

    rows = _rows_by(result, "date", "bank_name")
    assert len(rows) == 2

    rak = rows[(date(2024, 1, 1), "RAK")].counters
    assert (rak["submitted"], rak["approved"], rak["rejected"], rak["pending"]) == (2, 1, 1, 0)

    nbf = rows[(date(2024, 1, 2), "NBF")].counters
    assert nbf["submitted"] == 1
    assert nbf["pending"] == 1

    totals = result.totals.counters
    assert (totals["submitted"], totals["approved"], totals["rejected"], totals["pending"]) == (3, 1, 1, 1)


def test_totals_conserve_every_event(call_records):
    """Test totals equal the coordinate-wise sum of rows and the row counter sees every event"""
    events = DAILY_AGENT_CALL_REPORT.to_events(call_records)
    result = DAILY_AGENT_CALL_REPORT.aggregate(events)

    assert result.totals.counters["total_calls"] == len(call_records)
    for name in result.counter_names:
        assert result.totals.counters[name] == sum(row.counters[name] for row in result.summary_rows)


def test_family_counters_partition_the_row_counter(call_records):
    """Test each event increments exactly one feedback counter"""
    result = DAILY_AGENT_CALL_REPORT.aggregate(DAILY_AGENT_CALL_REPORT.to_events(call_records))
    family = DAILY_AGENT_CALL_REPORT.counter_families[0]

    for row in result.summary_rows:
        assert sum(row.counters[name] for name in family.counter_names) == row.counters["total_calls"]


def test_aggregation_is_idempotent(bank_records):
    """Test aggregating the same events twice gives identical rows"""
    events = BANK_SUBMISSION_REPORT.to_events(bank_records)
    first = BANK_SUBMISSION_REPORT.aggregate(events)
    second = BANK_SUBMISSION_REPORT.aggregate(events)

    assert {key: dict(row.counters) for key, row in first.rows.items()} == {
        key: dict(row.counters) for key, row in second.rows.items()
    }
    assert dict(first.totals.counters) == dict(second.totals.counters)


def test_empty_input_gives_zero_totals():
    """Test no events produce no rows and an all-zero totals row"""
    result = BANK_SUBMISSION_REPORT.aggregate([])

    assert result.is_empty
    assert result.event_count == 0
    assert set(result.totals.counters) == {"submitted", "approved", "rejected", "pending"}
    assert all(value == 0 for value in result.totals.counters.values())


def test_bank_names_are_matched_case_insensitively():
    """Test differently cased and padded bank names land in one group"""
    records = [
        {"submission_date": "2024-01-01", "bank_name": "rak", "status": "approved"},
        {"submission_date": "2024-01-01", "bank_name": " RAK ", "status": "Approved"},
        {"submission_date": "2024-01-01", "bank_name": "Rak", "status": "REJECTED"},
    ]
    result = BANK_SUBMISSION_REPORT.aggregate(BANK_SUBMISSION_REPORT.to_events(records))

    assert len(result.rows) == 1
    row = result.summary_rows[0]
    assert row.dimensions["bank_name"] == "RAK"
    assert row.counters["approved"] == 2
    assert row.counters["rejected"] == 1


def test_unknown_submission_status_counts_as_pending():
    """Test statuses outside the known set fall back to pending and are reported"""
    records = [
        {"submission_date": "2024-01-01", "bank_name": "UBL", "status": "on_hold"},
        {"submission_date": "2024-01-01", "bank_name": "UBL", "status": None},
    ]
    result = BANK_SUBMISSION_REPORT.aggregate(BANK_SUBMISSION_REPORT.to_events(records))

    row = result.summary_rows[0]
    assert row.counters["pending"] == 2
    assert result.unclassified == {"status": 2}


def test_unknown_feedback_goes_to_unclassified(call_records):
    """Test feedback values outside the known set are counted separately"""
    result = DAILY_AGENT_CALL_REPORT.aggregate(DAILY_AGENT_CALL_REPORT.to_events(call_records))

    assert result.totals.counters["unclassified"] == 1
    assert result.totals.counters["interested"] == 2
    assert result.unclassified == {"feedback_status": 1}


def test_whatsapp_flag_counts_truthy_values(call_records):
    """Test the WhatsApp counter accepts booleans and CSV-style strings"""
    result = DAILY_AGENT_CALL_REPORT.aggregate(DAILY_AGENT_CALL_REPORT.to_events(call_records))

    assert result.totals.counters["whatsapp_sent"] == 2


def test_call_timestamp_falls_back_to_created_at(call_records):
    """Test a call without call_timestamp is dated by created_at"""
    result = TEAM_DAILY_CALL_STATUS_REPORT.aggregate(
        TEAM_DAILY_CALL_STATUS_REPORT.to_events(call_records)
    )
    rows = _rows_by(result, "date")

    assert rows[(date(2024, 1, 5),)].counters["total_calls"] == 3
    assert rows[(date(2024, 1, 6),)].counters["total_calls"] == 1


def test_missing_dimension_is_grouped_not_dropped():
    """Test records without a bank are kept under an empty key component"""
    records = [
        {"submission_date": "2024-01-01", "bank_name": "", "status": "approved"},
        {"submission_date": "2024-01-01", "bank_name": "NBF", "status": "approved"},
    ]
    result = BANK_SUBMISSION_REPORT.aggregate(BANK_SUBMISSION_REPORT.to_events(records))

    assert result.totals.counters["submitted"] == 2
    assert (date(2024, 1, 1), None) in result.rows
    assert result.missing_dimensions == {"bank_name": 1}


def test_seed_rows_create_zero_count_groups():
    """Test seeded members appear with zero counters and are not counted as events"""
    seed = [
        RawEventRow(timestamp=None, subject_id="a1", payload={"agent_name": "Alice"}),
        RawEventRow(timestamp=None, subject_id="a2", payload={"agent_name": "Bilal"}),
    ]
    events = [RawEventRow(timestamp=None, subject_id="a1", payload={"agent_name": "Alice"})]

    result = aggregate(
        rows=events,
        group_by=[subject_dimension()],
        row_counter="total_calls",
        attributes=[field_dimension("agent_name")],
        seed=seed,
    )

    assert result.event_count == 1
    assert result.rows[("a1",)].counters["total_calls"] == 1
    assert result.rows[("a2",)].counters["total_calls"] == 0
    assert result.rows[("a2",)].attributes["agent_name"] == "Bilal"
