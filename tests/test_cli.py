"""Tests for the command line interface"""

import json
from datetime import date

import pytest
from typer.testing import CliRunner

from telesales_reports.cli import app, build_filter
from telesales_reports.exceptions import InvalidFilterError
from telesales_reports.presets import FilterPresetStore
from telesales_reports.storage import JsonFileKeyValueStore

runner = CliRunner()


@pytest.fixture
def submissions_file(tmp_path, bank_records):
    path = tmp_path / "submissions.json"
    path.write_text(json.dumps(bank_records))
    return path


def test_reports_lists_every_report():
    """Test the reports command names the available reports"""
    result = runner.invoke(app, ["reports"])

    assert result.exit_code == 0
    assert "Bank_Submission_Report" in result.output


def test_export_writes_csv_and_pdf(tmp_path, submissions_file):
    """Test exporting a local file writes one document per format"""
    output_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "export",
            "bank-submissions",
            "--input",
            str(submissions_file),
            "--format",
            "csv",
            "--format",
            "pdf",
            "--output-dir",
            str(output_dir),
        ],
    )

    assert result.exit_code == 0
    assert len(list(output_dir.glob("Bank_Submission_Report_*.csv"))) == 1
    assert len(list(output_dir.glob("Bank_Submission_Report_*.pdf"))) == 1


def test_export_of_empty_report_writes_nothing(tmp_path, submissions_file):
    """Test a filter matching no rows exits cleanly without files"""
    output_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "export",
            "bank-submissions",
            "--input",
            str(submissions_file),
            "--date",
            "2023-12-31",
            "--output-dir",
            str(output_dir),
        ],
    )

    assert result.exit_code == 0
    assert not output_dir.exists()


def test_unknown_report_fails(submissions_file):
    """Test an unknown report name exits with an error"""
    result = runner.invoke(app, ["export", "nope", "--input", str(submissions_file)])

    assert result.exit_code == 1


def test_role_without_access_is_refused(submissions_file, tmp_path):
    """Test an agent cannot export the bank report"""
    result = runner.invoke(
        app,
        [
            "export",
            "bank-submissions",
            "--input",
            str(submissions_file),
            "--role",
            "agent",
            "--output-dir",
            str(tmp_path / "out"),
        ],
    )

    assert result.exit_code == 1
    assert not (tmp_path / "out").exists()


def test_preview_shows_rows(submissions_file):
    """Test the preview command renders the report table"""
    result = runner.invoke(app, ["preview", "bank-submissions", "--input", str(submissions_file)])

    assert result.exit_code == 0
    assert "NBF" in result.output


def test_presets_save_and_duplicate(tmp_path):
    """Test saving and duplicating presets through the CLI"""
    presets_file = tmp_path / "presets.json"

    saved = runner.invoke(
        app,
        ["presets", "save", "Weekly", "--period", "this_week", "--presets-file", str(presets_file)],
    )
    assert saved.exit_code == 0
    [preset] = FilterPresetStore(store=JsonFileKeyValueStore(presets_file)).presets
    preset_id = preset.id
    assert preset_id in saved.output

    copied = runner.invoke(
        app,
        ["presets", "duplicate", preset_id, "Weekly copy", "--presets-file", str(presets_file)],
    )
    assert copied.exit_code == 0

    listed = runner.invoke(app, ["presets", "list", "--presets-file", str(presets_file)])
    assert listed.exit_code == 0

    store = FilterPresetStore(store=JsonFileKeyValueStore(presets_file))
    assert [preset.name for preset in store.presets] == ["Weekly", "Weekly copy"]


def test_presets_save_rejects_unknown_period(tmp_path):
    """Test an unknown period name is refused"""
    result = runner.invoke(
        app,
        ["presets", "save", "Bad", "--period", "fortnight", "--presets-file", str(tmp_path / "p.json")],
    )

    assert result.exit_code == 1


def test_build_filter_precedence():
    """Test a single day wins over a range and a half-open range covers one day"""
    day = build_filter(day=date(2024, 1, 5), start=date(2024, 1, 1), period="today")
    half_open = build_filter(start=date(2024, 1, 3))

    assert (day.date_range.start, day.date_range.end) == (date(2024, 1, 5), date(2024, 1, 5))
    assert (half_open.date_range.start, half_open.date_range.end) == (date(2024, 1, 3), date(2024, 1, 3))
    with pytest.raises(InvalidFilterError):
        build_filter(period="fortnight", today=date(2024, 1, 5))


def test_export_hourly_report_by_alias(tmp_path, call_records):
    """Test the hourly alias exports the agent hourly report"""
    calls_file = tmp_path / "calls.json"
    calls_file.write_text(json.dumps(call_records))
    output_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["export", "hourly", "--input", str(calls_file), "--format", "csv", "--output-dir", str(output_dir)],
    )

    assert result.exit_code == 0
    [document] = output_dir.glob("Agent_Hourly_Report_*.csv")
    assert document.read_text().splitlines()[-1].startswith("GRAND TOTAL,")


def test_supervisor_without_team_is_refused(submissions_file, tmp_path):
    """Test a supervisor must name their team before exporting"""
    result = runner.invoke(
        app,
        [
            "export",
            "bank-submissions",
            "--input",
            str(submissions_file),
            "--role",
            "supervisor",
            "--user-id",
            "s1",
            "--output-dir",
            str(tmp_path / "out"),
        ],
        env={"TELESALES_USER_TEAM": ""},
    )

    assert result.exit_code == 1
    assert not (tmp_path / "out").exists()


def test_import_of_missing_file_fails_cleanly(tmp_path):
    """Test importing a file that does not exist exits with an error"""
    presets_file = tmp_path / "presets.json"

    result = runner.invoke(
        app,
        ["presets", "import", str(tmp_path / "missing.json"), "--presets-file", str(presets_file)],
    )

    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert not presets_file.exists()


def test_streak_celebrates_each_milestone_once(tmp_path):
    """Test a milestone is announced on the first run only"""
    state_file = tmp_path / "state.json"

    first = runner.invoke(app, ["streak", "7", "--state-file", str(state_file)])
    second = runner.invoke(app, ["streak", "7", "--state-file", str(state_file)])

    assert first.exit_code == 0
    assert "Week Warrior" in first.output
    assert second.exit_code == 0
    assert "Week Warrior" not in second.output
    assert "Monthly Master" in second.output
