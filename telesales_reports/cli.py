"""CLI interface for telesales report generation."""

import asyncio
import sys
from datetime import date, datetime
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from .constants import (
    ALL_FILTER_VALUE,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PRESETS_FILE,
    DEFAULT_STATE_FILE,
    DEFAULT_STORE_BASE_URL,
    DEFAULT_TABLE_PAGE_SIZE,
    EXIT_CODE_ERROR,
    FIRST_PAGE,
    CliHelp,
    LogMessage,
    SortDirection,
)
from .definitions import REPORTS, ReportDefinition, get_report
from .exceptions import (
    EmptyExportError,
    InvalidFilterError,
    PresetImportError,
    TelesalesReportError,
)
from .exporters.tabular import row_cells
from .fetcher import EventFetcher, load_records_from_file
from .milestones import StreakTracker, get_next_milestone
from .models import DateRange, ReportFilter
from .permissions import capabilities_for, scope_filter
from .pipeline import (
    EXPORT_FORMATS,
    ReportInputs,
    ReportResult,
    ReportSettings,
    export_report,
    fetch_report_inputs,
    run_report,
)
from .presets import BUILTIN_PRESETS, FilterPresetStore
from .storage import JsonFileKeyValueStore

app = typer.Typer(help=CliHelp.APP)
presets_app = typer.Typer(help=CliHelp.PRESETS)
app.add_typer(presets_app, name="presets")

console = Console()

DATE_FORMATS = ["%Y-%m-%d"]

# Options shared by the report commands
INPUT_OPTION = typer.Option(None, "--input", "-i", help=CliHelp.INPUT)
DATE_OPTION = typer.Option(None, "--date", "-d", formats=DATE_FORMATS, help=CliHelp.DATE)
START_OPTION = typer.Option(None, "--start", formats=DATE_FORMATS, help=CliHelp.START)
END_OPTION = typer.Option(None, "--end", formats=DATE_FORMATS, help=CliHelp.END)
PERIOD_OPTION = typer.Option(None, "--period", "-p", help=CliHelp.PERIOD)
PRESET_OPTION = typer.Option(None, "--preset", help=CliHelp.PRESET)
BANK_OPTION = typer.Option(ALL_FILTER_VALUE, "--bank", help=CliHelp.BANK)
AGENT_OPTION = typer.Option(ALL_FILTER_VALUE, "--agent", help=CliHelp.AGENT)
TEAM_OPTION = typer.Option(ALL_FILTER_VALUE, "--team", help=CliHelp.TEAM)
STATUS_OPTION = typer.Option(ALL_FILTER_VALUE, "--status", help=CliHelp.STATUS)
SEVERITY_OPTION = typer.Option(ALL_FILTER_VALUE, "--severity", help=CliHelp.SEVERITY)
SORT_OPTION = typer.Option(None, "--sort", "-s", help=CliHelp.SORT)
DESCENDING_OPTION = typer.Option(False, "--desc", help=CliHelp.DESCENDING)
ROLE_OPTION = typer.Option(None, "--role", envvar="TELESALES_ROLE", help=CliHelp.ROLE)
USER_ID_OPTION = typer.Option(None, "--user-id", envvar="TELESALES_USER_ID", help=CliHelp.USER_ID)
USER_TEAM_OPTION = typer.Option(
    None, "--user-team", envvar="TELESALES_USER_TEAM", help=CliHelp.USER_TEAM
)
API_URL_OPTION = typer.Option(
    DEFAULT_STORE_BASE_URL, "--api-url", envvar="TELESALES_API_URL", help=CliHelp.API_URL
)
API_KEY_OPTION = typer.Option(
    None, "--api-key", envvar="TELESALES_API_KEY", help=CliHelp.API_KEY
)
PRESETS_FILE_OPTION = typer.Option(
    Path(DEFAULT_PRESETS_FILE),
    "--presets-file",
    envvar="TELESALES_PRESETS_FILE",
    help=CliHelp.PRESETS_FILE,
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help=CliHelp.VERBOSE)) -> None:
    """Telesales report aggregation and export tool."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _open_presets(presets_file: Path) -> FilterPresetStore:
    return FilterPresetStore(store=JsonFileKeyValueStore(presets_file))


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


def build_filter(
    *,
    day: date | None = None,
    start: date | None = None,
    end: date | None = None,
    period: str | None = None,
    bank: str = ALL_FILTER_VALUE,
    agent: str = ALL_FILTER_VALUE,
    team: str = ALL_FILTER_VALUE,
    status: str = ALL_FILTER_VALUE,
    severity: str = ALL_FILTER_VALUE,
    today: date | None = None,
) -> ReportFilter:
    """Build a ReportFilter from CLI arguments.

    A single ``day`` wins over ``start``/``end``, which win over ``period``.
    A range given with only one bound covers that single day.
    """
    if day is not None:
        date_range = DateRange.single(day)
    elif start is not None or end is not None:
        date_range = DateRange.between(start or end, end or start)
    elif period is not None:
        date_range = DateRange.for_period(period, today=today or date.today())
    else:
        date_range = None

    return ReportFilter(
        date_range=date_range,
        bank=bank,
        agent=agent,
        team=team,
        status=status,
        severity=severity,
    )


def _apply_preset(report_filter: ReportFilter, preset_id: str, presets_file: Path) -> ReportFilter:
    store = _open_presets(presets_file)
    preset = store.track_preset_usage(preset_id)
    if preset is None:
        raise InvalidFilterError(f"Unknown preset '{preset_id}'")
    resolved = preset.to_filter(today=date.today())
    logger.info(f"Applying preset '{preset.name}': {resolved.describe()}")
    return report_filter.with_changes(date_range=resolved.date_range, status=resolved.status)


def _authorize(
    report_filter: ReportFilter,
    *,
    report: ReportDefinition,
    role: str | None,
    user_id: str | None,
    user_team: str | None,
    exporting: bool,
) -> ReportFilter:
    """Check the caller's role and narrow the filter to its data scope."""
    if role is None:
        return report_filter
    capabilities = capabilities_for(role)
    if not capabilities.can_view(report.name):
        raise InvalidFilterError(f"Role '{role}' cannot view {report.title}")
    if exporting and not capabilities.can_export:
        raise InvalidFilterError(f"Role '{role}' cannot export reports")
    return scope_filter(report_filter, role=role, user_id=user_id, team_id=user_team)


async def _load_inputs(
    *,
    report: ReportDefinition,
    report_filter: ReportFilter,
    input_file: Path | None,
    api_url: str,
    api_key: str | None,
) -> ReportInputs:
    if input_file is not None:
        return ReportInputs(records=load_records_from_file(input_file))
    fetcher = EventFetcher(base_url=api_url, api_key=api_key)
    return await fetch_report_inputs(
        fetcher=fetcher,
        report=report,
        report_filter=report_filter,
        settings=ReportSettings(),
    )


def _build_result(
    *,
    report_name: str,
    input_file: Path | None,
    day: datetime | None,
    start: datetime | None,
    end: datetime | None,
    period: str | None,
    preset: str | None,
    presets_file: Path,
    bank: str,
    agent: str,
    team: str,
    status: str,
    severity: str,
    sort: str | None,
    descending: bool,
    role: str | None,
    user_id: str | None,
    user_team: str | None,
    api_url: str,
    api_key: str | None,
    exporting: bool,
) -> ReportResult:
    report = get_report(report_name)
    report_filter = build_filter(
        day=_as_date(day),
        start=_as_date(start),
        end=_as_date(end),
        period=period,
        bank=bank,
        agent=agent,
        team=team,
        status=status,
        severity=severity,
    )
    if preset is not None:
        report_filter = _apply_preset(report_filter, preset, presets_file)
    report_filter = _authorize(
        report_filter,
        report=report,
        role=role,
        user_id=user_id,
        user_team=user_team,
        exporting=exporting,
    )
    logger.info(f"Building {report.title} for {report_filter.describe()}")

    inputs = asyncio.run(
        _load_inputs(
            report=report,
            report_filter=report_filter,
            input_file=input_file,
            api_url=api_url,
            api_key=api_key,
        )
    )
    sort_keys = None
    if sort is not None:
        sort_keys = [(sort, SortDirection.DESC if descending else SortDirection.ASC)]
    return run_report(report=report, inputs=inputs, report_filter=report_filter, sort=sort_keys)


@app.command()
def reports() -> None:
    """List the available reports."""
    table = Table(title="Reports")
    table.add_column("Name", style="bold")
    table.add_column("Aliases")
    table.add_column("Description")
    for report in REPORTS.values():
        table.add_row(report.name, ", ".join(report.aliases), report.description)
    console.print(table)


@app.command()
def export(
    report_name: str = typer.Argument(..., help=CliHelp.REPORT),
    input_file: Path = INPUT_OPTION,
    day: datetime = DATE_OPTION,
    start: datetime = START_OPTION,
    end: datetime = END_OPTION,
    period: str = PERIOD_OPTION,
    preset: str = PRESET_OPTION,
    bank: str = BANK_OPTION,
    agent: str = AGENT_OPTION,
    team: str = TEAM_OPTION,
    status: str = STATUS_OPTION,
    severity: str = SEVERITY_OPTION,
    sort: str = SORT_OPTION,
    descending: bool = DESCENDING_OPTION,
    formats: list[str] = typer.Option(["csv"], "--format", "-f", help=CliHelp.FORMAT),
    output_dir: Path = typer.Option(
        Path(DEFAULT_OUTPUT_DIR), "--output-dir", "-o", help=CliHelp.OUTPUT_DIR
    ),
    role: str = ROLE_OPTION,
    user_id: str = USER_ID_OPTION,
    user_team: str = USER_TEAM_OPTION,
    api_url: str = API_URL_OPTION,
    api_key: str = API_KEY_OPTION,
    presets_file: Path = PRESETS_FILE_OPTION,
) -> None:
    """Aggregate a report and export it as CSV and/or PDF.

    Records come from the data store, or from a local file with --input.
    Nothing is written when the report has no rows.
    """
    try:
        unknown = [fmt for fmt in formats if fmt not in EXPORT_FORMATS]
        if unknown:
            raise InvalidFilterError(f"Unsupported format(s): {', '.join(unknown)}")

        result = _build_result(
            report_name=report_name,
            input_file=input_file,
            day=day,
            start=start,
            end=end,
            period=period,
            preset=preset,
            presets_file=presets_file,
            bank=bank,
            agent=agent,
            team=team,
            status=status,
            severity=severity,
            sort=sort,
            descending=descending,
            role=role,
            user_id=user_id,
            user_team=user_team,
            api_url=api_url,
            api_key=api_key,
            exporting=True,
        )

        generated_at = datetime.now()
        for export_format in dict.fromkeys(formats):
            try:
                document = export_report(
                    result, export_format=export_format, generated_at=generated_at
                )
            except EmptyExportError:
                return
            path = document.save(output_dir)
            logger.success(LogMessage.EXPORTED.format(len(result.rows), path))
    except TelesalesReportError as e:
        logger.error(LogMessage.ERROR_OCCURRED.format(e))
        raise typer.Exit(code=EXIT_CODE_ERROR)
    except Exception as e:
        logger.exception(LogMessage.ERROR_OCCURRED.format(e))
        raise typer.Exit(code=EXIT_CODE_ERROR)


@app.command()
def preview(
    report_name: str = typer.Argument(..., help=CliHelp.REPORT),
    input_file: Path = INPUT_OPTION,
    day: datetime = DATE_OPTION,
    start: datetime = START_OPTION,
    end: datetime = END_OPTION,
    period: str = PERIOD_OPTION,
    preset: str = PRESET_OPTION,
    bank: str = BANK_OPTION,
    agent: str = AGENT_OPTION,
    team: str = TEAM_OPTION,
    status: str = STATUS_OPTION,
    severity: str = SEVERITY_OPTION,
    sort: str = SORT_OPTION,
    descending: bool = DESCENDING_OPTION,
    page: int = typer.Option(FIRST_PAGE, "--page", help=CliHelp.PAGE),
    page_size: int = typer.Option(DEFAULT_TABLE_PAGE_SIZE, "--page-size", help=CliHelp.PAGE_SIZE),
    role: str = ROLE_OPTION,
    user_id: str = USER_ID_OPTION,
    user_team: str = USER_TEAM_OPTION,
    api_url: str = API_URL_OPTION,
    api_key: str = API_KEY_OPTION,
    presets_file: Path = PRESETS_FILE_OPTION,
) -> None:
    """Show one page of a report in the terminal."""
    try:
        result = _build_result(
            report_name=report_name,
            input_file=input_file,
            day=day,
            start=start,
            end=end,
            period=period,
            preset=preset,
            presets_file=presets_file,
            bank=bank,
            agent=agent,
            team=team,
            status=status,
            severity=severity,
            sort=sort,
            descending=descending,
            role=role,
            user_id=user_id,
            user_team=user_team,
            api_url=api_url,
            api_key=api_key,
            exporting=False,
        )
        view = result.table_view(page_size=page_size)
        view.go_to_page(page)

        report = result.report
        table = Table(
            title=f"{report.title} ({result.report_filter.describe(value_labels=result.value_labels)})",
            caption=f"Page {view.page_number} of {view.total_pages}",
        )
        for column in report.columns:
            table.add_column(column.label)
        for row in view.visible_rows:
            table.add_row(*row_cells(row, report, rate_suffix="%"))
        console.print(table)

        totals = ", ".join(
            f"{name}={value}" for name, value in result.totals.counters.items()
        )
        console.print(f"[bold]{report.totals_label}[/bold]: {totals}")
    except TelesalesReportError as e:
        logger.error(LogMessage.ERROR_OCCURRED.format(e))
        raise typer.Exit(code=EXIT_CODE_ERROR)
    except Exception as e:
        logger.exception(LogMessage.ERROR_OCCURRED.format(e))
        raise typer.Exit(code=EXIT_CODE_ERROR)


@app.command(help=CliHelp.STREAK)
def streak(
    days: int = typer.Argument(..., min=0, help=CliHelp.STREAK_DAYS),
    logged_in_today: bool = typer.Option(False, "--logged-in-today", help=CliHelp.LOGGED_IN_TODAY),
    dismiss: bool = typer.Option(False, "--dismiss", help=CliHelp.DISMISS_REMINDER),
    state_file: Path = typer.Option(
        Path(DEFAULT_STATE_FILE), "--state-file", envvar="TELESALES_STATE_FILE", help=CliHelp.STATE_FILE
    ),
) -> None:
    tracker = StreakTracker(JsonFileKeyValueStore(state_file))
    now = datetime.now()

    for milestone in tracker.pending_celebrations(days):
        console.print(
            f"[bold]{milestone.title}[/bold]: {milestone.days}-day streak ({milestone.rarity})"
        )
        tracker.mark_celebrated(milestone)

    upcoming = get_next_milestone(days)
    if upcoming is not None:
        console.print(f"Next milestone: {upcoming.title} in {upcoming.days - days} days")

    if dismiss:
        tracker.dismiss_reminder(now.date())
        logger.info("Streak reminder dismissed for today")
        return

    reminder = tracker.reminder(streak=days, logged_in_today=logged_in_today, now=now)
    if reminder is not None:
        console.print(
            f"{reminder.urgency.upper()}: log in within {reminder.hours_remaining:.1f} hours "
            f"to keep your {reminder.streak}-day streak"
        )


@presets_app.command("list")
def list_presets(presets_file: Path = PRESETS_FILE_OPTION) -> None:
    """List built-in and saved presets."""
    store = _open_presets(presets_file)
    table = Table(title="Filter presets")
    for label in ("Id", "Name", "Period", "Status", "Category", "Uses", "Last used"):
        table.add_column(label)
    for builtin in BUILTIN_PRESETS:
        table.add_row("-", builtin.name, builtin.time_period, builtin.lead_status, "built-in", "", "")
    for preset in store.presets:
        table.add_row(
            preset.id,
            preset.name,
            preset.time_period,
            preset.lead_status,
            preset.category or "",
            str(preset.use_count),
            preset.last_used_at.isoformat(timespec="minutes") if preset.last_used_at else "",
        )
    console.print(table)


def _presets_command(action):
    """Run a presets action with the CLI's error handling."""
    try:
        action()
    except TelesalesReportError as e:
        logger.error(LogMessage.ERROR_OCCURRED.format(e))
        raise typer.Exit(code=EXIT_CODE_ERROR)


@presets_app.command("save")
def save_preset(
    name: str = typer.Argument(...),
    period: str = typer.Option(..., "--period", "-p", help=CliHelp.PERIOD),
    status: str = STATUS_OPTION,
    category: str = typer.Option(None, "--category", help=CliHelp.CATEGORY),
    presets_file: Path = PRESETS_FILE_OPTION,
) -> None:
    """Save a new preset."""

    def action() -> None:
        # Validate the period name
        DateRange.for_period(period, today=date.today())
        preset = _open_presets(presets_file).save_preset(
            name=name, time_period=period, lead_status=status, category=category
        )
        console.print(preset.id)

    _presets_command(action)


@presets_app.command("use")
def use_preset(preset_id: str, presets_file: Path = PRESETS_FILE_OPTION) -> None:
    """Record a use of a preset and show the filter it resolves to."""

    def action() -> None:
        preset = _open_presets(presets_file).track_preset_usage(preset_id)
        if preset is None:
            raise InvalidFilterError(f"Unknown preset '{preset_id}'")
        console.print(preset.to_filter(today=date.today()).describe())

    _presets_command(action)


@presets_app.command("duplicate")
def duplicate_preset(
    preset_id: str, new_name: str, presets_file: Path = PRESETS_FILE_OPTION
) -> None:
    """Copy a preset under a new name."""

    def action() -> None:
        copy = _open_presets(presets_file).duplicate_preset(preset_id, new_name)
        if copy is None:
            raise InvalidFilterError(f"Unknown preset '{preset_id}'")
        console.print(copy.id)

    _presets_command(action)


@presets_app.command("delete")
def delete_preset(preset_id: str, presets_file: Path = PRESETS_FILE_OPTION) -> None:
    """Delete a preset."""

    def action() -> None:
        if not _open_presets(presets_file).delete_preset(preset_id):
            raise InvalidFilterError(f"Unknown preset '{preset_id}'")
        logger.success(f"Deleted preset {preset_id}")

    _presets_command(action)


@presets_app.command("export")
def export_presets(
    output: Path = typer.Option(None, "--output", "-o", help=CliHelp.PRESETS_OUTPUT),
    presets_file: Path = PRESETS_FILE_OPTION,
) -> None:
    """Export saved presets as JSON (to stdout unless --output is given)."""
    store = _open_presets(presets_file)
    text = store.export_presets()
    if output is None:
        console.print_json(text)
        return
    output.write_text(text)
    logger.success(LogMessage.SAVED_PRESETS.format(len(store.presets), output))


@presets_app.command("import")
def import_presets(source: Path, presets_file: Path = PRESETS_FILE_OPTION) -> None:
    """Import presets from an exported file, skipping ids that already exist."""

    def action() -> None:
        try:
            text = source.read_text()
        except OSError as e:
            raise PresetImportError(f"Could not read {source}: {e}") from e
        _open_presets(presets_file).import_presets(text)

    _presets_command(action)


@presets_app.command("share-link")
def share_link(
    base_url: str,
    preset_ids: list[str] = typer.Option(None, "--id", help=CliHelp.PRESET_IDS),
    presets_file: Path = PRESETS_FILE_OPTION,
) -> None:
    """Print a link that carries the selected presets (all by default)."""
    store = _open_presets(presets_file)
    console.print(store.generate_share_link(base_url, preset_ids or None), soft_wrap=True)


@presets_app.command("accept-link")
def accept_link(url: str, presets_file: Path = PRESETS_FILE_OPTION) -> None:
    """Import the presets carried by a share link."""

    def action() -> None:
        store = _open_presets(presets_file)
        pending = store.load_shared_link(url)
        if not pending:
            logger.warning("The link does not carry any presets")
            return
        store.accept_pending_shared_presets()

    _presets_command(action)


@presets_app.command("category-add")
def add_category(name: str, presets_file: Path = PRESETS_FILE_OPTION) -> None:
    """Create a preset category."""
    console.print(_open_presets(presets_file).add_category(name).id)


@presets_app.command("category-delete")
def delete_category(category_id: str, presets_file: Path = PRESETS_FILE_OPTION) -> None:
    """Delete a user category; its presets move to no category."""

    def action() -> None:
        reassigned = _open_presets(presets_file).delete_category(category_id)
        logger.success(f"Deleted category {category_id}, {reassigned} presets reassigned")

    _presets_command(action)
