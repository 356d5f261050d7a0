"""Fetch, aggregate and export a report, and keep the latest result on screen."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence

from loguru import logger

from .aggregator import AggregationResult
from .constants import (
    DEFAULT_MAX_PAGES,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PAGE_LIMIT,
    DEFAULT_TABLE_PAGE_SIZE,
    LogMessage,
    RecordKey,
)
from .definitions import ReportDefinition
from .exceptions import TelesalesReportError
from .exporters import build_export_table, export_csv, export_pdf
from .fetcher import EventFetcher, LatestRequestGate, Record, profile_display_name
from .models import (
    ExportDocument,
    ExportLabels,
    RawEventRow,
    ReportFilter,
    SummaryRow,
    TotalsRow,
    is_all,
)
from .sorter import SortKey, sort_by_keys
from .table import TableView

EXPORT_FORMATS = ("csv", "pdf")


@dataclass(frozen=True)
class ReportSettings:
    """Tunables of one report run."""

    page_limit: int = DEFAULT_PAGE_LIMIT
    max_pages: int = DEFAULT_MAX_PAGES
    table_page_size: int = DEFAULT_TABLE_PAGE_SIZE
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)


@dataclass(frozen=True)
class ReportInputs:
    """Raw records of one report plus the team profiles used for names and seeding."""

    records: Sequence[Record]
    profiles: Sequence[Record] = ()


@dataclass(frozen=True)
class ReportResult:
    """A finished aggregation, ordered for display.

    Attributes:
        report: The report definition.
        report_filter: Filter the result was computed for.
        rows: Summary rows in display order.
        aggregation: Raw aggregation output, including totals and statistics.
        value_labels: Display names for filter values (agent id to name).
    """

    report: ReportDefinition
    report_filter: ReportFilter
    rows: list[SummaryRow]
    aggregation: AggregationResult
    value_labels: Mapping[str, str] = field(default_factory=dict)

    @property
    def totals(self) -> TotalsRow:
        return self.aggregation.totals

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def table_view(self, page_size: int = DEFAULT_TABLE_PAGE_SIZE) -> TableView:
        return TableView(rows=self.rows, metrics=self.report.metrics, page_size=page_size)


def profile_names(profiles: Iterable[Mapping[str, Any]]) -> dict[str, str]:
    return {
        str(profile["id"]): profile_display_name(profile)
        for profile in profiles
        if profile.get("id") is not None
    }


def with_agent_names(records: Iterable[Record], names: Mapping[str, str]) -> list[Record]:
    """Fill ``agent_name`` from the profile names where the record lacks one."""
    enriched = []
    for record in records:
        if not record.get(RecordKey.AGENT_NAME):
            agent_id = record.get(RecordKey.AGENT_ID)
            if agent_id is not None and str(agent_id) in names:
                record = {**record, RecordKey.AGENT_NAME: names[str(agent_id)]}
        enriched.append(record)
    return enriched


def _seed_events(
    report: ReportDefinition, report_filter: ReportFilter, profiles: Sequence[Record]
) -> list[RawEventRow]:
    if not report.seed_from_profiles:
        return []
    # Only the agent and team filters restrict which members appear
    member_filter = ReportFilter(agent=report_filter.agent, team=report_filter.team)
    seeds = [
        RawEventRow.from_record(
            record={
                report.source.subject_field: profile.get("id"),
                RecordKey.AGENT_NAME: profile_display_name(profile),
                RecordKey.TEAM_ID: profile.get(RecordKey.TEAM_ID),
            },
            source=report.source,
        )
        for profile in profiles
        if profile.get("id") is not None
    ]
    return [seed for seed in seeds if member_filter.matches(seed, field_map=report.filter_fields)]


def run_report(
    *,
    report: ReportDefinition,
    inputs: ReportInputs,
    report_filter: ReportFilter,
    sort: Sequence[SortKey] | None = None,
) -> ReportResult:
    """Aggregate raw records into an ordered report.

    Records outside ``report_filter`` are dropped before aggregation, so the
    totals always describe exactly the rows shown and exported.

    Args:
        report: Report to build.
        inputs: Raw records and team profiles.
        report_filter: Date range and dimension filters.
        sort: Sort keys; defaults to the report's default order.

    Returns:
        ReportResult: Sorted summary rows with totals.
    """
    names = profile_names(inputs.profiles)
    events = [
        event
        for event in report.to_events(with_agent_names(inputs.records, names))
        if report_filter.matches(event, field_map=report.filter_fields)
    ]
    logger.info(f"{report.title}: {len(events)} of {len(inputs.records)} records in scope")

    aggregation = report.aggregate(
        events, seed=_seed_events(report, report_filter, inputs.profiles)
    )
    rows = sort_by_keys(
        aggregation.summary_rows,
        sort if sort is not None else report.default_sort,
        metrics=report.metrics,
    )
    return ReportResult(
        report=report,
        report_filter=report_filter,
        rows=rows,
        aggregation=aggregation,
        value_labels=names,
    )


def build_export_labels(result: ReportResult, *, generated_at: datetime) -> ExportLabels:
    return ExportLabels(
        title=result.report.title,
        report_name=result.report.name,
        period=result.report_filter.period_label(),
        filters=result.report_filter.filter_label(value_labels=result.value_labels),
        generated_at=generated_at,
    )


def export_report(
    result: ReportResult, *, export_format: str, generated_at: datetime
) -> ExportDocument:
    """Serialize a report result as CSV or PDF.

    Raises:
        EmptyExportError: If the result has no rows.
        ValueError: If ``export_format`` is not supported.
    """
    labels = build_export_labels(result, generated_at=generated_at)
    if export_format == "csv":
        table = build_export_table(report=result.report, rows=result.rows, totals=result.totals)
        return export_csv(table=table, labels=labels)
    if export_format == "pdf":
        table = build_export_table(
            report=result.report, rows=result.rows, totals=result.totals, rate_suffix="%"
        )
        return export_pdf(table=table, labels=labels)
    raise ValueError(f"Unsupported export format '{export_format}', expected one of {EXPORT_FORMATS}")


async def fetch_report_inputs(
    *,
    fetcher: EventFetcher,
    report: ReportDefinition,
    report_filter: ReportFilter,
    settings: ReportSettings = ReportSettings(),
) -> ReportInputs:
    """Fetch the records (and, for reports showing agent names, the team profiles) of a report."""
    records = await fetcher.fetch_events(
        source=report.source,
        report_filter=report_filter,
        filter_fields=report.filter_fields,
        page_limit=settings.page_limit,
        max_pages=settings.max_pages,
    )
    profiles: list[Record] = []
    if report.uses_profiles:
        team = None if is_all(report_filter.team) else report_filter.team.strip()
        profiles = await fetcher.fetch_profiles(team_id=team)
    return ReportInputs(records=records, profiles=profiles)


Loader = Callable[[ReportFilter], Awaitable[ReportInputs]]


@dataclass(frozen=True)
class ReportState:
    """What the screen shows: the latest result, or the error that replaced it."""

    report_filter: ReportFilter | None = None
    result: ReportResult | None = None
    error: str | None = None
    loading: bool = False


class ReportSession:
    """Keeps the visible report in sync with the latest requested filter.

    Each ``refresh`` supersedes the previous one: a fetch that resolves after
    a newer refresh started is discarded, whether it succeeded or failed.
    Failures replace the visible rows with an error state; nothing is retried.
    Errors other than TelesalesReportError are re-raised once the state is set.
    """

    def __init__(self, *, report: ReportDefinition, loader: Loader) -> None:
        self.report = report
        self.loader = loader
        self.gate = LatestRequestGate()
        self.state = ReportState()

    async def refresh(self, report_filter: ReportFilter) -> ReportState:
        token = self.gate.begin()
        self.state = ReportState(report_filter=report_filter, result=self.state.result, loading=True)

        try:
            inputs = await self.loader(report_filter)
            result = run_report(report=self.report, inputs=inputs, report_filter=report_filter)
        except TelesalesReportError as e:
            if self.gate.is_current(token):
                logger.error(LogMessage.ERROR_OCCURRED.format(e))
                self.state = ReportState(report_filter=report_filter, error=str(e))
            return self.state
        except Exception as e:
            # Leave the loading state before surfacing an unexpected failure
            if self.gate.is_current(token):
                logger.exception(LogMessage.ERROR_OCCURRED.format(e))
                self.state = ReportState(report_filter=report_filter, error=str(e))
            raise

        if self.gate.is_current(token):
            self.state = ReportState(report_filter=report_filter, result=result)
        return self.state
