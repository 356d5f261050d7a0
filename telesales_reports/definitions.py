"""Catalogue of the reports the dashboard offers.

Each ReportDefinition bundles everything needed to turn store records into a
report: where the records come from, how they are grouped and counted, which
rates are derived, the column layout shared by the on-screen table and both
exporters, and the default row order.
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from .aggregator import (
    AggregationResult,
    CounterFamily,
    CounterRule,
    Dimension,
    aggregate,
    day_dimension,
    field_dimension,
    flag_rule,
    hour_counter,
    hour_family,
    status_family,
    subject_dimension,
)
from .constants import (
    ALL_BANKS,
    OFF_HOURS_BUCKET,
    TOTALS_LABEL,
    UNCLASSIFIED_STATUS_BUCKET,
    WORKING_HOURS,
    ColumnKind,
    ColumnTone,
    FeedbackStatus,
    FilterDimension,
    RecordKey,
    SortDirection,
    SubmissionStatus,
)
from .exceptions import InvalidFilterError
from .metrics import Metric
from .models import SUBJECT_FIELD, EventSource, RawEventRow
from .sorter import SortKey


@dataclass(frozen=True)
class ColumnSpec:
    """One column of the report table.

    Attributes:
        key: Dimension, attribute, counter or metric name.
        label: Column header.
        kind: Where the value comes from.
        tone: Presentation tone of the whole column.
        fallback_key: Dimension shown when an attribute value is missing.
    """

    key: str
    label: str
    kind: ColumnKind
    tone: ColumnTone = ColumnTone.NEUTRAL
    fallback_key: str | None = None


@dataclass(frozen=True)
class ReportDefinition:
    """Everything needed to build one report from store records."""

    name: str
    title: str
    description: str
    source: EventSource
    group_by: tuple[Dimension, ...]
    row_counter: str
    columns: tuple[ColumnSpec, ...]
    default_sort: tuple[SortKey, ...]
    filter_fields: Mapping[FilterDimension, str]
    counter_families: tuple[CounterFamily, ...] = ()
    counter_rules: tuple[CounterRule, ...] = ()
    metrics: tuple[Metric, ...] = ()
    attributes: tuple[Dimension, ...] = ()
    totals_label: str = TOTALS_LABEL
    aliases: tuple[str, ...] = field(default_factory=tuple)
    # Every team member gets a row, even without events
    seed_from_profiles: bool = False

    @property
    def uses_profiles(self) -> bool:
        """Whether team profiles are needed for seeding or agent names."""
        return self.seed_from_profiles or any(
            attribute.name == RecordKey.AGENT_NAME for attribute in self.attributes
        )

    @property
    def sort_fields(self) -> list[str]:
        return [column.key for column in self.columns]

    def to_events(self, records: Iterable[Mapping]) -> list[RawEventRow]:
        """Convert flat store records into events."""
        return [RawEventRow.from_record(record=record, source=self.source) for record in records]

    def aggregate(
        self, events: Iterable[RawEventRow], *, seed: Iterable[RawEventRow] = ()
    ) -> AggregationResult:
        return aggregate(
            rows=events,
            group_by=self.group_by,
            row_counter=self.row_counter,
            counter_families=self.counter_families,
            counter_rules=self.counter_rules,
            attributes=self.attributes,
            seed=seed,
        )


_CALL_COUNTERS = {
    "interested": [FeedbackStatus.INTERESTED],
    "not_interested": [FeedbackStatus.NOT_INTERESTED],
    "not_answered": [FeedbackStatus.NOT_ANSWERED],
    "wrong_number": [FeedbackStatus.WRONG_NUMBER],
    "call_back": [FeedbackStatus.CALL_BACK],
}

_CALL_SOURCE = EventSource(
    table="call_feedback",
    timestamp_fields=(RecordKey.CALL_TIMESTAMP, RecordKey.CREATED_AT),
    subject_field=RecordKey.AGENT_ID,
    dimension_fields=(RecordKey.FEEDBACK_STATUS,),
    payload_fields=(RecordKey.WHATSAPP_SENT, RecordKey.TEAM_ID, RecordKey.AGENT_NAME),
    date_column=RecordKey.CALL_TIMESTAMP,
    date_column_is_timestamp=True,
)

_CALL_FAMILY = status_family(
    name=RecordKey.FEEDBACK_STATUS,
    field_name=RecordKey.FEEDBACK_STATUS,
    counters=_CALL_COUNTERS,
    fallback=UNCLASSIFIED_STATUS_BUCKET,
)

_CALL_FILTERS = {
    FilterDimension.AGENT: SUBJECT_FIELD,
    FilterDimension.TEAM: RecordKey.TEAM_ID,
    FilterDimension.STATUS: RecordKey.FEEDBACK_STATUS,
}

_CONVERSION_RATE = Metric(
    name="conversion_rate",
    label="Conversion %",
    numerator="interested",
    denominator="total_calls",
)

_CALL_COUNTER_COLUMNS = (
    ColumnSpec("total_calls", "Total Calls", ColumnKind.COUNTER),
    ColumnSpec("interested", "Interested", ColumnKind.COUNTER, ColumnTone.SUCCESS),
    ColumnSpec("not_interested", "Not Interested", ColumnKind.COUNTER, ColumnTone.DANGER),
    ColumnSpec("not_answered", "Not Answered", ColumnKind.COUNTER, ColumnTone.WARNING),
    ColumnSpec("wrong_number", "Wrong Number", ColumnKind.COUNTER),
    ColumnSpec("call_back", "Call Back", ColumnKind.COUNTER),
    ColumnSpec(UNCLASSIFIED_STATUS_BUCKET, "Other", ColumnKind.COUNTER),
    ColumnSpec("whatsapp_sent", "WhatsApp", ColumnKind.COUNTER, ColumnTone.INFO),
    ColumnSpec("conversion_rate", "Conversion %", ColumnKind.METRIC),
)


BANK_SUBMISSION_REPORT = ReportDefinition(
    name="Bank_Submission_Report",
    title="Bank Submission Report",
    description="Date-wise and bank-wise submission status",
    source=EventSource(
        table="agent_submissions",
        timestamp_fields=(RecordKey.SUBMISSION_DATE,),
        subject_field=RecordKey.AGENT_ID,
        dimension_fields=(RecordKey.BANK_NAME, RecordKey.STATUS),
        payload_fields=(RecordKey.TEAM_ID,),
    ),
    group_by=(
        day_dimension("date"),
        field_dimension(RecordKey.BANK_NAME, choices=ALL_BANKS),
    ),
    row_counter="submitted",
    # A submission without a recognised status has not been decided yet
    counter_families=(
        status_family(
            name=RecordKey.STATUS,
            field_name=RecordKey.STATUS,
            counters={
                "approved": [SubmissionStatus.APPROVED],
                "rejected": [SubmissionStatus.REJECTED],
                "pending": [SubmissionStatus.PENDING],
            },
            fallback="pending",
        ),
    ),
    metrics=(
        Metric(
            name="approval_rate",
            label="Approval Rate",
            numerator="approved",
            denominator="submitted",
        ),
    ),
    columns=(
        ColumnSpec("date", "Date", ColumnKind.DIMENSION),
        ColumnSpec(RecordKey.BANK_NAME, "Bank", ColumnKind.DIMENSION),
        ColumnSpec("submitted", "Submitted", ColumnKind.COUNTER),
        ColumnSpec("approved", "Approved", ColumnKind.COUNTER, ColumnTone.SUCCESS),
        ColumnSpec("rejected", "Rejected", ColumnKind.COUNTER, ColumnTone.DANGER),
        ColumnSpec("pending", "Pending", ColumnKind.COUNTER, ColumnTone.WARNING),
        ColumnSpec("approval_rate", "Approval Rate", ColumnKind.METRIC),
    ),
    default_sort=(
        ("date", SortDirection.ASC),
        (RecordKey.BANK_NAME, SortDirection.ASC),
    ),
    filter_fields={
        FilterDimension.BANK: RecordKey.BANK_NAME,
        FilterDimension.AGENT: SUBJECT_FIELD,
        FilterDimension.TEAM: RecordKey.TEAM_ID,
        FilterDimension.STATUS: RecordKey.STATUS,
    },
    aliases=("bank-submissions", "submissions"),
)

DAILY_AGENT_CALL_REPORT = ReportDefinition(
    name="Daily_Agent_Call_Report",
    title="Daily Agent Call Report",
    description="Per-agent call outcomes",
    source=_CALL_SOURCE,
    group_by=(subject_dimension("agent_id"),),
    attributes=(field_dimension(RecordKey.AGENT_NAME),),
    row_counter="total_calls",
    counter_families=(_CALL_FAMILY,),
    counter_rules=(flag_rule("whatsapp_sent", RecordKey.WHATSAPP_SENT),),
    metrics=(_CONVERSION_RATE,),
    columns=(
        ColumnSpec(
            RecordKey.AGENT_NAME,
            "Agent Name",
            ColumnKind.ATTRIBUTE,
            fallback_key="agent_id",
        ),
    )
    + _CALL_COUNTER_COLUMNS,
    default_sort=(("total_calls", SortDirection.DESC),),
    filter_fields=_CALL_FILTERS,
    totals_label="TEAM TOTAL",
    aliases=("agent-calls", "agents"),
    seed_from_profiles=True,
)

TEAM_DAILY_CALL_STATUS_REPORT = ReportDefinition(
    name="Team_Daily_Call_Status_Report",
    title="Team Daily Call Status Report",
    description="Day-by-day call outcomes for the team",
    source=_CALL_SOURCE,
    group_by=(day_dimension("date"),),
    row_counter="total_calls",
    counter_families=(_CALL_FAMILY,),
    counter_rules=(flag_rule("whatsapp_sent", RecordKey.WHATSAPP_SENT),),
    metrics=(_CONVERSION_RATE,),
    columns=(ColumnSpec("date", "Date", ColumnKind.DIMENSION),) + _CALL_COUNTER_COLUMNS,
    default_sort=(("date", SortDirection.ASC),),
    filter_fields=_CALL_FILTERS,
    totals_label="TEAM TOTAL",
    aliases=("team-daily-calls", "daily-calls"),
)

ALERT_HISTORY_REPORT = ReportDefinition(
    name="Alert_History_Report",
    title="Performance Alert History",
    description="Triggered performance alerts by day and metric",
    source=EventSource(
        table="performance_alerts",
        timestamp_fields=(RecordKey.CREATED_AT,),
        subject_field=RecordKey.AGENT_ID,
        dimension_fields=("metric", "alert_status", RecordKey.SEVERITY),
        payload_fields=(RecordKey.TEAM_ID,),
        date_column_is_timestamp=True,
    ),
    group_by=(day_dimension("date"), field_dimension("metric")),
    row_counter="alerts",
    counter_families=(
        status_family(
            name="alert_status",
            field_name="alert_status",
            counters={
                "active": ["active"],
                "acknowledged": ["acknowledged"],
                "resolved": ["resolved"],
            },
            fallback=UNCLASSIFIED_STATUS_BUCKET,
        ),
    ),
    counter_rules=(
        CounterRule(
            name="critical",
            predicate=lambda row: str(row.get(RecordKey.SEVERITY, "")).casefold() == "critical",
        ),
    ),
    metrics=(
        Metric(
            name="resolution_rate",
            label="Resolved %",
            numerator="resolved",
            denominator="alerts",
        ),
    ),
    columns=(
        ColumnSpec("date", "Date", ColumnKind.DIMENSION),
        ColumnSpec("metric", "Metric", ColumnKind.DIMENSION),
        ColumnSpec("alerts", "Alerts", ColumnKind.COUNTER),
        ColumnSpec("critical", "Critical", ColumnKind.COUNTER, ColumnTone.DANGER),
        ColumnSpec("active", "Active", ColumnKind.COUNTER, ColumnTone.WARNING),
        ColumnSpec("acknowledged", "Acknowledged", ColumnKind.COUNTER),
        ColumnSpec("resolved", "Resolved", ColumnKind.COUNTER, ColumnTone.SUCCESS),
        ColumnSpec(UNCLASSIFIED_STATUS_BUCKET, "Other", ColumnKind.COUNTER),
        ColumnSpec("resolution_rate", "Resolved %", ColumnKind.METRIC),
    ),
    default_sort=(("date", SortDirection.DESC), ("metric", SortDirection.ASC)),
    filter_fields={
        FilterDimension.AGENT: SUBJECT_FIELD,
        FilterDimension.TEAM: RecordKey.TEAM_ID,
        FilterDimension.STATUS: "alert_status",
        FilterDimension.SEVERITY: RecordKey.SEVERITY,
    },
    aliases=("alerts",),
)

def _hour_label(hour: int) -> str:
    if hour == 12:
        return "12PM"
    return f"{hour - 12}PM" if hour > 12 else f"{hour}AM"


AGENT_HOURLY_CALL_REPORT = ReportDefinition(
    name="Agent_Hourly_Report",
    title="Agent Hourly Call Report",
    description="Calls per agent and hour of day, day by day",
    source=_CALL_SOURCE,
    group_by=(day_dimension("date"), subject_dimension("agent_id")),
    attributes=(field_dimension(RecordKey.AGENT_NAME),),
    row_counter="total_calls",
    # Calls before 8 AM or after 8 PM are kept in a separate column
    counter_families=(
        hour_family(name="hour", hours=WORKING_HOURS, fallback=OFF_HOURS_BUCKET),
    ),
    columns=(
        ColumnSpec("date", "Date", ColumnKind.DIMENSION),
        ColumnSpec(
            RecordKey.AGENT_NAME,
            "Agent Name",
            ColumnKind.ATTRIBUTE,
            fallback_key="agent_id",
        ),
    )
    + tuple(
        ColumnSpec(hour_counter(hour), _hour_label(hour), ColumnKind.COUNTER)
        for hour in WORKING_HOURS
    )
    + (
        ColumnSpec(OFF_HOURS_BUCKET, "Other", ColumnKind.COUNTER),
        ColumnSpec("total_calls", "Total", ColumnKind.COUNTER, ColumnTone.INFO),
    ),
    default_sort=(("date", SortDirection.DESC), ("total_calls", SortDirection.DESC)),
    filter_fields=_CALL_FILTERS,
    totals_label="GRAND TOTAL",
    aliases=("agent-hourly", "hourly"),
)

REPORTS: dict[str, ReportDefinition] = {
    report.name: report
    for report in (
        BANK_SUBMISSION_REPORT,
        DAILY_AGENT_CALL_REPORT,
        TEAM_DAILY_CALL_STATUS_REPORT,
        AGENT_HOURLY_CALL_REPORT,
        ALERT_HISTORY_REPORT,
    )
}


def get_report(name: str) -> ReportDefinition:
    """Look a report up by name or alias (case-insensitive).

    Raises:
        InvalidFilterError: If no report matches.
    """
    wanted = name.strip().casefold()
    for report in REPORTS.values():
        if wanted == report.name.casefold() or wanted in report.aliases:
            return report
    raise InvalidFilterError(
        f"Unknown report '{name}'. Available: {', '.join(REPORTS)}"
    )
