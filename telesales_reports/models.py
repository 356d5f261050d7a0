"""Data models for telesales report aggregation."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from .constants import (
    ALL_FILTER_VALUE,
    FILENAME_DATE_FORMAT,
    QUERY_DATE_FORMAT,
    FilterDimension,
    TimePeriod,
)
from .exceptions import InvalidFilterError

# Pseudo field name that resolves to RawEventRow.subject_id
SUBJECT_FIELD = "subject_id"

GroupKey = tuple[Any, ...]


def match_key(value: Any) -> Any:
    """Return the comparison form of a dimension value.

    Strings are trimmed, inner whitespace collapsed and case-folded so that
    "RAK", " rak " and "Rak" land in the same group. Other values are
    returned unchanged.
    """
    if isinstance(value, str):
        return " ".join(value.split()).casefold()
    return value


def is_blank(value: Any) -> bool:
    """Check whether a record value should be treated as missing."""
    return value is None or (isinstance(value, str) and not value.strip())


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a store timestamp into a datetime.

    Accepts datetimes, dates (midnight), ISO 8601 strings (with or without a
    trailing ``Z``) and milliseconds since the epoch.

    Returns:
        datetime | None: The parsed value, or None when it cannot be parsed.
    """
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)

    try:
        # Try parsing ISO format timestamp
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        # Try parsing as milliseconds since epoch
        try:
            return datetime.fromtimestamp(int(value) / 1000)
        except (ValueError, TypeError, OverflowError, OSError):
            return None


def local_time(moment: datetime) -> datetime:
    """Convert an aware timestamp to local time; naive ones are already local."""
    return moment.astimezone() if moment.tzinfo is not None else moment


def local_day(moment: date | datetime) -> date:
    """Return the local calendar day of a date or timestamp."""
    return local_time(moment).date() if isinstance(moment, datetime) else moment


@dataclass(frozen=True)
class EventSource:
    """Describes how store records of one table map onto RawEventRow.

    Attributes:
        table: Store table the records come from.
        timestamp_fields: Candidate timestamp columns, first non-empty wins.
        subject_field: Column identifying the agent (or team) the event belongs to.
        dimension_fields: Classification columns copied into ``dimensions``.
        payload_fields: Remaining columns copied into ``payload``.
        date_column: Column the store filters the date range on.
        date_column_is_timestamp: Whether ``date_column`` holds full timestamps.
    """

    table: str
    timestamp_fields: tuple[str, ...]
    subject_field: str
    dimension_fields: tuple[str, ...] = ()
    payload_fields: tuple[str, ...] = ()
    date_column: str | None = None
    date_column_is_timestamp: bool = False

    @property
    def range_column(self) -> str:
        return self.date_column or self.timestamp_fields[0]


@dataclass(frozen=True)
class RawEventRow:
    """An immutable fact about one real-world action.

    Attributes:
        timestamp: When the action happened, None if the record had no usable timestamp.
        subject_id: Agent or team the action belongs to.
        dimensions: Classification values (bank name, feedback status, ...).
        payload: Remaining facts (e.g. whether a WhatsApp message was sent).
    """

    timestamp: datetime | None
    subject_id: str | None
    dimensions: Mapping[str, Any] = field(default_factory=dict)
    payload: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(
        cls, *, record: Mapping[str, Any], source: EventSource
    ) -> "RawEventRow":
        """Create a RawEventRow from a flat store record.

        Args:
            record: One row as returned by the store or read from a file.
            source: Mapping of the record's columns.

        Returns:
            RawEventRow: A read-only event.
        """
        timestamp = None
        for name in source.timestamp_fields:
            timestamp = parse_timestamp(record.get(name))
            if timestamp is not None:
                break

        subject = record.get(source.subject_field)

        return cls(
            timestamp=timestamp,
            subject_id=None if is_blank(subject) else str(subject),
            dimensions=MappingProxyType(
                {name: record.get(name) for name in source.dimension_fields}
            ),
            payload=MappingProxyType(
                {name: record.get(name) for name in source.payload_fields}
            ),
        )

    def get(self, name: str, default: Any = None) -> Any:
        """Look a field up in dimensions, then payload, then the subject."""
        if name in self.dimensions:
            return self.dimensions[name]
        if name in self.payload:
            return self.payload[name]
        if name == SUBJECT_FIELD:
            return self.subject_id
        return default


@dataclass(frozen=True)
class SummaryRow:
    """One aggregated bucket.

    Attributes:
        key: The GroupKey identifying the bucket (normalized values).
        dimensions: Display values of the grouping dimensions, by name.
        counters: Counter values, by name. Read-only.
        attributes: Display-only values captured from the first row of the group.
    """

    key: GroupKey
    dimensions: Mapping[str, Any]
    counters: Mapping[str, int]
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def value(self, name: str) -> Any:
        """Return a counter, dimension or attribute value by name."""
        if name in self.counters:
            return self.counters[name]
        if name in self.dimensions:
            return self.dimensions[name]
        if name in self.attributes:
            return self.attributes[name]
        raise KeyError(name)

    @property
    def row_id(self) -> str:
        """Stable string id of the row, used for expansion state."""
        return "_".join("" if part is None else str(part) for part in self.key)


@dataclass(frozen=True)
class TotalsRow:
    """Coordinate-wise sum of all SummaryRow counters."""

    counters: Mapping[str, int]

    @classmethod
    def zero(cls, counter_names: list[str]) -> "TotalsRow":
        return cls(counters=MappingProxyType({name: 0 for name in counter_names}))

    def value(self, name: str) -> int:
        return self.counters[name]


def _months_later(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the end of shorter months."""
    month_index = day.year * 12 + day.month - 1 + months
    year, month = divmod(month_index, 12)
    month += 1
    next_month = date(year + month // 12, month % 12 + 1, 1)
    last_day = (next_month - timedelta(days=1)).day
    return date(year, month, min(day.day, last_day))


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar days.

    Attributes:
        start: First day of the range.
        end: Last day of the range.
    """

    start: date
    end: date

    def __post_init__(self) -> None:
        # Normalize datetimes to their calendar day
        if isinstance(self.start, datetime):
            object.__setattr__(self, "start", self.start.date())
        if isinstance(self.end, datetime):
            object.__setattr__(self, "end", self.end.date())
        if self.end < self.start:
            raise InvalidFilterError(
                f"Date range ends ({self.end}) before it starts ({self.start})"
            )

    @classmethod
    def single(cls, day: date) -> "DateRange":
        return cls(start=day, end=day)

    @classmethod
    def between(cls, start: date, end: date) -> "DateRange":
        return cls(start=start, end=end)

    @classmethod
    def for_period(cls, period: str, *, today: date) -> "DateRange | None":
        """Resolve a named period relative to ``today``.

        Weeks start on Monday. ``all_time`` resolves to None (no date bound).

        Raises:
            InvalidFilterError: If ``period`` is not a known TimePeriod.
        """
        try:
            period = TimePeriod(period)
        except ValueError:
            raise InvalidFilterError(f"Unknown time period: {period}") from None

        week_start = today - timedelta(days=today.weekday())
        month_start = today.replace(day=1)
        if period == TimePeriod.TODAY:
            return cls.single(today)
        if period == TimePeriod.THIS_WEEK:
            return cls(start=week_start, end=week_start + timedelta(days=6))
        if period == TimePeriod.LAST_WEEK:
            start = week_start - timedelta(days=7)
            return cls(start=start, end=start + timedelta(days=6))
        if period == TimePeriod.THIS_MONTH:
            end = _months_later(month_start, 1) - timedelta(days=1)
            return cls(start=month_start, end=end)
        if period == TimePeriod.LAST_MONTH:
            start = _months_later(month_start, -1)
            return cls(start=start, end=month_start - timedelta(days=1))
        if period == TimePeriod.SIX_MONTHS:
            return cls(start=_months_later(today, -6), end=today)
        return None

    @property
    def is_single_day(self) -> bool:
        return self.start == self.end

    def contains(self, moment: date | datetime) -> bool:
        """Check whether a date or timestamp falls inside the range."""
        return self.start <= local_day(moment) <= self.end

    def bounds(self) -> tuple[datetime, datetime]:
        """Return the range as local start-of-day / end-of-day timestamps."""
        return (
            datetime.combine(self.start, time.min).astimezone(),
            datetime.combine(self.end, time.max).astimezone(),
        )

    def query_bounds(self) -> tuple[str, str]:
        """Return the range as ``yyyy-MM-dd`` strings for store queries."""
        return (
            self.start.strftime(QUERY_DATE_FORMAT),
            self.end.strftime(QUERY_DATE_FORMAT),
        )

    def label(self) -> str:
        """Human readable period, e.g. "January 5, 2024" or "Jan 1 - Jan 31, 2024"."""
        if self.is_single_day:
            return f"{self.start:%B} {self.start.day}, {self.start.year}"
        return (
            f"{self.start:%b} {self.start.day} - "
            f"{self.end:%b} {self.end.day}, {self.end.year}"
        )


def is_all(value: str | None) -> bool:
    """Check whether a filter value means "do not filter"."""
    return is_blank(value) or match_key(value) == ALL_FILTER_VALUE


_FILTER_LABELS = {
    FilterDimension.BANK: "Bank",
    FilterDimension.AGENT: "Agent",
    FilterDimension.TEAM: "Team",
    FilterDimension.STATUS: "Status",
    FilterDimension.SEVERITY: "Severity",
}


@dataclass(frozen=True)
class ReportFilter:
    """Caller supplied scope of one report invocation.

    A dimension left at ``"all"`` never excludes a row; a set dimension
    excludes every row whose value does not match it.
    """

    date_range: DateRange | None = None
    bank: str = ALL_FILTER_VALUE
    agent: str = ALL_FILTER_VALUE
    team: str = ALL_FILTER_VALUE
    status: str = ALL_FILTER_VALUE
    severity: str = ALL_FILTER_VALUE

    def dimension_filters(self) -> dict[FilterDimension, str]:
        """Return the active (non-"all") dimension filters."""
        active: dict[FilterDimension, str] = {}
        for dimension in FilterDimension:
            value = getattr(self, dimension.value)
            if not is_all(value):
                active[dimension] = value.strip()
        return active

    def with_changes(self, **changes: Any) -> "ReportFilter":
        return replace(self, **changes)

    def matches(
        self, row: RawEventRow, *, field_map: Mapping[FilterDimension, str]
    ) -> bool:
        """Check whether an event falls inside this filter.

        Args:
            row: The event to test.
            field_map: Event field each filter dimension is evaluated against.

        Raises:
            InvalidFilterError: If an active dimension has no field in ``field_map``.
        """
        if self.date_range is not None:
            if row.timestamp is None or not self.date_range.contains(row.timestamp):
                return False

        for dimension, wanted in self.dimension_filters().items():
            field_name = field_map.get(dimension)
            if field_name is None:
                raise InvalidFilterError(
                    f"This report cannot be filtered by {dimension.value}"
                )
            actual = row.get(field_name)
            if is_blank(actual) or match_key(str(actual)) != match_key(wanted):
                return False

        return True

    def period_label(self) -> str:
        return self.date_range.label() if self.date_range else "All dates"

    def filter_label(self, *, value_labels: Mapping[str, str] | None = None) -> str:
        """Describe the active dimension filters, e.g. "Bank: RAK | Agent: Alice".

        Args:
            value_labels: Optional display names for filter values (agent ids to names).
        """
        value_labels = value_labels or {}
        return " | ".join(
            f"{_FILTER_LABELS[dimension]}: {value_labels.get(value, value)}"
            for dimension, value in self.dimension_filters().items()
        )

    def describe(self, *, value_labels: Mapping[str, str] | None = None) -> str:
        """Describe the period and active filters, e.g. "January 5, 2024 | Bank: RAK"."""
        filters = self.filter_label(value_labels=value_labels)
        return f"{self.period_label()} | {filters}" if filters else self.period_label()


@dataclass(frozen=True)
class ExportLabels:
    """Text shown around an exported table."""

    title: str
    report_name: str
    period: str
    filters: str
    generated_at: datetime


@dataclass(frozen=True)
class ExportDocument:
    """A write-once export artifact (CSV text or PDF bytes).

    Attributes:
        filename: Suggested file name, ``<ReportName>_<yyyy-MM-dd>.<ext>``.
        media_type: MIME type of ``content``.
        content: The serialized document.
        labels: Labels the document was generated with.
    """

    filename: str
    media_type: str
    content: bytes
    labels: ExportLabels

    @staticmethod
    def build_filename(report_name: str, generated_at: datetime, extension: str) -> str:
        return f"{report_name}_{generated_at.strftime(FILENAME_DATE_FORMAT)}.{extension}"

    def save(self, directory: Path | str) -> Path:
        """Write the document into ``directory`` and return its path."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.filename
        path.write_bytes(self.content)
        return path
