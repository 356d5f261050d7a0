"""Group raw events into summary rows with per-group counters and a totals row."""

from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Sequence

from loguru import logger

from .constants import MISSING_DIMENSION_LABEL, LogMessage
from .models import (
    SUBJECT_FIELD,
    GroupKey,
    RawEventRow,
    SummaryRow,
    TotalsRow,
    is_blank,
    local_day,
    local_time,
    match_key,
)

Predicate = Callable[[RawEventRow], bool]

_TRUTHY_STRINGS = {"true", "t", "yes", "y", "1"}


def is_truthy(value: Any) -> bool:
    """Interpret store booleans, including the strings CSV files carry."""
    if isinstance(value, str):
        return value.strip().casefold() in _TRUTHY_STRINGS
    return bool(value)


@dataclass(frozen=True)
class Dimension:
    """Extracts one GroupKey component from an event.

    Attributes:
        name: Name of the dimension in SummaryRow.dimensions.
        extract: Returns the raw value for an event.
        choices: Known spellings; a case-insensitive match is displayed with
            the known spelling.
    """

    name: str
    extract: Callable[[RawEventRow], Any]
    choices: tuple[str, ...] = ()

    def resolve(self, row: RawEventRow) -> tuple[Any, Any]:
        """Return the (key component, display value) pair for an event.

        Missing values resolve to ``(None, None)``.
        """
        raw = self.extract(row)
        if is_blank(raw):
            return None, None
        if not isinstance(raw, str):
            return raw, raw

        display = " ".join(raw.split())
        key = match_key(display)
        for choice in self.choices:
            if match_key(choice) == key:
                display = choice
                break
        return key, display


def _timestamp_day(row: RawEventRow) -> Any:
    return local_day(row.timestamp) if row.timestamp is not None else None


def _timestamp_hour(row: RawEventRow) -> Any:
    return local_time(row.timestamp).hour if row.timestamp is not None else None


def day_dimension(name: str = "date") -> Dimension:
    """Group by the local calendar day of the event timestamp."""
    return Dimension(name=name, extract=_timestamp_day)


def field_dimension(
    field_name: str, *, name: str | None = None, choices: Iterable[str] = ()
) -> Dimension:
    """Group by an event field (dimension, payload or ``subject_id``)."""
    return Dimension(
        name=name or field_name,
        extract=lambda row: row.get(field_name),
        choices=tuple(choices),
    )


def subject_dimension(name: str = "agent_id") -> Dimension:
    return field_dimension(SUBJECT_FIELD, name=name)


@dataclass(frozen=True)
class CounterRule:
    """An independent counter incremented whenever ``predicate`` holds."""

    name: str
    predicate: Predicate


def flag_rule(name: str, field_name: str) -> CounterRule:
    """Count events whose ``field_name`` is truthy."""
    return CounterRule(name=name, predicate=lambda row: is_truthy(row.get(field_name)))


@dataclass(frozen=True)
class CounterFamily:
    """Mutually exclusive counters: every event increments exactly one of them.

    Rules are tried in order and the first matching counter wins. Events no
    rule matches go to ``fallback``, which is always explicit.

    Attributes:
        name: Family name used in logs and AggregationResult.unclassified.
        rules: Counter name to predicate, in priority order.
        fallback: Counter incremented for unmatched events.
    """

    name: str
    rules: Mapping[str, Predicate]
    fallback: str

    @property
    def counter_names(self) -> list[str]:
        names = list(self.rules)
        if self.fallback not in names:
            names.append(self.fallback)
        return names

    def classify(self, row: RawEventRow) -> str | None:
        """Return the matching counter, or None when no rule matches."""
        for counter, predicate in self.rules.items():
            if predicate(row):
                return counter
        return None


def _value_in(field_name: str, accepted: Iterable[str]) -> Predicate:
    keys = {match_key(value) for value in accepted}

    def predicate(row: RawEventRow) -> bool:
        value = row.get(field_name)
        return isinstance(value, str) and match_key(value) in keys

    return predicate


def status_family(
    *,
    name: str,
    field_name: str,
    counters: Mapping[str, Iterable[str]],
    fallback: str,
) -> CounterFamily:
    """Build a family that classifies events by a status string.

    Args:
        name: Family name.
        field_name: Event field holding the status.
        counters: Counter name to the status values (case-insensitive) it counts.
        fallback: Counter for missing or unknown statuses.
    """
    return CounterFamily(
        name=name,
        rules={counter: _value_in(field_name, values) for counter, values in counters.items()},
        fallback=fallback,
    )


def hour_counter(hour: int) -> str:
    return f"hour_{hour:02d}"


def hour_family(*, name: str, hours: Iterable[int], fallback: str) -> CounterFamily:
    """Build a family with one counter per local hour of day.

    Events outside ``hours`` or without a timestamp go to ``fallback``.
    """
    return CounterFamily(
        name=name,
        rules={
            hour_counter(hour): (lambda row, hour=hour: _timestamp_hour(row) == hour)
            for hour in hours
        },
        fallback=fallback,
    )


@dataclass
class _Accumulator:
    dimensions: dict[str, Any]
    counters: dict[str, int]
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AggregationResult:
    """Output of one aggregation pass.

    Attributes:
        rows: SummaryRows by GroupKey. Unordered; use the sorter for display order.
        totals: Coordinate-wise sum of all SummaryRow counters.
        counter_names: Every counter, in column order.
        event_count: Number of events aggregated (seed rows excluded).
        unclassified: Family name to the number of events sent to its fallback.
        missing_dimensions: Dimension name to the number of events missing it.
    """

    rows: Mapping[GroupKey, SummaryRow]
    totals: TotalsRow
    counter_names: tuple[str, ...]
    event_count: int
    unclassified: Mapping[str, int]
    missing_dimensions: Mapping[str, int]

    @property
    def summary_rows(self) -> list[SummaryRow]:
        return list(self.rows.values())

    @property
    def is_empty(self) -> bool:
        return not self.rows


def counter_names_for(
    *,
    row_counter: str,
    counter_families: Sequence[CounterFamily] = (),
    counter_rules: Sequence[CounterRule] = (),
) -> list[str]:
    """List every counter an aggregation produces, without duplicates."""
    names = [row_counter]
    for family in counter_families:
        names.extend(family.counter_names)
    names.extend(rule.name for rule in counter_rules)
    return list(dict.fromkeys(names))


def aggregate(
    *,
    rows: Iterable[RawEventRow],
    group_by: Sequence[Dimension],
    row_counter: str,
    counter_families: Sequence[CounterFamily] = (),
    counter_rules: Sequence[CounterRule] = (),
    attributes: Sequence[Dimension] = (),
    seed: Iterable[RawEventRow] = (),
) -> AggregationResult:
    """Aggregate events into summary rows keyed by ``group_by``.

    Every event increments ``row_counter`` once, exactly one counter of each
    family, and every rule whose predicate holds. Events missing a grouping
    value are bucketed under a None key component instead of being dropped,
    so the totals always account for every event.

    Args:
        rows: Events to aggregate.
        group_by: Dimension extractors forming the GroupKey, in order.
        row_counter: Counter incremented unconditionally per event.
        counter_families: Mutually exclusive counter families.
        counter_rules: Independent counters.
        attributes: Display-only values captured from the first event of a group.
        seed: Events that create (zero-count) groups without being counted.

    Returns:
        AggregationResult: Summary rows, totals and classification statistics.
    """
    names = counter_names_for(
        row_counter=row_counter,
        counter_families=counter_families,
        counter_rules=counter_rules,
    )
    groups: dict[GroupKey, _Accumulator] = {}
    unclassified: Counter[str] = Counter()
    missing: Counter[str] = Counter()

    def group_for(row: RawEventRow, *, counted: bool) -> _Accumulator:
        key_parts: list[Any] = []
        display: dict[str, Any] = {}
        for dimension in group_by:
            key, shown = dimension.resolve(row)
            if key is None and counted:
                missing[dimension.name] += 1
            key_parts.append(key)
            display[dimension.name] = shown

        key = tuple(key_parts)
        accumulator = groups.get(key)
        if accumulator is None:
            accumulator = _Accumulator(
                dimensions=display, counters=dict.fromkeys(names, 0)
            )
            groups[key] = accumulator

        for attribute in attributes:
            if accumulator.attributes.get(attribute.name) is None:
                accumulator.attributes[attribute.name] = attribute.resolve(row)[1]
        return accumulator

    for row in seed:
        group_for(row, counted=False)

    event_count = 0
    for row in rows:
        event_count += 1
        accumulator = group_for(row, counted=True)
        counters = accumulator.counters
        counters[row_counter] += 1

        for family in counter_families:
            counter = family.classify(row)
            if counter is None:
                unclassified[family.name] += 1
                counter = family.fallback
            counters[counter] += 1

        for rule in counter_rules:
            if rule.predicate(row):
                counters[rule.name] += 1

    summary_rows = {
        key: SummaryRow(
            key=key,
            dimensions=MappingProxyType(accumulator.dimensions),
            counters=MappingProxyType(accumulator.counters),
            attributes=MappingProxyType(accumulator.attributes),
        )
        for key, accumulator in groups.items()
    }
    totals = TotalsRow(
        counters=MappingProxyType(
            {
                name: sum(row.counters[name] for row in summary_rows.values())
                for name in names
            }
        )
    )

    logger.info(LogMessage.AGGREGATED.format(event_count, len(summary_rows)))
    for family in counter_families:
        if unclassified[family.name]:
            logger.warning(
                LogMessage.UNCLASSIFIED.format(
                    unclassified[family.name], family.name, family.fallback
                )
            )
    for dimension_name, count in missing.items():
        logger.warning(
            LogMessage.MISSING_DIMENSION.format(
                count, dimension_name, MISSING_DIMENSION_LABEL
            )
        )

    return AggregationResult(
        rows=MappingProxyType(summary_rows),
        totals=totals,
        counter_names=tuple(names),
        event_count=event_count,
        unclassified=MappingProxyType(dict(unclassified)),
        missing_dimensions=MappingProxyType(dict(missing)),
    )
