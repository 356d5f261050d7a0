"""Deterministic ordering of summary rows for display and export."""

import locale
from datetime import date, datetime, time
from typing import Any, Iterable, Sequence

from .constants import SortDirection
from .exceptions import InvalidFilterError
from .metrics import Metric
from .models import SummaryRow

SortKey = tuple[str, SortDirection]


def field_value(row: SummaryRow, field: str, metrics: dict[str, Metric]) -> Any:
    """Return the value a row is sorted by.

    Metrics are recomputed from the row's counters on every call.
    """
    if field in metrics:
        return metrics[field].compute(row.counters)
    try:
        return row.value(field)
    except KeyError:
        raise InvalidFilterError(f"Unknown sort field: {field}") from None


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        # Locale-aware, case-insensitive first, raw string breaks ties
        return (locale.strxfrm(value.casefold()), value)
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return value


def sort_rows(
    rows: Iterable[SummaryRow],
    *,
    field: str,
    direction: SortDirection = SortDirection.ASC,
    metrics: Sequence[Metric] = (),
) -> list[SummaryRow]:
    """Sort summary rows by a dimension, counter or derived metric.

    The sort is stable in both directions: rows with equal values keep their
    incoming relative order. Dates compare by value, never by display text.
    Rows with no value for ``field`` always come last.

    Args:
        rows: Rows to sort.
        field: Dimension, attribute, counter or metric name.
        direction: Ascending or descending.
        metrics: Derived metrics that may be sorted on.

    Returns:
        list[SummaryRow]: A new, sorted list.

    Raises:
        InvalidFilterError: If ``field`` is not a field of the rows.
    """
    metrics_by_name = {metric.name: metric for metric in metrics}
    present: list[tuple[SummaryRow, Any]] = []
    missing: list[SummaryRow] = []

    for row in rows:
        value = field_value(row, field, metrics_by_name)
        if value is None:
            missing.append(row)
        else:
            present.append((row, _comparable(value)))

    present.sort(key=lambda item: item[1], reverse=direction == SortDirection.DESC)
    return [row for row, _ in present] + missing


def sort_by_keys(
    rows: Iterable[SummaryRow],
    keys: Sequence[SortKey],
    *,
    metrics: Sequence[Metric] = (),
) -> list[SummaryRow]:
    """Sort by several fields, the first key being the primary one.

    Applies one stable sort per key, least significant first.
    """
    ordered = list(rows)
    for field, direction in reversed(keys):
        ordered = sort_rows(ordered, field=field, direction=direction, metrics=metrics)
    return ordered
