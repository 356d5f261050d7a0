"""Display-side filtering, pagination and row expansion state."""

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from .constants import (
    DEFAULT_TABLE_PAGE_SIZE,
    FIRST_PAGE,
    PREVIEW_ROW_LIMIT,
    SortDirection,
)
from .metrics import Metric
from .models import SummaryRow, is_all
from .sorter import sort_rows


def filter_by_dimension(
    rows: Sequence[SummaryRow], dimension: str, value: Any
) -> list[SummaryRow]:
    """Keep rows whose ``dimension`` equals ``value``; ``"all"`` keeps every row."""
    if isinstance(value, str) and is_all(value):
        return list(rows)
    return [row for row in rows if row.value(dimension) == value]


def page_count(total_rows: int, page_size: int) -> int:
    """Number of pages needed for ``total_rows``; an empty table has one page."""
    if page_size <= 0:
        raise ValueError(f"Page size must be positive, got {page_size}")
    return max(FIRST_PAGE, math.ceil(total_rows / page_size))


def paginate(
    rows: Sequence[SummaryRow], page_size: int, page_number: int
) -> list[SummaryRow]:
    """Return the 1-indexed page ``page_number``, clamped to the row bounds."""
    if page_size <= 0:
        raise ValueError(f"Page size must be positive, got {page_size}")
    start = max(page_number - 1, 0) * page_size
    return list(rows[start : start + page_size])


@dataclass
class TableView:
    """On-screen state of a report table.

    Rows are sorted, then filtered, then paginated. Any change to the
    filters, page size or source rows resets the page to the first one, and
    expansion state only ever covers rows on the current page.

    Attributes:
        rows: Summary rows as produced by the report (already in default order).
        metrics: Derived metrics available for sorting.
        page_size: Rows per page.
    """

    rows: Sequence[SummaryRow]
    metrics: Sequence[Metric] = ()
    page_size: int = DEFAULT_TABLE_PAGE_SIZE
    sort_field: str | None = None
    sort_direction: SortDirection = SortDirection.ASC
    filters: dict[str, Any] = field(default_factory=dict)
    page_number: int = FIRST_PAGE
    expanded: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ValueError(f"Page size must be positive, got {self.page_size}")

    @property
    def sorted_rows(self) -> list[SummaryRow]:
        if self.sort_field is None:
            return list(self.rows)
        return sort_rows(
            self.rows,
            field=self.sort_field,
            direction=self.sort_direction,
            metrics=self.metrics,
        )

    @property
    def filtered_rows(self) -> list[SummaryRow]:
        rows = self.sorted_rows
        for dimension, value in self.filters.items():
            rows = filter_by_dimension(rows, dimension, value)
        return rows

    @property
    def total_pages(self) -> int:
        return page_count(len(self.filtered_rows), self.page_size)

    @property
    def visible_rows(self) -> list[SummaryRow]:
        return paginate(self.filtered_rows, self.page_size, self.page_number)

    def _visible_ids(self) -> set[str]:
        return {row.row_id for row in self.visible_rows}

    def _reset_page(self) -> None:
        self.page_number = FIRST_PAGE
        self._prune_expansion()

    def _prune_expansion(self) -> None:
        self.expanded &= self._visible_ids()

    def replace_rows(self, rows: Sequence[SummaryRow]) -> None:
        """Swap in a freshly aggregated row set."""
        self.rows = rows
        self._reset_page()

    def set_filter(self, dimension: str, value: Any) -> None:
        if isinstance(value, str) and is_all(value):
            self.filters.pop(dimension, None)
        else:
            self.filters[dimension] = value
        self._reset_page()

    def clear_filters(self) -> None:
        self.filters.clear()
        self._reset_page()

    def set_page_size(self, page_size: int) -> None:
        if page_size <= 0:
            raise ValueError(f"Page size must be positive, got {page_size}")
        self.page_size = page_size
        self._reset_page()

    def go_to_page(self, page_number: int) -> None:
        """Move to a page, clamped to the existing pages."""
        self.page_number = min(max(page_number, FIRST_PAGE), self.total_pages)
        self._prune_expansion()

    def toggle_sort(self, field: str) -> None:
        """Sort by ``field``; sorting by the current field again flips the direction."""
        if self.sort_field == field:
            self.sort_direction = (
                SortDirection.DESC
                if self.sort_direction == SortDirection.ASC
                else SortDirection.ASC
            )
        else:
            self.sort_field = field
            self.sort_direction = SortDirection.ASC
        self._prune_expansion()

    def toggle_expansion(self, row_id: str) -> None:
        if row_id in self.expanded:
            self.expanded.discard(row_id)
        elif row_id in self._visible_ids():
            self.expanded.add(row_id)

    def expand_all(self) -> None:
        self.expanded = self._visible_ids()

    def collapse_all(self) -> None:
        self.expanded = set()

    def preview(self, limit: int = PREVIEW_ROW_LIMIT) -> list[SummaryRow]:
        """First ``limit`` filtered rows, for bounded on-screen rendering."""
        return self.filtered_rows[:limit]
