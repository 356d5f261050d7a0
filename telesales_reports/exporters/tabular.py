"""Turn summary rows into the display-formatted grid both exporters share."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Sequence

from ..constants import DISPLAY_DATE_FORMAT, MISSING_DIMENSION_LABEL, ColumnKind, ColumnTone
from ..definitions import ColumnSpec, ReportDefinition
from ..models import SummaryRow, TotalsRow


@dataclass(frozen=True)
class ExportTable:
    """Header, body and totals cells of an export, already formatted as text.

    Attributes:
        headers: Column labels.
        body: One list of cells per summary row, in the order given.
        totals: The totals line; its first cell is the totals label.
        tones: Presentation tone per column.
        report_name: Name used for the export file.
        title: Report title.
    """

    headers: list[str]
    body: list[list[str]]
    totals: list[str]
    tones: list[ColumnTone]
    report_name: str
    title: str

    @property
    def is_empty(self) -> bool:
        return not self.body


def format_cell(value: Any) -> str:
    """Display form of a dimension or attribute value."""
    if value is None:
        return MISSING_DIMENSION_LABEL
    if isinstance(value, datetime):
        return value.strftime(DISPLAY_DATE_FORMAT)
    if isinstance(value, date):
        return value.strftime(DISPLAY_DATE_FORMAT)
    return str(value)


def format_rate(value: float, *, suffix: str = "") -> str:
    return f"{value:.1f}{suffix}"


def _row_cell(
    row: SummaryRow, column: ColumnSpec, report: ReportDefinition, rate_suffix: str
) -> str:
    if column.kind == ColumnKind.METRIC:
        metric = next(metric for metric in report.metrics if metric.name == column.key)
        return format_rate(metric.compute(row.counters), suffix=rate_suffix)
    if column.kind == ColumnKind.COUNTER:
        return str(row.counters.get(column.key, 0))

    source = row.attributes if column.kind == ColumnKind.ATTRIBUTE else row.dimensions
    value = source.get(column.key)
    if value is None and column.fallback_key is not None:
        value = row.dimensions.get(column.fallback_key)
    return format_cell(value)


def row_cells(
    row: SummaryRow, report: ReportDefinition, *, rate_suffix: str = ""
) -> list[str]:
    """Formatted cells of one summary row, in column order."""
    return [_row_cell(row, column, report, rate_suffix) for column in report.columns]


def _totals_cells(
    totals: TotalsRow, report: ReportDefinition, rate_suffix: str
) -> list[str]:
    cells: list[str] = []
    for index, column in enumerate(report.columns):
        if column.kind == ColumnKind.COUNTER:
            cells.append(str(totals.counters.get(column.key, 0)))
        elif column.kind == ColumnKind.METRIC:
            metric = next(metric for metric in report.metrics if metric.name == column.key)
            cells.append(format_rate(metric.compute(totals.counters), suffix=rate_suffix))
        else:
            cells.append(report.totals_label if index == 0 else "")
    return cells


def build_export_table(
    *,
    report: ReportDefinition,
    rows: Sequence[SummaryRow],
    totals: TotalsRow,
    rate_suffix: str = "",
) -> ExportTable:
    """Lay out rows and totals in the report's column order.

    Rows are emitted in the order given; the exporters never sort.

    Args:
        report: Definition providing the columns and metrics.
        rows: Already-sorted summary rows.
        totals: Totals of the full aggregation.
        rate_suffix: Appended to rate cells ("%" for PDF, nothing for CSV).

    Returns:
        ExportTable: Formatted cells ready for serialization.
    """
    return ExportTable(
        headers=[column.label for column in report.columns],
        body=[row_cells(row, report, rate_suffix=rate_suffix) for row in rows],
        totals=_totals_cells(totals, report, rate_suffix),
        tones=[column.tone for column in report.columns],
        report_name=report.name,
        title=report.title,
    )
