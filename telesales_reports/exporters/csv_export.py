"""CSV serialization of an export table."""

import polars as pl
from loguru import logger

from ..constants import LogMessage
from ..exceptions import EmptyExportError
from ..models import ExportDocument, ExportLabels
from .tabular import ExportTable

CSV_MEDIA_TYPE = "text/csv"


def export_csv(*, table: ExportTable, labels: ExportLabels) -> ExportDocument:
    """Serialize a table to UTF-8 CSV bytes.

    The first line holds the column labels and the last line the totals.
    Fields containing commas, quotes or newlines are quoted.

    Args:
        table: Formatted rows and totals.
        labels: Title, period and generation time of the export.

    Returns:
        ExportDocument: The CSV document.

    Raises:
        EmptyExportError: If the table has no rows.
    """
    if table.is_empty:
        logger.warning(LogMessage.NOTHING_TO_EXPORT)
        raise EmptyExportError(LogMessage.NOTHING_TO_EXPORT)

    df = pl.DataFrame(
        table.body + [table.totals],
        schema=[(header, pl.Utf8) for header in table.headers],
        orient="row",
    )
    text = df.write_csv()

    document = ExportDocument(
        filename=ExportDocument.build_filename(labels.report_name, labels.generated_at, "csv"),
        media_type=CSV_MEDIA_TYPE,
        content=text.encode("utf-8"),
        labels=labels,
    )
    logger.debug(f"Serialized {len(table.body)} rows to CSV")
    return document
