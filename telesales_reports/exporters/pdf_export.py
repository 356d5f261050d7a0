"""PDF serialization of an export table."""

from io import BytesIO
from xml.sax.saxutils import escape

from loguru import logger
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    Flowable,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from ..constants import GENERATED_AT_FORMAT, ColumnTone, LogMessage
from ..exceptions import EmptyExportError
from ..models import ExportDocument, ExportLabels
from .tabular import ExportTable

PDF_MEDIA_TYPE = "application/pdf"

TITLE_COLOR = colors.HexColor("#3b82f6")
HEADER_FILL = colors.HexColor("#2980b9")
STRIPE_FILL = colors.HexColor("#f5f7fa")
TOTALS_FILL = colors.HexColor("#34495e")

TONE_COLORS = {
    ColumnTone.SUCCESS: colors.HexColor("#27ae60"),
    ColumnTone.DANGER: colors.HexColor("#e74c3c"),
    ColumnTone.WARNING: colors.HexColor("#f39c12"),
    ColumnTone.INFO: colors.HexColor("#2980b9"),
}


def _header_block(labels: ExportLabels) -> list[Flowable]:
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle",
        parent=styles["Heading1"],
        fontSize=20,
        textColor=TITLE_COLOR,
        spaceAfter=8,
    )
    scope = labels.period
    if labels.filters:
        scope = f"{scope} | {labels.filters}"

    return [
        Paragraph(escape(labels.title), title_style),
        Paragraph(escape(scope), styles["Normal"]),
        Paragraph(
            f"Generated: {labels.generated_at.strftime(GENERATED_AT_FORMAT)}",
            styles["Normal"],
        ),
        Spacer(1, 0.25 * inch),
    ]


def _table_style(table: ExportTable) -> TableStyle:
    last_body_row = len(table.body)
    commands = [
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_FILL),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
        ("ROWBACKGROUNDS", (0, 1), (-1, last_body_row), [colors.white, STRIPE_FILL]),
        # Totals row
        ("BACKGROUND", (0, -1), (-1, -1), TOTALS_FILL),
        ("TEXTCOLOR", (0, -1), (-1, -1), colors.white),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
    ]
    # Column tones apply to body rows only, by column position
    for index, tone in enumerate(table.tones):
        color = TONE_COLORS.get(tone)
        if color is not None:
            commands.append(("TEXTCOLOR", (index, 1), (index, last_body_row), color))
    return TableStyle(commands)


def export_pdf(*, table: ExportTable, labels: ExportLabels) -> ExportDocument:
    """Render a table as a landscape PDF document.

    The header row repeats on every page and the totals row is printed once,
    bold on a dark fill, after the last summary row.

    Args:
        table: Formatted rows and totals, in display order.
        labels: Title, period, filter description and generation time.

    Returns:
        ExportDocument: The PDF document.

    Raises:
        EmptyExportError: If the table has no rows.
    """
    if table.is_empty:
        logger.warning(LogMessage.NOTHING_TO_EXPORT)
        raise EmptyExportError(LogMessage.NOTHING_TO_EXPORT)

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=0.5 * inch,
        leftMargin=0.5 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
        title=labels.title,
    )

    data = [table.headers] + table.body + [table.totals]
    pdf_table = Table(data, repeatRows=1)
    pdf_table.setStyle(_table_style(table))

    story: list[Flowable] = _header_block(labels)
    story.append(pdf_table)
    doc.build(story)

    logger.debug(f"Rendered {len(table.body)} rows to PDF")
    return ExportDocument(
        filename=ExportDocument.build_filename(labels.report_name, labels.generated_at, "pdf"),
        media_type=PDF_MEDIA_TYPE,
        content=buffer.getvalue(),
        labels=labels,
    )
