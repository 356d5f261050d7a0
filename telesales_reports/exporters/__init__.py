"""CSV and PDF exporters sharing one formatted table layout."""

from .csv_export import export_csv
from .pdf_export import export_pdf
from .tabular import ExportTable, build_export_table

__all__ = [
    "ExportTable",
    "build_export_table",
    "export_csv",
    "export_pdf",
]
