"""File exports (CSV, Excel, HTML) for reports and tables."""

from keystone.exporters.export import (
    EXPORT_FORMATS,
    ExportedFile,
    UnsupportedFormat,
    export_report,
    export_table,
    flatten_report,
)

__all__ = [
    "EXPORT_FORMATS",
    "ExportedFile",
    "UnsupportedFormat",
    "export_report",
    "export_table",
    "flatten_report",
]
