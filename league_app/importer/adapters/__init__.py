"""Importer input adapters."""

from __future__ import annotations

from .csv_rows import (
    CSVAdapterError,
    CSVHeaderError,
    CSVRowReader,
    CSVRowStatistics,
    read_csv_rows,
    validate_headers,
)

__all__ = [
    "CSVAdapterError",
    "CSVHeaderError",
    "CSVRowReader",
    "CSVRowStatistics",
    "read_csv_rows",
    "validate_headers",
]
