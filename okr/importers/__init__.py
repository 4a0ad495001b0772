"""Spreadsheet importers: file bytes -> raw rows -> normalized OKR rows."""
from __future__ import annotations

from .base_types import ImportValidationError, RawRow, RowError, UnsupportedFormatError
from .csv_importer import parse_csv
from .xlsx_importer import parse_xlsx

__all__ = [
    "RawRow",
    "RowError",
    "ImportValidationError",
    "UnsupportedFormatError",
    "parse_csv",
    "parse_xlsx",
]
