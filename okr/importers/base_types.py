from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict

__all__ = [
    "RawRow",
    "ParsedSheet",
    "RowError",
    "ImportValidationError",
    "UnsupportedFormatError",
]


# Header (lowercased, stripped) -> raw string value
RawRow = dict[str, str]


@dataclass(slots=True)
class ParsedSheet:
    headers: list[str]
    rows: list[RawRow]


class RowError(TypedDict):
    """One rejected row. `row` is the spreadsheet line number (header is line 1)."""

    row: int
    field: str | None
    message: str


class ImportValidationError(Exception):
    """The file as a whole cannot be imported (no rows, missing columns, too many rows)."""

    def __init__(self, message: str, errors: list[RowError] | None = None):
        super().__init__(message)
        self.errors = errors or []


class UnsupportedFormatError(Exception):
    """Raised for files that are neither CSV nor XLSX or cannot be decoded."""
