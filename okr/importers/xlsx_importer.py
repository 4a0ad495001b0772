from __future__ import annotations

from datetime import date, datetime
from io import BytesIO
from typing import Any
from zipfile import BadZipFile

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from .base_types import ParsedSheet, RawRow, UnsupportedFormatError

__all__ = ["parse_xlsx"]


def parse_xlsx(data: bytes) -> ParsedSheet:
    """Parse the first sheet of an XLSX workbook into raw rows.

    Same rules as the CSV importer: first row is the header, blank rows are
    skipped, short rows padded. Date cells come back as ISO dates.
    """
    try:
        wb = openpyxl.load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, OSError, KeyError, ValueError) as e:
        raise UnsupportedFormatError("file is not a readable XLSX workbook") from e
    try:
        if not wb.sheetnames:
            return ParsedSheet(headers=[], rows=[])
        rows_iter = wb[wb.sheetnames[0]].iter_rows(values_only=True)
        try:
            headers = [_cell_to_str(c).lower() for c in next(rows_iter)]
        except StopIteration:
            return ParsedSheet(headers=[], rows=[])
        # Trailing empty header cells are formatting noise
        while headers and headers[-1] == "":
            headers.pop()

        rows: list[RawRow] = []
        for r in rows_iter:
            values = [_cell_to_str(c) for c in r[: len(headers)]]
            if all(v == "" for v in values):
                continue
            values.extend("" for _ in range(len(headers) - len(values)))
            rows.append(dict(zip(headers, values, strict=True)))
        return ParsedSheet(headers=headers, rows=rows)
    finally:
        wb.close()


def _cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip().strip("\ufeff")
