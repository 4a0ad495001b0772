from __future__ import annotations

import csv
from io import StringIO

from .base_types import ParsedSheet, RawRow, UnsupportedFormatError

__all__ = ["parse_csv", "decode_csv"]


def _strip(s: str) -> str:
    return s.strip("\ufeff ").strip()


def decode_csv(data: bytes) -> str:
    """UTF-8 (with or without BOM) first, then Latin-1 as exported by older Excel versions."""
    for encoding in ("utf-8-sig", "cp1252"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise UnsupportedFormatError("CSV file is not valid UTF-8 or Windows-1252 text")


def parse_csv(text: str) -> ParsedSheet:
    """Parse CSV text into raw rows keyed by lowercased header.

    - Delimiter is sniffed between comma and semicolon (Spanish-locale exports use ``;``).
    - Fully blank rows are skipped; short rows are padded, long rows truncated.
    """
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    if not normalized.strip():
        return ParsedSheet(headers=[], rows=[])
    first_line = normalized.split("\n", 1)[0]
    delimiter = ";" if first_line.count(";") > first_line.count(",") else ","
    reader = csv.reader(StringIO(normalized), delimiter=delimiter)

    try:
        headers = [_strip(h).lower() for h in next(reader)]
    except StopIteration:
        return ParsedSheet(headers=[], rows=[])

    rows: list[RawRow] = []
    for raw_row in reader:
        values = [_strip(cell) for cell in raw_row[: len(headers)]]
        if all(v == "" for v in values):
            continue
        values.extend("" for _ in range(len(headers) - len(values)))
        rows.append(dict(zip(headers, values, strict=True)))
    return ParsedSheet(headers=headers, rows=rows)
