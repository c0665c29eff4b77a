# flowgrid/sources/csv_rows.py
"""
CSV → ordered RawRow list.

Handles the two shapes organizers actually upload:
  - Excel exports with a UTF-8 BOM and ';' as delimiter
  - Google Sheets / plain CSV with ','
Quoted fields (including embedded delimiters and newlines) are honoured.
"""
from __future__ import annotations

import csv
import io
import logging
import re
from typing import List, Sequence

from ..errors import CsvFormatError
from .types import RawRow

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: tuple[str, ...] = ("title", "day", "start", "end")

# header key -> canonical column (after lowercasing + stripping " _-")
HEADER_ALIASES: dict[str, str] = {
    "title": "title",
    "day": "day",
    "date": "day",
    "start": "start",
    "starttime": "start",
    "end": "end",
    "endtime": "end",
    "level": "level",
    "capacity": "capacity",
    "types": "types",
    "type": "types",
    "styles": "types",
    "style": "types",
    "cardtype": "cardType",
    "teachers": "teachers",
    "teacher": "teachers",
    "location": "location",
    "description": "description",
    "prerequisites": "prerequisites",
    "id": "id",
}

_KEY_NOISE_RE = re.compile(r"[\s_\-]+")


def canonical_column(header: str | None) -> str | None:
    """Map a raw header cell to its canonical column name, or None if unknown."""
    if not header:
        return None
    key = _KEY_NOISE_RE.sub("", header.strip().lower())
    return HEADER_ALIASES.get(key)


def detect_delimiter(first_line: str) -> str:
    return ";" if ";" in first_line else ","


def _decode(content: bytes | str) -> str:
    if isinstance(content, bytes):
        return content.decode("utf-8-sig")
    return content.lstrip("\ufeff")


def missing_required_columns(headers: Sequence[str]) -> List[str]:
    present = {canonical_column(h) for h in headers}
    return [c for c in REQUIRED_COLUMNS if c not in present]


def parse_csv_rows(content: bytes | str) -> List[RawRow]:
    """
    Parse an uploaded schedule into RawRows in file order.

    Raises CsvFormatError when there is no header, no data row, or a
    required column is missing. Row-level problems are NOT raised here:
    they are the normalizer's job.
    """
    text = _decode(content)
    if not text.strip():
        raise CsvFormatError("CSV file is empty")

    first_line = text.splitlines()[0]
    delimiter = detect_delimiter(first_line)
    logger.debug("[csv_rows] detected delimiter=%r", delimiter)

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    headers = [h.strip() for h in next(reader)]
    missing = missing_required_columns(headers)
    if missing:
        raise CsvFormatError(
            f"Missing required columns: {', '.join(missing)}. "
            "Required: title, day, start, end"
        )

    # row numbers are the physical line a record starts on; quoted cells
    # may span several lines
    rows: List[RawRow] = []
    next_line = reader.line_num + 1
    for record in reader:
        row_number, next_line = next_line, reader.line_num + 1
        if not any(cell.strip() for cell in record):
            continue
        values = {
            header: (record[i] if i < len(record) else "")
            for i, header in enumerate(headers)
            if header
        }
        rows.append(RawRow(row_number=row_number, values=values))

    if not rows:
        raise CsvFormatError("CSV file must contain headers and at least one row")

    return rows
