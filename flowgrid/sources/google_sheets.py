# flowgrid/sources/google_sheets.py
"""
Publicly shared Google Sheets as a schedule source.

The sheet is read through its CSV export, so it must be shared as
"Anyone with the link can view". No Google API credentials are involved.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import requests

from ..errors import SheetAccessError
from .csv_rows import parse_csv_rows
from .http import http_get
from .types import RawRow

logger = logging.getLogger(__name__)

_SHEET_ID_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")
_GID_RE = re.compile(r"[#?&]gid=(\d+)")

EXPORT_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv"


@dataclass(frozen=True)
class SheetValidation:
    is_valid: bool
    sheet_id: Optional[str] = None
    gid: Optional[str] = None
    error: Optional[str] = None


def extract_sheet_id(url: str | None) -> Optional[str]:
    if not url:
        return None
    m = _SHEET_ID_RE.search(url)
    return m.group(1) if m else None


def extract_gid(url: str | None) -> Optional[str]:
    """Tab id from '#gid=123' or '?gid=123'. None means the first tab."""
    if not url:
        return None
    m = _GID_RE.search(url)
    return m.group(1) if m else None


def export_csv_url(sheet_id: str, gid: Optional[str] = None) -> str:
    url = EXPORT_URL.format(sheet_id=sheet_id)
    if gid:
        url += f"&gid={gid}"
    return url


def _status_error(status_code: int) -> str:
    if status_code == 404:
        return "Sheet not found. Please check the URL is correct."
    if status_code in (401, 403):
        return (
            "Sheet is not publicly accessible. Please share the sheet with "
            '"Anyone with the link" can view.'
        )
    return f"Unable to access sheet (HTTP {status_code}). Please ensure it's publicly shared."


def validate_sheet_url(url: str) -> SheetValidation:
    """
    Check that *url* points at a sheet we can actually read.
    Never raises: every failure comes back as is_valid=False + error.
    """
    sheet_id = extract_sheet_id(url)
    if not sheet_id:
        return SheetValidation(
            is_valid=False,
            error=(
                "Invalid Google Sheets URL. Please provide a valid URL like: "
                "https://docs.google.com/spreadsheets/d/YOUR_SHEET_ID/edit"
            ),
        )

    gid = extract_gid(url)
    try:
        res = http_get(export_csv_url(sheet_id, gid))
    except requests.RequestException as e:
        logger.warning("[google_sheets] network error for sheet_id=%s: %r", sheet_id, e)
        return SheetValidation(
            is_valid=False,
            sheet_id=sheet_id,
            gid=gid,
            error="Network error. Please check your internet connection and try again.",
        )

    if not res.ok:
        return SheetValidation(
            is_valid=False, sheet_id=sheet_id, gid=gid, error=_status_error(res.status_code)
        )

    return SheetValidation(is_valid=True, sheet_id=sheet_id, gid=gid)


def fetch_sheet_rows(url: str) -> List[RawRow]:
    """
    Fetch a public sheet and parse it into RawRows.
    Raises SheetAccessError on a bad URL or HTTP failure; CsvFormatError
    (from the parser) when the sheet lacks the required columns.
    """
    sheet_id = extract_sheet_id(url)
    if not sheet_id:
        raise SheetAccessError(f"Invalid Google Sheets URL: {url!r}")

    try:
        res = http_get(export_csv_url(sheet_id, extract_gid(url)))
    except requests.RequestException as e:
        raise SheetAccessError(f"Failed to fetch sheet data: {e}") from e

    if not res.ok:
        raise SheetAccessError(_status_error(res.status_code))

    rows = parse_csv_rows(res.text)
    logger.info("[google_sheets] fetched sheet_id=%s rows=%d", sheet_id, len(rows))
    return rows
