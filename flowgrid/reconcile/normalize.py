# flowgrid/reconcile/normalize.py
"""
Row Normalizer: RawRow -> IncomingRow | RowRejection.

This is the ONLY place that looks at raw header casing. Everything
downstream works on typed IncomingRow fields.

Hard gate: title, day, start and end must be non-empty. Anything else that
looks wrong (card type, capacity, time format) becomes a warning and the
row still goes through.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..models import CARD_TYPES, DEFAULT_CARD_TYPE, IncomingRow, RowRejection
from ..sources.csv_rows import canonical_column
from ..sources.types import RawRow

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("title", "title"),
    ("day", "day"),
    ("start", "startTime"),
    ("end", "endTime"),
)

# Values written by older versions of the CSV template
CARD_TYPE_ALIASES: dict[str, str] = {
    "simplified": "minimal",
    "photo-only": "photo",
    "full": "detailed",
}

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")
_EMBEDDED_TIME_RE = re.compile(r"[T\s](\d{1,2}):(\d{2})")
_LEADING_INT_RE = re.compile(r"^\s*(-?\d+)")


@dataclass
class NormalizationResult:
    rows: List[IncomingRow] = field(default_factory=list)
    rejected: List[RowRejection] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def clean_text(value: Any) -> str:
    """Trim and strip stray wrapping quotes left over by naive CSV writers."""
    if value is None:
        return ""
    s = str(value).strip()
    if len(s) >= 2 and s[0] == '"' and s[-1] == '"':
        s = s[1:-1].strip()
    return s


def optional_text(value: Any) -> Optional[str]:
    s = clean_text(value)
    return s or None


def split_list(value: Any) -> List[str]:
    """Comma-separated cell -> ordered list of trimmed, non-empty entries."""
    if isinstance(value, (list, tuple)):
        parts = [clean_text(v) for v in value]
    else:
        parts = [p.strip() for p in clean_text(value).split(",")]
    return [p for p in parts if p]


def canonical_card_type(value: Any) -> Tuple[str, bool]:
    """
    Returns (card_type, recognised).
    Empty counts as recognised: absence silently means the default.
    """
    s = clean_text(value).lower()
    if not s:
        return DEFAULT_CARD_TYPE, True
    s = CARD_TYPE_ALIASES.get(s, s)
    if s in CARD_TYPES:
        return s, True
    return DEFAULT_CARD_TYPE, False


def parse_capacity(value: Any) -> Tuple[Optional[int], bool]:
    """
    Returns (capacity, acceptable). None capacity means unlimited.
    Leading digits win ("20 people" -> 20), like parseInt.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return (value, True) if value >= 0 else (None, False)
    s = clean_text(value)
    if not s:
        return None, True
    m = _LEADING_INT_RE.match(s)
    if not m:
        return None, False
    n = int(m.group(1))
    if n < 0:
        return None, False
    return n, True


def normalize_time(value: Any) -> Tuple[str, bool]:
    """
    '9:00' -> '09:00', '2025-06-01T09:00' -> '09:00', '09:00:00' -> '09:00'.
    Returns (time, recognised). Unrecognised input is kept as typed.
    """
    s = clean_text(value)
    m = _HHMM_RE.match(s)
    if not m:
        m = _EMBEDDED_TIME_RE.search(s)
    if not m:
        return s, False
    hh, mm = int(m.group(1)), int(m.group(2))
    if hh > 23 or mm > 59:
        return s, False
    return f"{hh:02d}:{mm:02d}", True


def resolve_day(
    value: Any,
    festival_start: Optional[date] = None,
    festival_end: Optional[date] = None,
) -> str:
    """
    Keep ISO dates. When the festival window is known, turn a weekday name
    into the first matching date inside it (or the first one after start).
    Otherwise keep the day as typed.
    """
    s = clean_text(value)
    if _ISO_DATE_RE.match(s):
        return s
    if len(s) > 10 and _ISO_DATE_RE.match(s[:10]) and s[10] in "T ":
        return s[:10]

    if festival_start is None:
        return s
    try:
        idx = WEEKDAYS.index(s.lower())
    except ValueError:
        return s

    end = festival_end or festival_start
    cur = festival_start
    while cur <= end:
        if cur.weekday() == idx:
            return cur.isoformat()
        cur += timedelta(days=1)

    offset = (idx - festival_start.weekday()) % 7
    return (festival_start + timedelta(days=offset)).isoformat()


def canonical_values(values: Mapping[str, Any]) -> dict[str, Any]:
    """Re-key a raw row by canonical column. First non-empty cell wins on clashes."""
    out: dict[str, Any] = {}
    for key, value in values.items():
        col = canonical_column(key)
        if col is None:
            continue
        if col in out and clean_text(out[col]):
            continue
        out[col] = value
    return out


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def normalize_row(
    raw: RawRow,
    *,
    festival_start: Optional[date] = None,
    festival_end: Optional[date] = None,
) -> Tuple[Optional[IncomingRow], Optional[RowRejection], List[str]]:
    """
    Normalize one row. Exactly one of (row, rejection) is set.
    Warnings are returned for both outcomes.
    """
    n = raw.row_number
    vals = canonical_values(raw.values)
    warnings: List[str] = []

    missing = [label for col, label in REQUIRED_FIELDS if not clean_text(vals.get(col))]
    if missing:
        noun = "field" if len(missing) == 1 else "fields"
        rejection = RowRejection(
            row_number=n,
            missing_fields=missing,
            message=f"row {n}: missing {noun} {', '.join(missing)}",
        )
        return None, rejection, warnings

    card_raw = vals.get("cardType")
    card_type, card_ok = canonical_card_type(card_raw)
    if not card_ok:
        warnings.append(
            f"row {n}: invalid cardType {clean_text(card_raw)!r}, using {DEFAULT_CARD_TYPE!r}"
        )

    capacity, cap_ok = parse_capacity(vals.get("capacity"))
    if not cap_ok:
        warnings.append(
            f"row {n}: capacity {clean_text(vals.get('capacity'))!r} is not a number >= 0, treating as unlimited"
        )

    start, start_ok = normalize_time(vals.get("start"))
    end, end_ok = normalize_time(vals.get("end"))
    for label, t, ok in (("startTime", start, start_ok), ("endTime", end, end_ok)):
        if not ok:
            warnings.append(f"row {n}: {label} {t!r} is not HH:MM")

    row = IncomingRow(
        row_number=n,
        title=clean_text(vals.get("title")),
        day=resolve_day(vals.get("day"), festival_start, festival_end),
        start_time=start,
        end_time=end,
        level=optional_text(vals.get("level")),
        capacity=capacity,
        types=split_list(vals.get("types")),
        card_type=card_type,
        teachers=split_list(vals.get("teachers")),
        location=optional_text(vals.get("location")),
        description=optional_text(vals.get("description")),
        prerequisites=optional_text(vals.get("prerequisites")),
    )
    return row, None, warnings


def normalize_rows(
    raws: Sequence[RawRow | Mapping[str, Any]],
    *,
    festival_start: Optional[date] = None,
    festival_end: Optional[date] = None,
) -> NormalizationResult:
    """
    Normalize rows in order. Plain mappings are accepted too and numbered
    as if they followed a header row (first mapping = row 2).
    """
    result = NormalizationResult()
    for i, raw in enumerate(raws):
        if not isinstance(raw, RawRow):
            raw = RawRow(row_number=i + 2, values={str(k): v for k, v in raw.items()})

        row, rejection, warnings = normalize_row(
            raw, festival_start=festival_start, festival_end=festival_end
        )
        result.warnings.extend(warnings)
        if rejection is not None:
            logger.info("[normalize] REJECT %s", rejection.message)
            result.rejected.append(rejection)
            continue
        result.rows.append(row)  # type: ignore[arg-type]

    if result.warnings:
        logger.info("[normalize] %d warnings", len(result.warnings))
    return result
