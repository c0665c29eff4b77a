# flowgrid/reconcile/matching.py
"""
Pure matching helpers for session reconciliation.
No store access, no plan assembly.
"""
from __future__ import annotations

import re
from difflib import SequenceMatcher
from typing import Any, List, Optional, Tuple, Union

from ..models import IncomingRow, StoredSession

SessionLike = Union[IncomingRow, StoredSession]

MatchKey = Tuple[str, str, str]

# (python attribute, label used in diffs) in display order
COMPARABLE_FIELDS: tuple[tuple[str, str], ...] = (
    ("end_time", "endTime"),
    ("level", "level"),
    ("capacity", "capacity"),
    ("types", "types"),
    ("card_type", "cardType"),
    ("teachers", "teachers"),
    ("location", "location"),
    ("description", "description"),
    ("prerequisites", "prerequisites"),
)

# Fields that identify a session; they only differ on suggested matches
IDENTITY_FIELDS: tuple[tuple[str, str], ...] = (
    ("title", "title"),
    ("day", "day"),
    ("start_time", "startTime"),
)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_title(title: Optional[str]) -> str:
    """Lowercase and collapse whitespace. Punctuation is significant."""
    if not title:
        return ""
    return re.sub(r"\s+", " ", title.strip().lower())


def normalize_day(day: Optional[str]) -> str:
    return (day or "").strip().casefold()


def normalize_time(value: Optional[str]) -> str:
    return (value or "").strip()


def match_key(session: SessionLike) -> MatchKey:
    return (
        normalize_day(session.day),
        normalize_time(session.start_time),
        normalize_title(session.title),
    )


# ---------------------------------------------------------------------------
# Field comparison
# ---------------------------------------------------------------------------

def display_value(value: Any) -> str:
    """Render a field for a diff line. None and [] render as ''."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v).strip() for v in value)
    return str(value).strip()


def _comparable(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value]
    return display_value(value)


def format_change(label: str, old: Any, new: Any) -> str:
    return f"{label}: '{display_value(old)}' → '{display_value(new)}'"


def _diff(
    stored: StoredSession,
    incoming: IncomingRow,
    fields: tuple[tuple[str, str], ...],
    *,
    identity: bool = False,
) -> List[str]:
    changes: List[str] = []
    for attr, label in fields:
        old = getattr(stored, attr)
        new = getattr(incoming, attr)
        if identity:
            same = match_key_part(attr, old) == match_key_part(attr, new)
        else:
            same = _comparable(old) == _comparable(new)
        if not same:
            changes.append(format_change(label, old, new))
    return changes


def match_key_part(attr: str, value: Optional[str]) -> str:
    if attr == "title":
        return normalize_title(value)
    if attr == "day":
        return normalize_day(value)
    return normalize_time(value)


def diff_fields(stored: StoredSession, incoming: IncomingRow) -> List[str]:
    """Field-level changes over the comparable fields, as 'field: 'old' → 'new''."""
    return _diff(stored, incoming, COMPARABLE_FIELDS)


def diff_all_fields(stored: StoredSession, incoming: IncomingRow) -> List[str]:
    """Identity fields first (title/day/startTime), then the comparable ones."""
    return _diff(stored, incoming, IDENTITY_FIELDS, identity=True) + diff_fields(stored, incoming)


# ---------------------------------------------------------------------------
# Similarity signals for suggested matches
# ---------------------------------------------------------------------------

def teachers_overlap(a: List[str], b: List[str]) -> bool:
    sa = {t.strip().casefold() for t in a if t.strip()}
    sb = {t.strip().casefold() for t in b if t.strip()}
    return bool(sa & sb)


def title_similarity(a: Optional[str], b: Optional[str]) -> float:
    """0.0–1.0 ratio over normalized titles. Informational only."""
    na, nb = normalize_title(a), normalize_title(b)
    if na == nb:
        return 1.0
    if not na or not nb:
        return 0.0
    return round(SequenceMatcher(None, na, nb).ratio(), 3)
