# flowgrid/reconcile/engine.py
"""
Session reconciliation: incoming rows vs. stored sessions -> MergePlan.

Three passes over small in-memory lists:

  1. exact     (day, startTime, normalized title) lookup
  2. suggested relaxed rules, in priority order, on what is left
  3. assemble  leftovers become toCreate / toKeep / toDelete

Pairing is one-to-one. A stored session claimed by an exact match or
offered as a suggestion leaves the pool, so it can never be paired twice.
Store order decides ties: the first unclaimed session that satisfies a
rule wins.

No writes happen here. See apply.py for execution.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..models import IncomingRow, RowRejection, StoredSession
from .matching import (
    MatchKey,
    diff_all_fields,
    diff_fields,
    match_key,
    normalize_day,
    normalize_time,
    normalize_title,
    teachers_overlap,
    title_similarity,
)
from .plan import MODES, ExactMatch, MergePlan, Mode, SuggestedMatch

logger = logging.getLogger(__name__)

REASON_RENAMED = "same time, different title"
REASON_TIME_SHIFT = "same title, different time"
REASON_RESCHEDULED = "same title and teacher, different day"


# ---------------------------------------------------------------------------
# Exact matcher
# ---------------------------------------------------------------------------

@dataclass
class ExactMatchResult:
    unchanged: List[ExactMatch] = field(default_factory=list)
    with_changes: List[ExactMatch] = field(default_factory=list)
    unmatched: List[IncomingRow] = field(default_factory=list)
    claimed_ids: set[str] = field(default_factory=set)


def match_exact(
    rows: Sequence[IncomingRow],
    stored: Sequence[StoredSession],
) -> ExactMatchResult:
    """
    Pair rows to stored sessions sharing a MatchKey.

    Parallel sessions may share a key (same title in two rooms). Each key
    holds its sessions in store order and every row claims the first one
    still unclaimed.
    """
    by_key: Dict[MatchKey, List[StoredSession]] = {}
    for s in stored:
        by_key.setdefault(match_key(s), []).append(s)

    result = ExactMatchResult()
    for row in rows:
        candidates = by_key.get(match_key(row))
        if not candidates:
            result.unmatched.append(row)
            continue

        hit = candidates.pop(0)
        result.claimed_ids.add(hit.id)
        changes = diff_fields(hit, row)
        pair = ExactMatch(incoming=row, stored=hit, changes=changes)
        if changes:
            result.with_changes.append(pair)
        else:
            result.unchanged.append(pair)

    return result


# ---------------------------------------------------------------------------
# Suggested matcher
# ---------------------------------------------------------------------------

# A rule returns its match reason, or None when it does not apply.
Rule = Callable[[IncomingRow, StoredSession], Optional[str]]

SIMILAR_TITLE_THRESHOLD = 0.7


def _same_time_renamed(row: IncomingRow, s: StoredSession) -> Optional[str]:
    if (
        normalize_day(row.day) == normalize_day(s.day)
        and normalize_time(row.start_time) == normalize_time(s.start_time)
        and normalize_title(row.title) != normalize_title(s.title)
    ):
        return REASON_RENAMED
    return None


def _same_title_time_shift(row: IncomingRow, s: StoredSession) -> Optional[str]:
    if (
        normalize_day(row.day) == normalize_day(s.day)
        and normalize_title(row.title) == normalize_title(s.title)
        and (
            normalize_time(row.start_time) != normalize_time(s.start_time)
            or normalize_time(row.end_time) != normalize_time(s.end_time)
        )
    ):
        return REASON_TIME_SHIFT
    return None


def _same_title_and_teacher(row: IncomingRow, s: StoredSession) -> Optional[str]:
    if (
        normalize_title(row.title) == normalize_title(s.title)
        and teachers_overlap(row.teachers, s.teachers)
    ):
        return REASON_RESCHEDULED
    return None


def _similar_title(row: IncomingRow, s: StoredSession) -> Optional[str]:
    """Typo fixes, possibly combined with a move to another slot."""
    similarity = title_similarity(s.title, row.title)
    if SIMILAR_TITLE_THRESHOLD <= similarity < 1.0:
        return similar_title_reason(similarity)
    return None


def similar_title_reason(similarity: float) -> str:
    return f"Similar title ({round(similarity * 100)}% match)"


SUGGESTION_RULES: tuple[Rule, ...] = (
    _same_time_renamed,
    _same_title_time_shift,
    _same_title_and_teacher,
    _similar_title,
)


def find_suggestion(
    row: IncomingRow,
    pool: Sequence[StoredSession],
) -> Optional[Tuple[str, StoredSession]]:
    """First rule (in priority order) that any pooled session satisfies."""
    for rule in SUGGESTION_RULES:
        for s in pool:
            reason = rule(row, s)
            if reason is not None:
                return reason, s
    return None


def suggest_matches(
    rows: Sequence[IncomingRow],
    pool: Sequence[StoredSession],
) -> Tuple[List[SuggestedMatch], List[IncomingRow]]:
    """
    Returns (suggestions, rows_without_candidate).
    *pool* is not mutated; a working copy shrinks as sessions are suggested.
    """
    remaining = list(pool)
    suggestions: List[SuggestedMatch] = []
    no_candidate: List[IncomingRow] = []

    for row in rows:
        found = find_suggestion(row, remaining)
        if found is None:
            no_candidate.append(row)
            continue

        reason, s = found
        remaining = [x for x in remaining if x.id != s.id]
        suggestions.append(
            SuggestedMatch(
                incoming=row,
                stored=s,
                match_reason=reason,
                changes=diff_all_fields(s, row),
                similarity=title_similarity(s.title, row.title),
            )
        )

    return suggestions, no_candidate


# ---------------------------------------------------------------------------
# Plan assembler
# ---------------------------------------------------------------------------

def partition_unclaimed(
    unclaimed: Sequence[StoredSession],
    mode: Mode,
) -> Tuple[List[StoredSession], List[StoredSession]]:
    """
    (to_keep, to_delete). Booked sessions are always kept; merge mode never
    deletes anything.
    """
    to_keep: List[StoredSession] = []
    to_delete: List[StoredSession] = []
    for s in unclaimed:
        if s.booking_count > 0 or mode == "merge":
            to_keep.append(s)
        else:
            to_delete.append(s)
    return to_keep, to_delete


def build_merge_plan(
    rows: Sequence[IncomingRow],
    stored: Sequence[StoredSession],
    *,
    mode: Mode = "merge",
    festival_id: Optional[str] = None,
    rejected: Sequence[RowRejection] = (),
    warnings: Sequence[str] = (),
) -> MergePlan:
    if mode not in MODES:
        raise ValueError(f"mode must be one of {sorted(MODES)}, got {mode!r}")

    exact = match_exact(rows, stored)

    pool = [s for s in stored if s.id not in exact.claimed_ids]
    suggestions, to_create = suggest_matches(exact.unmatched, pool)

    suggested_ids = {m.stored.id for m in suggestions}
    unclaimed = [s for s in pool if s.id not in suggested_ids]
    to_keep, to_delete = partition_unclaimed(unclaimed, mode)

    plan = MergePlan(
        festival_id=festival_id,
        mode=mode,
        exact_matches_unchanged=exact.unchanged,
        exact_matches_with_changes=exact.with_changes,
        suggested_matches=suggestions,
        to_create=to_create,
        to_keep=to_keep,
        to_delete=to_delete,
        rejected_rows=list(rejected),
        warnings=list(warnings),
    )

    s = plan.summary()
    logger.info(
        "[reconcile] festival_id=%s mode=%s incoming=%d stored=%d "
        "unchanged=%d updated=%d suggested=%d create=%d keep=%d delete=%d rejected=%d",
        festival_id, mode, len(rows), len(stored),
        s.unchanged, s.updated, s.suggested, s.created, s.kept, s.deleted, s.rejected,
    )
    for alert in s.alerts:
        logger.warning("[reconcile] %s", alert)

    return plan
