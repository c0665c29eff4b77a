# flowgrid/pipeline.py
"""
Import flow orchestration: source -> rows -> plan -> (human) -> apply.

Preview and apply are two independent calls. The plan returned by
preview_import() is what the caller sends back to apply_import(),
together with the human decisions.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, List, Mapping, Optional, Sequence

from .db.session_store import SessionStore, reorder_payload
from .export import sessions_to_csv
from .reconcile.apply import ApplyResult, ImportRun
from .reconcile.engine import build_merge_plan
from .reconcile.normalize import normalize_rows
from .reconcile.plan import MergePlan, Mode, summary_counts
from .sources.csv_rows import parse_csv_rows
from .sources.google_sheets import fetch_sheet_rows
from .sources.types import RawRow

logger = logging.getLogger(__name__)


def load_rows(
    *,
    csv_content: bytes | str | None = None,
    sheet_url: str | None = None,
) -> List[RawRow]:
    """Exactly one source must be given."""
    if (csv_content is None) == (sheet_url is None):
        raise ValueError("provide exactly one of csv_content or sheet_url")
    if sheet_url is not None:
        return fetch_sheet_rows(sheet_url)
    return parse_csv_rows(csv_content)  # type: ignore[arg-type]


def preview_import(
    store: SessionStore,
    festival_id: str,
    rows: Sequence[RawRow | Mapping[str, Any]],
    *,
    mode: Mode = "merge",
    festival_start: Optional[date] = None,
    festival_end: Optional[date] = None,
) -> MergePlan:
    normalized = normalize_rows(rows, festival_start=festival_start, festival_end=festival_end)
    stored = store.list_sessions(festival_id)

    plan = build_merge_plan(
        normalized.rows,
        stored,
        mode=mode,
        festival_id=festival_id,
        rejected=normalized.rejected,
        warnings=normalized.warnings,
    )

    counts = summary_counts(plan.summary())
    # -----------------------------------------------------------------------
    # Deterministic, grep-friendly summary line.
    # grep '[import][summary]' /tmp/import.log
    # -----------------------------------------------------------------------
    print(
        f"[import][summary] step=preview festival_id={festival_id} mode={mode}"
        f" incoming={len(rows)} stored={len(stored)}"
        + "".join(f" {k}={v}" for k, v in counts.items())
        + f" warnings={len(plan.warnings)}"
    )
    return plan


def apply_import(
    store: SessionStore,
    plan: MergePlan | Mapping[str, Any],
    decisions: Optional[Mapping[str, str]] = None,
) -> ApplyResult:
    """
    *plan* may be the MergePlan itself or its JSON form as sent back by the
    client (camelCase keys).
    """
    if not isinstance(plan, MergePlan):
        plan = MergePlan.model_validate(plan)

    result = ImportRun(plan, decisions).apply(store)

    print(
        f"[import][summary] step=apply festival_id={plan.festival_id} mode={plan.mode}"
        f" state={result.state.value}"
        f" completed={result.completed} total={result.total}"
        f" created={result.created} updated={result.updated}"
        f" deleted={result.deleted} kept={result.kept}"
        f" skipped={result.skipped} unchanged={result.unchanged}"
        f" guarded={len(result.guarded_session_ids)}"
    )
    return result


def export_sessions(store: SessionStore, festival_id: str) -> str:
    return sessions_to_csv(store.list_sessions(festival_id))


def reorder_sessions(store: SessionStore, items: Sequence[Mapping[str, Any]]) -> int:
    """Drag-and-drop reorder. Returns how many sessions were updated."""
    orders = reorder_payload(items)
    store.set_display_order(orders)
    return len(orders)
