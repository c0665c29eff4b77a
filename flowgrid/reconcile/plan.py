# flowgrid/reconcile/plan.py
"""
MergePlan and its buckets.

The plan is a plain, fully serialisable value: preview produces it, the
caller shows it to a human, and sends it back (plus decisions) with the
apply request. Nothing is held server-side in between.

Buckets are disjoint. Every stored session and every valid incoming row
lands in exactly one of them; rejected rows live only in rejected_rows.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Mapping, Optional

from pydantic import Field

from ..models import IncomingRow, RowRejection, StoredSession, CamelModel

Mode = Literal["merge", "replace"]
Decision = Literal["update", "create", "skip"]

MODES: frozenset[str] = frozenset({"merge", "replace"})
DECISIONS: frozenset[str] = frozenset({"update", "create", "skip"})


class ExactMatch(CamelModel):
    incoming: IncomingRow
    stored: StoredSession
    changes: List[str] = Field(default_factory=list)

    @property
    def decision_key(self) -> str:
        return self.stored.id


class SuggestedMatch(CamelModel):
    incoming: IncomingRow
    stored: StoredSession
    match_reason: str
    changes: List[str] = Field(default_factory=list)
    similarity: float = 0.0

    @property
    def decision_key(self) -> str:
        return suggested_decision_key(self.incoming.row_number, self.stored.id)


def suggested_decision_key(row_number: int, session_id: str) -> str:
    return f"row-{row_number}|{session_id}"


class PlanSummary(CamelModel):
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    suggested: int = 0
    kept: int = 0
    deleted: int = 0
    rejected: int = 0
    alerts: List[str] = Field(default_factory=list)

    @property
    def destructive(self) -> bool:
        return bool(self.alerts)


class MergePlan(CamelModel):
    festival_id: Optional[str] = None
    mode: Mode = "merge"

    exact_matches_unchanged: List[ExactMatch] = Field(default_factory=list)
    exact_matches_with_changes: List[ExactMatch] = Field(default_factory=list)
    suggested_matches: List[SuggestedMatch] = Field(default_factory=list)
    to_create: List[IncomingRow] = Field(default_factory=list)
    to_keep: List[StoredSession] = Field(default_factory=list)
    to_delete: List[StoredSession] = Field(default_factory=list)

    rejected_rows: List[RowRejection] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    # -----------------------------------------------------------------------
    # Derived views
    # -----------------------------------------------------------------------

    def stored_sessions(self) -> List[StoredSession]:
        """Every stored session the plan knows about, each exactly once."""
        out: List[StoredSession] = []
        out.extend(m.stored for m in self.exact_matches_unchanged)
        out.extend(m.stored for m in self.exact_matches_with_changes)
        out.extend(m.stored for m in self.suggested_matches)
        out.extend(self.to_keep)
        out.extend(self.to_delete)
        return out

    def incoming_rows(self) -> List[IncomingRow]:
        out: List[IncomingRow] = []
        out.extend(m.incoming for m in self.exact_matches_unchanged)
        out.extend(m.incoming for m in self.exact_matches_with_changes)
        out.extend(m.incoming for m in self.suggested_matches)
        out.extend(self.to_create)
        return out

    def decision_keys(self) -> List[str]:
        """Keys that need a human decision before apply, in display order."""
        return [m.decision_key for m in self.exact_matches_with_changes] + [
            m.decision_key for m in self.suggested_matches
        ]

    def pending_decisions(self, decisions: Mapping[str, str]) -> List[str]:
        return [k for k in self.decision_keys() if not decisions.get(k)]

    def summary(self) -> PlanSummary:
        alerts: List[str] = []

        if self.to_delete:
            alerts.append(
                f"replace mode: {len(self.to_delete)} session(s) not in the upload will be deleted"
            )

        booked_changes = [
            m for m in self.exact_matches_with_changes if m.stored.occupied
        ] + [m for m in self.suggested_matches if m.stored.occupied]
        if booked_changes:
            alerts.append(
                f"{len(booked_changes)} session(s) with bookings would be changed by this import: "
                + ", ".join(_label(m.stored) for m in booked_changes)
            )

        booked_kept = [s for s in self.to_keep if s.occupied]
        if self.mode == "replace" and booked_kept:
            alerts.append(
                f"{len(booked_kept)} session(s) with bookings are missing from the upload "
                "and will be kept: " + ", ".join(_label(s) for s in booked_kept)
            )

        return PlanSummary(
            created=len(self.to_create),
            updated=len(self.exact_matches_with_changes),
            unchanged=len(self.exact_matches_unchanged),
            suggested=len(self.suggested_matches),
            kept=len(self.to_keep),
            deleted=len(self.to_delete),
            rejected=len(self.rejected_rows),
            alerts=alerts,
        )


def _label(s: StoredSession) -> str:
    return f"{s.title} ({s.day} {s.start_time}, {s.booking_count} booked)"


def summary_counts(summary: PlanSummary) -> Dict[str, int]:
    return summary.model_dump(exclude={"alerts"})
