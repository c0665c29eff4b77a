# flowgrid/reconcile/apply.py
"""
Apply a reviewed MergePlan to the session store.

Run states:
  previewed -> awaiting_decisions -> confirmed -> applying -> applied | failed

Hard rules:
  - No write happens while any changed/suggested entry lacks a decision.
  - Updates never touch id, display_order or booking columns.
  - A session with bookings is never deleted. The booking count is re-read
    right before each delete; the preview's count is not trusted.
  - The first failing write aborts the batch. Earlier writes stay (no
    transaction); the result says "N of M operations completed".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional

from ..db.session_store import SessionStore, next_display_order, session_row_from_incoming
from ..errors import DecisionIncomplete, InvalidDecision, WriteFailure
from ..models import IncomingRow, StoredSession
from .plan import DECISIONS, MergePlan

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    PREVIEWED = "previewed"
    AWAITING_DECISIONS = "awaiting_decisions"
    CONFIRMED = "confirmed"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"


OP_UPDATE = "update"
OP_CREATE = "create"
OP_DELETE = "delete"


@dataclass
class Operation:
    kind: str
    row: Optional[IncomingRow] = None
    session: Optional[StoredSession] = None

    def describe(self) -> str:
        if self.kind == OP_CREATE and self.row is not None:
            return f"create row {self.row.row_number} {self.row.title!r}"
        if self.kind == OP_UPDATE and self.session is not None and self.row is not None:
            return f"update session {self.session.id} from row {self.row.row_number}"
        if self.session is not None:
            return f"{self.kind} session {self.session.id} {self.session.title!r}"
        return self.kind


@dataclass
class ApplyResult:
    state: RunState
    total: int = 0
    completed: int = 0

    created: int = 0
    updated: int = 0
    deleted: int = 0
    kept: int = 0
    skipped: int = 0
    unchanged: int = 0

    created_ids: List[str] = field(default_factory=list)
    completed_operations: List[str] = field(default_factory=list)
    guarded_session_ids: List[str] = field(default_factory=list)
    failed_operation: Optional[str] = None
    error: Optional[str] = None
    _cause: Optional[BaseException] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.state == RunState.APPLIED

    @property
    def message(self) -> str:
        progress = f"{self.completed} of {self.total} operations completed"
        if self.ok:
            return progress
        return f"{progress}; failed at {self.failed_operation}: {self.error}"

    def raise_for_failure(self) -> None:
        if self.state == RunState.FAILED:
            raise WriteFailure(
                completed=self.completed,
                total=self.total,
                operation=self.failed_operation or "",
                cause=self._cause,
            )

    def as_dict(self) -> Dict[str, object]:
        return {
            "state": self.state.value,
            "ok": self.ok,
            "message": self.message,
            "total": self.total,
            "completed": self.completed,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "kept": self.kept,
            "skipped": self.skipped,
            "unchanged": self.unchanged,
            "createdIds": list(self.created_ids),
            "completedOperations": list(self.completed_operations),
            "guardedSessionIds": list(self.guarded_session_ids),
            "failedOperation": self.failed_operation,
            "error": self.error,
        }


class ImportRun:
    """One reconciliation run from a previewed plan to applied/failed."""

    def __init__(self, plan: MergePlan, decisions: Optional[Mapping[str, str]] = None) -> None:
        self.plan = plan
        self.decisions: Dict[str, str] = {}
        self.state = RunState.PREVIEWED
        self._valid_keys = set(plan.decision_keys())
        self.submit_decisions(decisions or {})

    # -----------------------------------------------------------------------
    # Decisions
    # -----------------------------------------------------------------------

    def submit_decisions(self, decisions: Mapping[str, str]) -> RunState:
        if self.state in (RunState.APPLYING, RunState.APPLIED, RunState.FAILED):
            raise RuntimeError(f"cannot change decisions in state {self.state.value}")

        for key, value in decisions.items():
            if key not in self._valid_keys:
                raise InvalidDecision(f"no changed or suggested entry with key {key!r}")
            decision = (value or "").strip().lower()
            if not decision:
                # not chosen yet: the entry stays pending
                self.decisions.pop(key, None)
                continue
            if decision not in DECISIONS:
                raise InvalidDecision(
                    f"decision for {key!r} must be one of {sorted(DECISIONS)}, got {value!r}"
                )
            self.decisions[key] = decision

        self.state = RunState.AWAITING_DECISIONS if self.pending() else RunState.CONFIRMED
        return self.state

    def pending(self) -> List[str]:
        return self.plan.pending_decisions(self.decisions)

    # -----------------------------------------------------------------------
    # Operation planning (pure)
    # -----------------------------------------------------------------------

    def operations(self) -> tuple[List[Operation], ApplyResult]:
        """
        Resolve decisions into an ordered write list: updates, creates,
        deletes. No-op outcomes are tallied on the returned (partial) result.
        """
        plan = self.plan
        tally = ApplyResult(state=self.state, unchanged=len(plan.exact_matches_unchanged))
        tally.kept = len(plan.to_keep)

        updates: List[Operation] = []
        creates: List[Operation] = [Operation(OP_CREATE, row=r) for r in plan.to_create]
        deletes: List[Operation] = []

        if plan.mode == "replace":
            deletes.extend(Operation(OP_DELETE, session=s) for s in plan.to_delete)
        elif plan.to_delete:
            logger.warning(
                "[apply] merge-mode plan carries %d deletes; ignoring them", len(plan.to_delete)
            )
            tally.kept += len(plan.to_delete)

        pairs = [(m.decision_key, m.incoming, m.stored) for m in plan.exact_matches_with_changes]
        pairs += [(m.decision_key, m.incoming, m.stored) for m in plan.suggested_matches]

        for key, row, stored in pairs:
            decision = self.decisions.get(key)
            if decision == "update":
                updates.append(Operation(OP_UPDATE, row=row, session=stored))
            elif decision == "create":
                creates.append(Operation(OP_CREATE, row=row))
                # released stored session: a delete candidate only in replace mode
                if plan.mode == "replace" and not stored.occupied:
                    deletes.append(Operation(OP_DELETE, session=stored))
                else:
                    tally.kept += 1
            else:
                tally.skipped += 1

        updates.sort(key=lambda op: op.row.row_number)  # type: ignore[union-attr]
        creates.sort(key=lambda op: op.row.row_number)  # type: ignore[union-attr]

        ops = updates + creates + deletes
        tally.total = len(ops)
        return ops, tally

    # -----------------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------------

    def apply(self, store: SessionStore) -> ApplyResult:
        if self.state in (RunState.APPLYING, RunState.APPLIED, RunState.FAILED):
            raise RuntimeError(f"run already {self.state.value}")

        pending = self.pending()
        if pending:
            self.state = RunState.AWAITING_DECISIONS
            raise DecisionIncomplete(pending)

        if not self.plan.festival_id:
            raise ValueError("plan has no festival_id; cannot apply")

        ops, result = self.operations()
        self.state = RunState.APPLYING
        logger.info(
            "[apply] festival_id=%s mode=%s operations=%d",
            self.plan.festival_id, self.plan.mode, result.total,
        )

        # slot occupancy for display_order of new sessions
        slots: List[StoredSession] = list(self.plan.stored_sessions())

        for op in ops:
            try:
                self._execute(store, op, result, slots)
            except Exception as e:
                self.state = RunState.FAILED
                result.state = RunState.FAILED
                result.failed_operation = op.describe()
                result.error = repr(e)
                result._cause = e
                logger.error(
                    "[apply] FAILED %s after %d of %d operations: %r",
                    op.describe(), result.completed, result.total, e,
                )
                return result

            result.completed += 1
            result.completed_operations.append(op.describe())

        self.state = RunState.APPLIED
        result.state = RunState.APPLIED
        logger.info("[apply] %s", result.message)
        return result

    def _execute(
        self,
        store: SessionStore,
        op: Operation,
        result: ApplyResult,
        slots: List[StoredSession],
    ) -> None:
        festival_id = self.plan.festival_id or ""

        if op.kind == OP_UPDATE:
            if op.row is None or op.session is None:
                raise ValueError(f"update needs a row and a session: {op.describe()}")
            store.update_session(op.session.id, session_row_from_incoming(op.row))
            result.updated += 1
            for i, s in enumerate(slots):
                if s.id == op.session.id:
                    slots[i] = s.model_copy(
                        update={"day": op.row.day, "start_time": op.row.start_time}
                    )
            return

        if op.kind == OP_CREATE:
            if op.row is None:
                raise ValueError(f"create needs a row: {op.describe()}")
            fields = session_row_from_incoming(op.row)
            order = next_display_order(slots, op.row.day, op.row.start_time)
            fields["display_order"] = order
            new_id = store.create_session(festival_id, fields)
            result.created += 1
            result.created_ids.append(new_id)
            slots.append(
                StoredSession(
                    id=new_id,
                    title=op.row.title,
                    day=op.row.day,
                    start_time=op.row.start_time,
                    end_time=op.row.end_time,
                    display_order=order,
                )
            )
            return

        if op.kind == OP_DELETE:
            if op.session is None:
                raise ValueError(f"delete needs a session: {op.describe()}")
            bookings = store.booking_count(op.session.id)
            if bookings > 0:
                logger.warning(
                    "[apply] booking guard: session %s %r has %d booking(s) now; not deleting",
                    op.session.id, op.session.title, bookings,
                )
                result.guarded_session_ids.append(op.session.id)
                result.kept += 1
                return
            store.delete_session(op.session.id)
            result.deleted += 1
            return

        raise ValueError(f"unknown operation {op.kind!r}")


def apply_merge_plan(
    store: SessionStore,
    plan: MergePlan,
    decisions: Optional[Mapping[str, str]] = None,
) -> ApplyResult:
    """Validate decisions and apply *plan* in one call. See ImportRun."""
    return ImportRun(plan, decisions).apply(store)
