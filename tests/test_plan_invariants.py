# tests/test_plan_invariants.py
"""
MergePlan invariants.

Verifies:
  1. Completeness: every stored session / valid row lands in exactly one bucket
  2. Booking protection: booked sessions are never in toDelete, in any mode
  3. Merge mode never deletes
  4. Rejected rows appear only in rejectedRows
  5. Summary alerts for destructive plans
  6. Plan survives a JSON round trip (camelCase wire format)
  7. Idempotence: apply, re-preview the same CSV -> all unchanged,
     including parallel sessions that share title and slot
  8. Export -> re-import yields an all-unchanged plan
"""
from __future__ import annotations

from collections import Counter

import pytest

from flowgrid.models import IncomingRow, RowRejection, StoredSession
from flowgrid.pipeline import apply_import, export_sessions, load_rows, preview_import
from flowgrid.reconcile.engine import build_merge_plan
from flowgrid.reconcile.plan import MergePlan


def _row(n: int, title: str, day: str = "Monday", start: str = "09:00", end: str = "10:00", **kw) -> IncomingRow:
    return IncomingRow(row_number=n, title=title, day=day, start_time=start, end_time=end, **kw)


def _session(
    sid: str, title: str, day: str = "Monday", start: str = "09:00", end: str = "10:00", **kw
) -> StoredSession:
    return StoredSession(
        id=sid, festival_id="fest-1", title=title, day=day, start_time=start, end_time=end, **kw
    )


def _mixed_fixture():
    stored = [
        _session("s-same", "Yoga"),
        _session("s-changed", "Pilates", start="11:00", location="Hall B"),
        _session("s-renamed", "Acro", start="14:00"),
        _session("s-gone", "Breathwork", day="Tuesday"),
        _session("s-booked", "Dance", day="Tuesday", start="18:00", booking_count=3),
    ]
    rows = [
        _row(2, "Yoga"),
        _row(3, "Pilates", start="11:00", location="Hall A"),
        _row(4, "Partner Acro", start="14:00"),
        _row(5, "Sound Bath", day="Wednesday", start="20:00"),
    ]
    return rows, stored


# ===========================================================================
# Part 1: completeness + disjointness
# ===========================================================================

@pytest.mark.parametrize("mode", ["merge", "replace"])
def test_every_stored_session_in_exactly_one_bucket(mode):
    rows, stored = _mixed_fixture()
    plan = build_merge_plan(rows, stored, mode=mode)

    ids = Counter(s.id for s in plan.stored_sessions())
    assert set(ids) == {s.id for s in stored}
    assert all(c == 1 for c in ids.values())

    row_numbers = Counter(r.row_number for r in plan.incoming_rows())
    assert set(row_numbers) == {r.row_number for r in rows}
    assert all(c == 1 for c in row_numbers.values())


def test_buckets_for_mixed_fixture():
    rows, stored = _mixed_fixture()
    plan = build_merge_plan(rows, stored, mode="replace")

    assert [m.stored.id for m in plan.exact_matches_unchanged] == ["s-same"]
    assert [m.stored.id for m in plan.exact_matches_with_changes] == ["s-changed"]
    assert [m.stored.id for m in plan.suggested_matches] == ["s-renamed"]
    assert [r.title for r in plan.to_create] == ["Sound Bath"]
    assert [s.id for s in plan.to_keep] == ["s-booked"]
    assert [s.id for s in plan.to_delete] == ["s-gone"]


# ===========================================================================
# Part 2 + 3: booking protection, merge mode
# ===========================================================================

def test_booked_session_kept_in_replace_mode():
    """A booked session missing from the upload is kept, never deleted."""
    booked = _session("s-booked", "Dance", booking_count=3)
    plan = build_merge_plan([], [booked], mode="replace")

    assert [s.id for s in plan.to_keep] == ["s-booked"]
    assert plan.to_delete == []

    alerts = plan.summary().alerts
    assert any("with bookings are missing from the upload" in a for a in alerts)


def test_merge_mode_never_deletes():
    stored = [_session("a", "Yoga"), _session("b", "Pilates", start="11:00")]
    plan = build_merge_plan([], stored, mode="merge")

    assert plan.to_delete == []
    assert [s.id for s in plan.to_keep] == ["a", "b"]
    assert plan.summary().destructive is False


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        build_merge_plan([], [], mode="wipe")  # type: ignore[arg-type]


# ===========================================================================
# Part 4: rejected rows
# ===========================================================================

def test_empty_title_row_only_in_rejected(memory_store):
    memory_store.seed([_session("s-1", "Yoga")])
    raws = [{"title": "", "day": "Monday", "start": "09:00", "end": "10:00"}]

    plan = preview_import(memory_store, "fest-1", raws)

    assert plan.incoming_rows() == []
    assert len(plan.rejected_rows) == 1
    assert plan.rejected_rows[0].row_number == 2
    assert "title" in plan.rejected_rows[0].message
    assert plan.summary().rejected == 1


# ===========================================================================
# Part 5: summary alerts
# ===========================================================================

def test_replace_deletes_raise_alert():
    plan = build_merge_plan([], [_session("a", "Yoga")], mode="replace")
    s = plan.summary()

    assert s.deleted == 1
    assert s.destructive is True
    assert "will be deleted" in s.alerts[0]


def test_changing_a_booked_session_raises_alert():
    stored = [_session("a", "Yoga", location="Hall B", booking_count=2)]
    plan = build_merge_plan([_row(2, "Yoga", location="Hall A")], stored)

    alerts = plan.summary().alerts
    assert len(alerts) == 1
    assert "with bookings would be changed" in alerts[0]
    assert "2 booked" in alerts[0]


# ===========================================================================
# Part 6: wire format
# ===========================================================================

def test_plan_json_round_trip_uses_camel_case():
    rows, stored = _mixed_fixture()
    plan = build_merge_plan(
        rows, stored, mode="replace", festival_id="fest-1",
        rejected=[RowRejection(row_number=9, missing_fields=["title"], message="row 9: missing field title")],
    )

    wire = plan.model_dump(mode="json", by_alias=True)
    assert "exactMatchesWithChanges" in wire
    assert "suggestedMatches" in wire
    assert wire["suggestedMatches"][0]["matchReason"] == "same time, different title"
    assert wire["toCreate"][0]["rowNumber"] == 5
    assert wire["toKeep"][0]["bookingCount"] == 3

    back = MergePlan.model_validate(wire)
    assert back == plan


# ===========================================================================
# Part 7 + 8: idempotence, export round trip
# ===========================================================================

CSV = (
    "title;day;start;end;teachers;cardType\n"
    "Yoga;Monday;09:00;10:00;Anna, Ben;photo\n"
    "Pilates;Monday;11:00;12:00;Cleo;\n"
    "Dance;Tuesday;18:00;19:30;;minimal\n"
)


def test_reapplying_same_csv_is_all_unchanged(memory_store):
    plan = preview_import(memory_store, "fest-1", load_rows(csv_content=CSV))
    assert len(plan.to_create) == 3

    result = apply_import(memory_store, plan)
    assert result.ok
    assert result.created == 3

    again = preview_import(memory_store, "fest-1", load_rows(csv_content=CSV))
    assert len(again.exact_matches_unchanged) == 3
    assert again.exact_matches_with_changes == []
    assert again.suggested_matches == []
    assert again.to_create == []
    assert again.to_keep == []


PARALLEL_CSV = (
    "title;day;start;end;location\n"
    "Open Floor;Monday;09:00;10:00;Hall A\n"
    "Open Floor;Monday;09:00;10:00;Hall B\n"
)


@pytest.mark.parametrize("mode", ["merge", "replace"])
def test_parallel_sessions_with_same_title_reimport_unchanged(memory_store, mode):
    """Same title in the same slot (two rooms) must pair up one-to-one on re-import."""
    first = preview_import(memory_store, "fest-1", load_rows(csv_content=PARALLEL_CSV), mode=mode)
    assert apply_import(memory_store, first).created == 2
    ids_before = set(memory_store.rows)

    again = preview_import(memory_store, "fest-1", load_rows(csv_content=PARALLEL_CSV), mode=mode)

    assert len(again.exact_matches_unchanged) == 2
    assert {m.stored.location for m in again.exact_matches_unchanged} == {"Hall A", "Hall B"}
    assert again.to_create == []
    assert again.to_keep == [] and again.to_delete == []
    assert set(memory_store.rows) == ids_before


def test_parallel_sessions_claimed_in_store_order():
    stored = [
        _session("s-a", "Open Floor", location="Hall A"),
        _session("s-b", "Open Floor", location="Hall B"),
    ]
    rows = [_row(2, "Open Floor", location="Hall A"), _row(3, "Open Floor", location="Hall C")]

    plan = build_merge_plan(rows, stored)

    assert [m.stored.id for m in plan.exact_matches_unchanged] == ["s-a"]
    assert [m.stored.id for m in plan.exact_matches_with_changes] == ["s-b"]
    assert plan.to_create == [] and plan.to_keep == []


def test_export_then_reimport_is_all_unchanged(memory_store):
    memory_store.seed([
        _session("a", "Yoga", teachers=["Anna", "Ben"], types=["flow"], capacity=20,
                 description="Bring a mat; water", card_type="photo"),
        _session("b", "Dance", day="Tuesday", start="18:00", end="19:30", level="All levels"),
    ])

    exported = export_sessions(memory_store, "fest-1")
    plan = preview_import(memory_store, "fest-1", load_rows(csv_content=exported), mode="replace")

    assert len(plan.exact_matches_unchanged) == 2
    assert plan.exact_matches_with_changes == []
    assert plan.to_create == [] and plan.to_delete == []
    assert plan.rejected_rows == []
