"""
Exact matcher: (day, startTime, normalized title) pairing + change detection.
"""
from __future__ import annotations

from flowgrid.models import IncomingRow, StoredSession
from flowgrid.reconcile.engine import build_merge_plan, match_exact
from flowgrid.reconcile.matching import diff_fields, format_change, match_key


def _row(**overrides) -> IncomingRow:
    defaults = {
        "row_number": 2,
        "title": "Yoga",
        "day": "Monday",
        "start_time": "09:00",
        "end_time": "10:00",
        "location": "Hall A",
    }
    defaults.update(overrides)
    return IncomingRow(**defaults)


def _session(**overrides) -> StoredSession:
    defaults = {
        "id": "s-1",
        "festival_id": "fest-1",
        "title": "Yoga",
        "day": "Monday",
        "start_time": "09:00",
        "end_time": "10:00",
        "location": "Hall A",
    }
    defaults.update(overrides)
    return StoredSession(**defaults)


def test_match_key_ignores_title_case_and_spacing():
    a = _row(title="  Morning   YOGA ")
    b = _session(title="morning yoga", day="monday")
    assert match_key(a) == match_key(b)


def test_identical_pair_is_unchanged():
    result = match_exact([_row()], [_session()])
    assert len(result.unchanged) == 1
    assert result.with_changes == []
    assert result.claimed_ids == {"s-1"}


def test_location_change_scenario():
    """Same key, only location differs -> one changed pair with one diff line."""
    plan = build_merge_plan([_row(location="Hall A")], [_session(location="Hall B")])

    assert len(plan.exact_matches_with_changes) == 1
    assert plan.exact_matches_with_changes[0].changes == ["location: 'Hall B' → 'Hall A'"]
    assert plan.exact_matches_unchanged == []
    assert plan.suggested_matches == []
    assert plan.to_create == []


def test_every_comparable_field_is_diffed():
    stored = _session(
        end_time="10:00", level="Beginner", capacity=10, types=["flow"],
        card_type="detailed", teachers=["Anna"], location="Hall A",
        description="old", prerequisites=None,
    )
    row = _row(
        end_time="10:30", level="All", capacity=12, types=["flow", "yin"],
        card_type="photo", teachers=["Anna", "Ben"], location="Hall C",
        description="new", prerequisites="mat",
    )
    changes = diff_fields(stored, row)

    assert changes == [
        "endTime: '10:00' → '10:30'",
        "level: 'Beginner' → 'All'",
        "capacity: '10' → '12'",
        "types: 'flow' → 'flow, yin'",
        "cardType: 'detailed' → 'photo'",
        "teachers: 'Anna' → 'Anna, Ben'",
        "location: 'Hall A' → 'Hall C'",
        "description: 'old' → 'new'",
        "prerequisites: '' → 'mat'",
    ]


def test_none_and_empty_compare_equal():
    assert diff_fields(_session(level=None, teachers=[]), _row(level=None, teachers=[])) == []
    assert format_change("capacity", None, 5) == "capacity: '' → '5'"


def test_stored_session_claimed_at_most_once():
    """Duplicate CSV rows: first wins, the second must not pair with the same session."""
    rows = [_row(row_number=2), _row(row_number=3)]
    result = match_exact(rows, [_session()])

    assert len(result.unchanged) == 1
    assert result.unchanged[0].incoming.row_number == 2
    assert [r.row_number for r in result.unmatched] == [3]


def test_claimed_session_is_not_a_suggestion_target():
    rows = [_row(row_number=2), _row(row_number=3, end_time="11:00")]
    plan = build_merge_plan(rows, [_session()])

    assert len(plan.exact_matches_unchanged) == 1
    assert plan.suggested_matches == []
    assert [r.row_number for r in plan.to_create] == [3]


def test_different_start_time_is_not_exact():
    result = match_exact([_row(start_time="09:30")], [_session()])
    assert result.unchanged == [] and result.with_changes == []
    assert len(result.unmatched) == 1
