"""Shared fixtures: an in-memory SessionStore that behaves like the Supabase one."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from flowgrid.db.session_store import SessionStore, stored_session_from_row
from flowgrid.models import StoredSession


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.bookings: Dict[str, int] = {}
        self.writes: List[Tuple[str, str]] = []
        self.fail_on_write: Optional[int] = None
        self._next_id = 0

    # --- test helpers ---

    def seed(self, sessions: Sequence[StoredSession]) -> None:
        for s in sessions:
            self.rows[s.id] = {
                "id": s.id,
                "festival_id": s.festival_id or "fest-1",
                "title": s.title,
                "day": s.day,
                "start_time": s.start_time,
                "end_time": s.end_time,
                "level": s.level,
                "capacity": s.capacity,
                "styles": list(s.types),
                "card_type": s.card_type,
                "teachers": list(s.teachers),
                "location": s.location,
                "description": s.description,
                "prerequisites": s.prerequisites,
                "display_order": s.display_order,
                "booking_enabled": s.booking_enabled,
                "booking_capacity": s.booking_capacity,
            }
            self.bookings[s.id] = s.booking_count

    def get(self, session_id: str) -> StoredSession:
        row = dict(self.rows[session_id])
        row["bookings"] = [{"count": self.bookings.get(session_id, 0)}]
        return stored_session_from_row(row)

    def _write(self, kind: str, session_id: str) -> None:
        if self.fail_on_write is not None and len(self.writes) + 1 == self.fail_on_write:
            raise RuntimeError(f"simulated store failure on {kind} {session_id}")
        self.writes.append((kind, session_id))

    # --- SessionStore ---

    def list_sessions(self, festival_id: str) -> List[StoredSession]:
        ids = [sid for sid, r in self.rows.items() if r["festival_id"] == festival_id]
        sessions = [self.get(sid) for sid in ids]
        return sorted(sessions, key=lambda s: (s.day, s.start_time, s.display_order))

    def booking_count(self, session_id: str) -> int:
        return self.bookings.get(session_id, 0)

    def create_session(self, festival_id: str, fields: Mapping[str, Any]) -> str:
        self._next_id += 1
        session_id = f"new-{self._next_id}"
        self._write("create", session_id)
        row = dict(fields)
        row.update({"id": session_id, "festival_id": festival_id})
        row.setdefault("booking_enabled", False)
        row.setdefault("booking_capacity", None)
        self.rows[session_id] = row
        self.bookings[session_id] = 0
        return session_id

    def update_session(self, session_id: str, fields: Mapping[str, Any]) -> None:
        self._write("update", session_id)
        self.rows[session_id].update(dict(fields))

    def delete_session(self, session_id: str) -> None:
        self._write("delete", session_id)
        del self.rows[session_id]
        self.bookings.pop(session_id, None)

    def set_display_order(self, orders: Sequence[Tuple[str, int]]) -> None:
        for session_id, order in orders:
            self._write("reorder", session_id)
            self.rows[session_id]["display_order"] = order


@pytest.fixture
def memory_store() -> InMemorySessionStore:
    return InMemorySessionStore()
