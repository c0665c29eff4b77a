# flowgrid/db/session_store.py
"""
Session store: the only module that talks to the festival_sessions table.

Schema (snake_case, Supabase/PostgREST):
  festival_sessions(id, festival_id, title, day, start_time, end_time,
                    level, capacity, styles[], card_type, teachers[],
                    location, description, prerequisites, display_order,
                    booking_enabled, booking_capacity)
  bookings(id, session_id, ...)

The reconciliation engine never imports this module; it only needs the
StoredSession list. apply.py drives writes through the SessionStore ABC.
"""
from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx
from supabase import Client

from ..models import IncomingRow, StoredSession
from ..reconcile.normalize import canonical_card_type

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "festival_sessions"
BOOKINGS_TABLE = "bookings"

TRANSIENT_HTTP_ERRORS = (
    httpx.RemoteProtocolError,
    httpx.ReadTimeout,
    httpx.ConnectError,
    httpx.WriteError,
)


def execute_with_retry(rb, *, tries: int = 4, base_sleep: float = 0.5):
    """
    Supabase/PostgREST calls can occasionally drop HTTP/2 connections.
    Wrap .execute() with retry + exponential backoff. Only transport errors
    are retried; API errors propagate immediately.
    """
    last = None
    for attempt in range(tries):
        try:
            return rb.execute()
        except TRANSIENT_HTTP_ERRORS as e:
            last = e
            sleep = base_sleep * (2 ** attempt) + random.random() * 0.25
            logger.warning(
                "[session_store] transient http error: %s attempt=%d/%d sleep=%.2fs",
                type(e).__name__, attempt + 1, tries, sleep,
            )
            time.sleep(sleep)
    raise last  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Row <-> model mapping (pure)
# ---------------------------------------------------------------------------

def _booking_count_from_embed(row: Mapping[str, Any]) -> int:
    """PostgREST embeds counts as bookings: [{"count": n}]."""
    embed = row.get("bookings")
    if isinstance(embed, list) and embed:
        first = embed[0]
        if isinstance(first, Mapping):
            return int(first.get("count") or 0)
        return len(embed)
    if isinstance(embed, int):
        return embed
    return 0


def stored_session_from_row(row: Mapping[str, Any]) -> StoredSession:
    card_type, _ = canonical_card_type(row.get("card_type"))
    return StoredSession(
        id=str(row["id"]),
        festival_id=row.get("festival_id"),
        title=row.get("title") or "",
        day=row.get("day") or "",
        start_time=row.get("start_time") or "",
        end_time=row.get("end_time") or "",
        level=row.get("level") or None,
        capacity=row.get("capacity"),
        types=list(row.get("styles") or []),
        card_type=card_type,
        teachers=list(row.get("teachers") or []),
        location=row.get("location") or None,
        description=row.get("description") or None,
        prerequisites=row.get("prerequisites") or None,
        display_order=int(row.get("display_order") or 0),
        booking_count=_booking_count_from_embed(row),
        booking_capacity=row.get("booking_capacity"),
        booking_enabled=bool(row.get("booking_enabled") or False),
    )


def session_row_from_incoming(row: IncomingRow) -> dict[str, Any]:
    """
    Columns an import is allowed to write. Booking columns, id and
    display_order are absent: updates must preserve them.
    """
    return {
        "title": row.title,
        "day": row.day,
        "start_time": row.start_time,
        "end_time": row.end_time,
        "level": row.level,
        "capacity": row.capacity,
        "styles": list(row.types),
        "card_type": row.card_type,
        "teachers": list(row.teachers),
        "location": row.location,
        "description": row.description,
        "prerequisites": row.prerequisites,
    }


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------

class SessionStore(ABC):
    @abstractmethod
    def list_sessions(self, festival_id: str) -> List[StoredSession]:
        """All sessions of a festival with booking counts, in schedule order."""

    @abstractmethod
    def booking_count(self, session_id: str) -> int:
        """Fresh booking count for one session (read at apply time)."""

    @abstractmethod
    def create_session(self, festival_id: str, fields: Mapping[str, Any]) -> str:
        """Insert a session and return its id."""

    @abstractmethod
    def update_session(self, session_id: str, fields: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def delete_session(self, session_id: str) -> None:
        ...

    @abstractmethod
    def set_display_order(self, orders: Sequence[Tuple[str, int]]) -> None:
        """Persist a drag-and-drop reorder: (session_id, display_order) pairs."""


class SupabaseSessionStore(SessionStore):
    def __init__(self, supabase: Client) -> None:
        self.supabase = supabase

    @classmethod
    def from_env(cls) -> "SupabaseSessionStore":
        from .supabase_client import get_supabase_client

        return cls(get_supabase_client())

    def list_sessions(self, festival_id: str) -> List[StoredSession]:
        resp = execute_with_retry(
            self.supabase.table(SESSIONS_TABLE)
            .select(f"*, {BOOKINGS_TABLE}(count)")
            .eq("festival_id", festival_id)
            .order("day", desc=False)
            .order("start_time", desc=False)
            .order("display_order", desc=False)
        )
        rows = resp.data or []
        return [stored_session_from_row(r) for r in rows if r.get("id") is not None]

    def booking_count(self, session_id: str) -> int:
        resp = execute_with_retry(
            self.supabase.table(BOOKINGS_TABLE)
            .select("id", count="exact")
            .eq("session_id", session_id)
        )
        if resp.count is not None:
            return int(resp.count)
        return len(resp.data or [])

    def create_session(self, festival_id: str, fields: Mapping[str, Any]) -> str:
        payload: Dict[str, Any] = dict(fields)
        payload["festival_id"] = festival_id
        resp = execute_with_retry(self.supabase.table(SESSIONS_TABLE).insert(payload))
        data = resp.data or []
        if not data or data[0].get("id") is None:
            raise RuntimeError(f"insert into {SESSIONS_TABLE} returned no id")
        return str(data[0]["id"])

    def update_session(self, session_id: str, fields: Mapping[str, Any]) -> None:
        execute_with_retry(
            self.supabase.table(SESSIONS_TABLE).update(dict(fields)).eq("id", session_id)
        )

    def delete_session(self, session_id: str) -> None:
        execute_with_retry(
            self.supabase.table(SESSIONS_TABLE).delete().eq("id", session_id)
        )

    def set_display_order(self, orders: Sequence[Tuple[str, int]]) -> None:
        for session_id, order in orders:
            execute_with_retry(
                self.supabase.table(SESSIONS_TABLE)
                .update({"display_order": int(order)})
                .eq("id", session_id)
            )
        logger.info("[session_store] reordered %d sessions", len(orders))


def next_display_order(
    sessions: Sequence[StoredSession],
    day: str,
    start_time: str,
) -> int:
    """One past the highest display_order in the (day, start) slot, 0 if empty."""
    orders = [
        s.display_order
        for s in sessions
        if s.day.strip().casefold() == day.strip().casefold()
        and s.start_time.strip() == start_time.strip()
    ]
    return (max(orders) + 1) if orders else 0


def reorder_payload(items: Sequence[Mapping[str, Any]]) -> List[Tuple[str, int]]:
    """
    [{"id": ..., "displayOrder": n}, ...] -> [(id, n), ...].
    Raises ValueError on malformed items; nothing is written in that case.
    """
    out: List[Tuple[str, int]] = []
    for item in items:
        session_id = item.get("id")
        order: Optional[Any] = item.get("displayOrder", item.get("display_order"))
        if not session_id or order is None:
            raise ValueError(f"invalid reorder item: {dict(item)!r}")
        out.append((str(session_id), int(order)))
    return out
