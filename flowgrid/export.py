# flowgrid/export.py
"""
Export a festival's sessions as the same CSV the importer reads.

Semicolon delimiter + UTF-8 BOM so Excel on Windows opens it directly.
Re-importing an unedited export yields an all-unchanged plan.
"""
from __future__ import annotations

import csv
import io
from typing import Sequence

from .models import StoredSession

EXPORT_HEADER: tuple[str, ...] = (
    "id", "day", "start", "end", "title", "level", "capacity", "types",
    "cardType", "teachers", "location", "description", "prerequisites",
)

BOM = "\ufeff"


def sessions_to_csv(sessions: Sequence[StoredSession], *, bom: bool = True) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=";", lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for index, s in enumerate(sessions, start=1):
        writer.writerow([
            index,
            s.day,
            s.start_time,
            s.end_time,
            s.title,
            s.level or "",
            "" if s.capacity is None else s.capacity,
            ", ".join(s.types),
            s.card_type,
            ", ".join(s.teachers),
            s.location or "",
            s.description or "",
            s.prerequisites or "",
        ])
    out = buf.getvalue()
    return (BOM + out) if bom else out
