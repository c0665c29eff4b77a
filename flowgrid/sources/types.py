from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


@dataclass(frozen=True)
class RawRow:
    """
    One parsed line of an uploaded schedule, before normalization.

    row_number is the spreadsheet row number (header = 1, first data row = 2),
    so "row N" messages point at the line the organizer actually sees.
    values keeps header names exactly as typed (CardType vs cardType etc).
    """
    row_number: int
    values: Dict[str, str] = field(default_factory=dict)
