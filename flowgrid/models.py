from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CardType = Literal["minimal", "photo", "detailed"]
CARD_TYPES: frozenset[str] = frozenset({"minimal", "photo", "detailed"})
DEFAULT_CARD_TYPE: CardType = "detailed"


class CamelModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IncomingRow(CamelModel):
    row_number: int

    title: str
    day: str
    start_time: str
    end_time: str

    level: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=0)
    types: List[str] = Field(default_factory=list)
    card_type: CardType = DEFAULT_CARD_TYPE
    teachers: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    description: Optional[str] = None
    prerequisites: Optional[str] = None


class StoredSession(CamelModel):
    id: str
    festival_id: Optional[str] = None

    title: str
    day: str
    start_time: str
    end_time: str

    level: Optional[str] = None
    capacity: Optional[int] = None
    types: List[str] = Field(default_factory=list)
    card_type: CardType = DEFAULT_CARD_TYPE
    teachers: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    description: Optional[str] = None
    prerequisites: Optional[str] = None

    display_order: int = 0
    booking_count: int = Field(default=0, ge=0)
    booking_capacity: Optional[int] = None
    booking_enabled: bool = False

    @property
    def occupied(self) -> bool:
        return self.booking_count > 0


class RowRejection(CamelModel):
    row_number: int
    missing_fields: List[str]
    message: str
