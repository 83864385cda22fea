"""
Pydantic models used across the service.

`EventRecord` is the validated, stored shape. Raw events arrive as plain
dicts and only become an `EventRecord` after `validator.validate()` has
accepted them, so the validator (not pydantic coercion) decides what is
well-typed.

Guidelines:
- Keep models minimal and stable.
- Outputs omit absent optional fields (`calories`, `notes`); use
  `EventRecord.to_public()` rather than dumping the model directly.
"""

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Unit(str, Enum):
    g = "g"
    ml = "ml"
    piece = "piece"
    serving = "serving"


UNITS = frozenset(u.value for u in Unit)

DEFAULT_SOURCE = "manual"

DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


class EventRecord(BaseModel):
    """One stored consumption observation.

    Fields:
    - `id`: opaque identifier, unique across the store.
    - `user_id`: owner of the event. Not authenticated.
    - `timestamp`: ISO-8601 date-time, kept exactly as submitted. Its first
      ten characters are the calendar date used by range filters.
    - `item`, `amount`, `unit`: what was consumed and how much.
    - `source`: short tag of where the event came from (default `manual`).
    - `calories`: caller supplied, never derived.
    - `notes`: free text.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    timestamp: str
    item: str
    amount: float
    unit: Unit
    source: str = DEFAULT_SOURCE
    calories: Optional[float] = None
    notes: Optional[str] = None

    @property
    def date(self) -> str:
        return self.timestamp[:10]

    def to_public(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class EventFilter(BaseModel):
    """Scan filter shared by listing and aggregation. All bounds inclusive."""

    owner: Optional[str] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None

    def matches(self, record: EventRecord) -> bool:
        if self.owner is not None and record.user_id != self.owner:
            return False
        day = record.date
        if self.from_date is not None and day < self.from_date:
            return False
        if self.to_date is not None and day > self.to_date:
            return False
        return True


class LogConsumptionOut(BaseModel):
    saved_count: int


class ListConsumptionOut(BaseModel):
    events: List[Dict[str, Any]] = Field(default_factory=list)


class IntakeSummary(BaseModel):
    total_calories: float = 0.0
    events_count: int = 0
