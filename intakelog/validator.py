"""
Event validation.

`validate()` turns a raw event dict into an `EventRecord` or raises
`InvalidEventError` naming the first field that failed. Checks run in a
fixed order and stop at the first failure:

1. timestamp: non-empty ISO-8601 date-time string starting YYYY-MM-DD
2. item: non-empty string
3. amount: finite number (bools are rejected)
4. unit: one of g, ml, piece, serving

Optional fields are checked afterwards. Defaults (`id`, `user_id`,
`source`) are filled in by `EventService` before validation, so by the
time an event gets here those must already be strings.
"""

import math
from datetime import datetime
from typing import Any, Mapping

from intakelog.errors import InvalidEventError
from intakelog.models import DATE_RE, UNITS, EventRecord


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _parse_timestamp(value: str) -> bool:
    # Date filters read the first ten characters, so only the extended
    # calendar form YYYY-MM-DD[T ]... is accepted.
    text = value
    if not DATE_RE.fullmatch(text[:10]) or text[10:11] not in ("T", "t", " "):
        return False
    # fromisoformat only learned the trailing "Z" in 3.11
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        datetime.fromisoformat(text)
    except ValueError:
        return False
    return True


def validate(raw: Mapping[str, Any]) -> EventRecord:
    if not isinstance(raw, Mapping):
        raise InvalidEventError(None, "event must be an object")

    timestamp = raw.get("timestamp")
    if not _is_text(timestamp):
        raise InvalidEventError("timestamp")
    if not _parse_timestamp(timestamp):
        raise InvalidEventError("timestamp", "is not an ISO-8601 date-time")

    if not _is_text(raw.get("item")):
        raise InvalidEventError("item")

    if not _is_number(raw.get("amount")):
        raise InvalidEventError("amount", "missing or not a finite number")

    unit = raw.get("unit")
    if not isinstance(unit, str) or unit not in UNITS:
        raise InvalidEventError("unit", f"must be one of {', '.join(sorted(UNITS))}")

    calories = raw.get("calories")
    if calories is not None and not _is_number(calories):
        raise InvalidEventError("calories", "must be a finite number")

    notes = raw.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise InvalidEventError("notes", "must be a string")

    for field in ("id", "user_id", "source"):
        if not _is_text(raw.get(field)):
            raise InvalidEventError(field)

    return EventRecord(
        id=raw["id"],
        user_id=raw["user_id"],
        timestamp=timestamp,
        item=raw["item"],
        amount=raw["amount"],
        unit=unit,
        source=raw["source"],
        calories=calories,
        notes=notes,
    )
