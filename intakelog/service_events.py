"""
Service / facade layer.

This module implements business rules and normalization before any store
interaction. It is free of SQL; it calls an `EventRepo` for persistence.
All write paths go through `ingest_events` so validation and defaults
live in one place.

Key responsibilities:
- protect the system (max batch sizes)
- fill defaults (`id`, `user_id`, `source`) and validate each event
- keep a batch all-or-nothing by writing it inside one store transaction
- filter and aggregate for list/summarize
"""

import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence

from intakelog.errors import BatchTooLargeError, InvalidEventError, InvalidQueryError
from intakelog.models import DATE_RE, DEFAULT_SOURCE, EventFilter, EventRecord, IntakeSummary
from intakelog.repo_events import EventRepo
from intakelog.settings import settings
from intakelog.validator import validate

logger = logging.getLogger(__name__)


def _with_defaults(raw: Mapping[str, Any], default_owner: str) -> Dict[str, Any]:
    if not isinstance(raw, Mapping):
        raise InvalidEventError(None, "event must be an object")
    event = dict(raw)
    if not event.get("id"):
        event["id"] = str(uuid.uuid4())
    if not event.get("user_id"):
        event["user_id"] = default_owner
    if not event.get("source"):
        event["source"] = DEFAULT_SOURCE
    return event


def _date_bound(name: str, value: Optional[str]) -> Optional[str]:
    # Empty strings mean "no bound", same as omitting the key.
    if value is None or value == "":
        return None
    if not isinstance(value, str) or not DATE_RE.fullmatch(value):
        raise InvalidQueryError(name, "must be a YYYY-MM-DD date")
    return value


def build_filter(
    owner: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
) -> EventFilter:
    if owner is not None and not isinstance(owner, str):
        raise InvalidQueryError("user_id", "must be a string")
    return EventFilter(
        owner=owner or None,
        from_date=_date_bound("from", from_date),
        to_date=_date_bound("to", to_date),
    )


class EventService:
    """Business rules + validation + normalization.

    Example usage:
        repo = MemoryEventRepo()
        svc = EventService(repo)
        svc.ingest_events([{"timestamp": "...", "item": "apple", ...}])
    """

    def __init__(self, repo: EventRepo, default_owner: Optional[str] = None):
        self.repo = repo
        self.default_owner = default_owner or settings.default_user

    def ingest_events(
        self, events: Sequence[Mapping[str, Any]], default_owner: Optional[str] = None
    ) -> int:
        """Validate and upsert a batch of raw events.

        Steps:
        1. Quick guards (empty list, batch size limit).
        2. Inside one store transaction, fill defaults, validate and
           upsert each event in order.
        3. Return the number of submitted events (inserts and
           replacements are not distinguished).

        Raises:
        - `InvalidEventError` on the first event that fails validation;
          nothing from the batch is kept.
        - `BatchTooLargeError` before any write for oversized batches.
        - `StorageFailureError` if the store rejects the write.
        """

        # 1) protect the system
        if len(events) == 0:
            return 0
        if len(events) > settings.max_batch_size:
            raise BatchTooLargeError(len(events), settings.max_batch_size)

        owner = default_owner or self.default_owner

        # 2) validate + write as one unit
        try:
            with self.repo.transaction() as tx:
                for raw in events:
                    tx.upsert(validate(_with_defaults(raw, owner)))
        except InvalidEventError as e:
            logger.info("rejected batch of %d events: %s", len(events), e)
            raise

        logger.info("saved %d events", len(events))
        return len(events)

    def list_events(
        self,
        owner: Optional[str] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
    ) -> List[EventRecord]:
        """Records for `owner` (all owners when omitted) whose calendar
        date falls within the inclusive `[from_date, to_date]` range."""

        return self.repo.scan(build_filter(owner, from_date, to_date))

    def summarize_intake(
        self,
        owner: Optional[str] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
    ) -> IntakeSummary:
        records = self.list_events(owner, from_date, to_date)
        total = sum(r.calories or 0.0 for r in records)
        return IntakeSummary(total_calories=total, events_count=len(records))

    def health_check(self) -> None:
        """Perform a lightweight store ping via the repository."""

        self.repo.ping()
