"""
Repository: storage for consumption events.

Two implementations share one contract (`EventRepo`):

- `MemoryEventRepo` keeps records in a process-local dict. It is the
  default and lives as long as the process does.
- `PostgresEventRepo` maps records to the `consumption_events` table.

Both expose the same semantics:
- `upsert(record)` inserts or fully replaces the record with that id.
- `scan(filter)` returns matching records ordered by timestamp (then id).
- `transaction()` yields a writer; its upserts become visible together
  when the block exits normally and are discarded if it raises.

Keep business rules out of this module. `build_repo()` is the only place
that chooses an implementation.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

import psycopg

from intakelog.db import ensure_schema, get_conn
from intakelog.errors import StorageFailureError
from intakelog.models import EventFilter, EventRecord
from intakelog.settings import settings

logger = logging.getLogger(__name__)


class EventRepo(ABC):
    """Storage contract used by `EventService`."""

    @abstractmethod
    def transaction(self):
        """Context manager yielding an object with an `upsert(record)` method."""

    @abstractmethod
    def scan(self, filt: EventFilter) -> List[EventRecord]:
        ...

    def upsert(self, record: EventRecord) -> None:
        with self.transaction() as tx:
            tx.upsert(record)

    def ping(self) -> None:
        """Raise if the store is unusable. No-op by default."""


def _sort_key(record: EventRecord):
    return (record.timestamp, record.id)


class _StagedWrites:
    def __init__(self):
        self.records: Dict[str, EventRecord] = {}

    def upsert(self, record: EventRecord) -> None:
        self.records[record.id] = record


class MemoryEventRepo(EventRepo):
    """In-process store.

    Writes inside `transaction()` go to a staging buffer and are applied in
    one step under the lock, so a failed batch never leaves a partial
    write behind. Records are frozen pydantic models, so handing them out
    from `scan()` cannot alter what is stored.
    """

    def __init__(self):
        self._records: Dict[str, EventRecord] = {}
        self._lock = threading.Lock()

    @contextmanager
    def transaction(self) -> Iterator[_StagedWrites]:
        staged = _StagedWrites()
        yield staged
        with self._lock:
            self._records.update(staged.records)

    def scan(self, filt: EventFilter) -> List[EventRecord]:
        with self._lock:
            matches = [r for r in self._records.values() if filt.matches(r)]
        return sorted(matches, key=_sort_key)

    def __len__(self) -> int:
        return len(self._records)


UPSERT_SQL = """
INSERT INTO consumption_events
    (id, user_id, ts, item, amount, unit, source, calories, notes)
VALUES
    (%s, %s, %s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (id) DO UPDATE SET
    user_id = EXCLUDED.user_id,
    ts = EXCLUDED.ts,
    item = EXCLUDED.item,
    amount = EXCLUDED.amount,
    unit = EXCLUDED.unit,
    source = EXCLUDED.source,
    calories = EXCLUDED.calories,
    notes = EXCLUDED.notes
"""


class _PostgresWriter:
    def __init__(self, cur):
        self.cur = cur

    def upsert(self, record: EventRecord) -> None:
        self.cur.execute(
            UPSERT_SQL,
            (
                record.id,
                record.user_id,
                record.timestamp,
                record.item,
                record.amount,
                record.unit.value,
                record.source,
                record.calories,
                record.notes,
            ),
        )


class PostgresEventRepo(EventRepo):
    """DB access only.

    One connection per call. `transaction()` runs every upsert of a batch
    on that connection; psycopg commits when the block exits cleanly and
    rolls back when it raises, and the connection is closed either way.
    """

    def __init__(self, db_url: Optional[str] = None):
        self.db_url = db_url

    def ensure_schema(self) -> None:
        try:
            ensure_schema(self.db_url)
        except psycopg.Error as e:
            raise StorageFailureError("schema setup", e) from e

    @contextmanager
    def transaction(self) -> Iterator[_PostgresWriter]:
        try:
            with get_conn(self.db_url) as conn:
                with conn.cursor() as cur:
                    yield _PostgresWriter(cur)
        except psycopg.Error as e:
            logger.warning("write transaction rolled back: %s", e)
            raise StorageFailureError("write", e) from e

    def scan(self, filt: EventFilter) -> List[EventRecord]:
        where = []
        args = []
        if filt.owner is not None:
            where.append("user_id = %s")
            args.append(filt.owner)
        if filt.from_date is not None:
            where.append("LEFT(ts, 10) >= %s")
            args.append(filt.from_date)
        if filt.to_date is not None:
            where.append("LEFT(ts, 10) <= %s")
            args.append(filt.to_date)

        sql = (
            "SELECT id, user_id, ts, item, amount, unit, source, calories, notes "
            "FROM consumption_events "
            + ("WHERE " + " AND ".join(where) + " " if where else "")
            + "ORDER BY ts ASC, id ASC"
        )
        try:
            with get_conn(self.db_url) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, args)
                    rows = cur.fetchall()
        except psycopg.Error as e:
            raise StorageFailureError("read", e) from e

        return [
            EventRecord(
                id=r[0],
                user_id=r[1],
                timestamp=r[2],
                item=r[3],
                amount=r[4],
                unit=r[5],
                source=r[6],
                calories=r[7],
                notes=r[8],
            )
            for r in rows
        ]

    def ping(self) -> None:
        try:
            with get_conn(self.db_url) as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1;")
        except psycopg.Error as e:
            raise StorageFailureError("ping", e) from e


def build_repo(backend: Optional[str] = None) -> EventRepo:
    """Create the store selected by `STORE_BACKEND`."""

    backend = (backend or settings.store_backend).lower()
    if backend == "memory":
        logger.info("using in-memory event store")
        return MemoryEventRepo()
    if backend in ("postgres", "postgresql"):
        logger.info("using postgres event store")
        repo = PostgresEventRepo()
        repo.ensure_schema()
        return repo
    raise ValueError(f"Unsupported STORE_BACKEND: {backend}")
