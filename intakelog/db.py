"""
Database connection helper.

This module centralizes how connections are created and owns the DDL for
the `consumption_events` table. Each call to `get_conn()` opens a new
connection; callers use it as a context manager so the connection is
closed on both the commit and rollback paths.

Usage:
    from intakelog.db import get_conn
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
"""

import logging

import psycopg
from intakelog.settings import settings

logger = logging.getLogger(__name__)

# `ts` keeps the caller's timestamp string verbatim. The "C" collation
# makes ordering and the calendar-date filter byte-wise, matching the
# in-memory store.
DDL = """
CREATE TABLE IF NOT EXISTS consumption_events (
    id        TEXT COLLATE "C" PRIMARY KEY,
    user_id   TEXT NOT NULL,
    ts        TEXT COLLATE "C" NOT NULL,
    item      TEXT NOT NULL,
    amount    DOUBLE PRECISION NOT NULL,
    unit      TEXT NOT NULL CHECK (unit IN ('g', 'ml', 'piece', 'serving')),
    source    TEXT NOT NULL,
    calories  DOUBLE PRECISION,
    notes     TEXT
);

CREATE INDEX IF NOT EXISTS idx_consumption_user_ts ON consumption_events (user_id, ts);
"""


def get_conn(db_url: str | None = None):
    """Return a new psycopg connection.

    A short `connect_timeout` keeps HTTP requests from hanging if the
    database is unreachable.
    """

    return psycopg.connect(
        db_url or settings.db_url, connect_timeout=settings.db_connect_timeout
    )


def ensure_schema(db_url: str | None = None) -> None:
    """Apply the DDL. Safe to call repeatedly."""

    with get_conn(db_url) as conn:
        with conn.cursor() as cur:
            cur.execute(DDL)
        conn.commit()
    logger.info("consumption_events schema ensured")
