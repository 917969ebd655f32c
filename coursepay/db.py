from contextlib import contextmanager
from threading import Lock
from typing import Optional, Protocol, Set

import psycopg
from psycopg.rows import dict_row

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS webhook_events (
    event_id    TEXT PRIMARY KEY,
    event_type  TEXT,
    received_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


@contextmanager
def get_conn(database_url: str):
    conn = psycopg.connect(database_url, row_factory=dict_row)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


class EventStore(Protocol):
    def claim(self, event_id: str, event_type: Optional[str] = None) -> bool:
        """Return True the first time an event id is seen, False on replays."""


class InMemoryEventStore:
    """Per-process dedupe; replays are only caught while the process lives."""

    def __init__(self):
        self._seen: Set[str] = set()
        self._lock = Lock()

    def claim(self, event_id: str, event_type: Optional[str] = None) -> bool:
        with self._lock:
            if event_id in self._seen:
                return False
            self._seen.add(event_id)
            return True


class PostgresEventStore:
    def __init__(self, database_url: str, connect=get_conn):
        self.database_url = database_url
        self._connect = connect

    def ensure_schema(self) -> None:
        with self._connect(self.database_url) as conn:
            conn.execute(SCHEMA_SQL)

    def claim(self, event_id: str, event_type: Optional[str] = None) -> bool:
        with self._connect(self.database_url) as conn:
            row = conn.execute(
                "INSERT INTO webhook_events(event_id, event_type) VALUES (%s, %s) "
                "ON CONFLICT (event_id) DO NOTHING RETURNING event_id",
                (event_id, event_type),
            ).fetchone()
        return row is not None
