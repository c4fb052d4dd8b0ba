"""SQLite key/value cache backing the local persistence tier."""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Mapping

from .errors import PersistenceReadCorrupt, PersistenceWriteFailed


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"

LEDGER_KEY = "timeTrackingSummary"
LAST_UPDATE_KEY = "lastSummaryUpdate"
BACKGROUND_TRACKING_KEY = "backgroundTracking"
USER_ID_KEY = "userId"
LAST_DAILY_RESET_KEY = "lastDailyReset"
ARCHIVE_PREFIX = "archive:"

_MISSING = object()


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )


def fetch_value(conn: sqlite3.Connection, key: str) -> Any:
    """Return the decoded value for ``key`` or ``_MISSING``."""
    row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
    if row is None:
        return _MISSING
    return json.loads(row["value"])


def store_value(conn: sqlite3.Connection, key: str, value: Any) -> None:
    conn.execute(
        """
        INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        (key, json.dumps(value), datetime.now().strftime(DATETIME_FMT)),
    )


def store_values(conn: sqlite3.Connection, items: Mapping[str, Any]) -> None:
    """Upsert several keys in one transaction; nothing is written on failure."""
    conn.execute("BEGIN")
    try:
        for key, value in items.items():
            store_value(conn, key, value)
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def fetch_keys(conn: sqlite3.Connection, prefix: str) -> list[str]:
    rows = conn.execute(
        "SELECT key FROM kv_store WHERE key LIKE ? ORDER BY key",
        (prefix + "%",),
    )
    return [row["key"] for row in rows]


class LocalCache:
    """Durable get/set store; the low-latency, authoritative local tier."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = open_database(self.db_path, check_same_thread=False)
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with self._lock:
                value = fetch_value(self._conn, key)
        except json.JSONDecodeError as exc:
            raise PersistenceReadCorrupt(f"Stored value for {key!r} is not valid JSON") from exc
        except sqlite3.Error as exc:
            raise PersistenceReadCorrupt(f"Failed to read {key!r}: {exc}") from exc
        return default if value is _MISSING else value

    def set(self, key: str, value: Any) -> None:
        try:
            with self._lock:
                store_value(self._conn, key, value)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise PersistenceWriteFailed(f"Failed to write {key!r}: {exc}") from exc

    def set_many(self, items: Mapping[str, Any]) -> None:
        try:
            with self._lock:
                store_values(self._conn, items)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise PersistenceWriteFailed(f"Failed to write {', '.join(items)}: {exc}") from exc

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return fetch_keys(self._conn, prefix)

    def close(self) -> None:
        with self._lock:
            self._conn.close()
