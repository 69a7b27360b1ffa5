"""
Durable key/value store backed by SQLite.

Each key holds one JSON document. Writes replace the whole document inside a
single transaction, so a concurrent reader sees either the previous or the new
record, never a partial one.

Key layout
----------
- ``sensors``: full registry snapshot
- ``temp_id_counter``: next temporary sensor number
- ``power_states``: battery cycle state per sensor
- ``alert_resolution_ledger``: dedup key -> {resolved, resolvedAt}
- ``history:<sensorID>``: one historical series per sensor
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol


class KVStore(Protocol):
    """
    Protocol for the durable store used by the engine.

    Implementations raise on write failure; the snapshot writer turns those
    failures into ``PersistenceError`` and schedules retries.
    """

    def get(self, key: str) -> Optional[Any]:
        ...

    def put(self, key: str, value: Any) -> None:
        ...

    def put_many(self, items: Dict[str, Any]) -> None:
        """Replace every record in ``items`` atomically."""
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...


class SqliteKVStore:
    """
    SQLite implementation of :class:`KVStore`.

    One connection is opened per store and shared between threads behind a lock,
    which also makes ``":memory:"`` usable in tests.

    Parameters
    ----------
    db_path
        Database file path. Parent directories are created on demand.
    timeout_s
        SQLite busy timeout.
    """

    def __init__(self, db_path: str = "data/hayguard.db", timeout_s: float = 5.0):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, timeout=timeout_s, check_same_thread=False)
        self._init_schema()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager yielding a cursor inside one committed transaction."""
        with self._lock:
            cursor = self._conn.cursor()
            try:
                yield cursor
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cursor.close()

    def _init_schema(self) -> None:
        with self._transaction() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)

    def get(self, key: str) -> Optional[Any]:
        with self._transaction() as cursor:
            row = cursor.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    def put(self, key: str, value: Any) -> None:
        payload = json.dumps(value, separators=(",", ":"))
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                (key, payload, time.time()),
            )

    def put_many(self, items: Dict[str, Any]) -> None:
        """Replace several records in one transaction."""
        rows = [(k, json.dumps(v, separators=(",", ":")), time.time()) for k, v in items.items()]
        with self._transaction() as cursor:
            cursor.executemany(
                "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                rows,
            )

    def delete(self, key: str) -> None:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> List[str]:
        with self._transaction() as cursor:
            rows = cursor.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return [r[0] for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
