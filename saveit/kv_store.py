"""
Key/value stores with browser-storage semantics.

The discovery cache only needs ``get``/``set``/``remove``/``clear`` on
string keys with JSON values. SqliteKeyValueStore persists them in a single
table; MemoryKeyValueStore keeps them in a dict for tests and throwaway
sessions.

SQLite calls are blocking, so the async methods hand them to a worker
thread and serialize access with a lock.
"""

import asyncio
import copy
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SqliteKeyValueStore:
    """
    SQLite-backed persistent key/value store.

    Values are stored as JSON text. Reads return fresh objects, so callers
    can never alias stored state.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL
            )
        """)
        self._conn.commit()

    # -------------------------------------------------------------------------
    # Blocking operations (run in a worker thread)
    # -------------------------------------------------------------------------

    def _get_sync(self, key: str) -> dict[str, Any]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value_json FROM kv WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return {}
        return {key: json.loads(row[0])}

    def _set_sync(self, items: dict[str, Any]) -> None:
        rows = [(k, json.dumps(v, ensure_ascii=False)) for k, v in items.items()]
        with self._lock:
            self._conn.executemany(
                "INSERT OR REPLACE INTO kv (key, value_json) VALUES (?, ?)", rows
            )
            self._conn.commit()

    def _remove_sync(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self._conn.commit()

    def _clear_sync(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv")
            self._conn.commit()

    def keys(self) -> list[str]:
        """All stored keys, sorted."""
        with self._lock:
            rows = self._conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [r[0] for r in rows]

    # -------------------------------------------------------------------------
    # Async interface
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, items: dict[str, Any]) -> None:
        await asyncio.to_thread(self._set_sync, items)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove_sync, key)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            with self._lock:
                self._conn.close()
                self._conn = None


class MemoryKeyValueStore:
    """In-process key/value store. Values are deep-copied in and out."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    def keys(self) -> list[str]:
        return sorted(self._data)

    async def get(self, key: str) -> dict[str, Any]:
        if key not in self._data:
            return {}
        return {key: copy.deepcopy(self._data[key])}

    async def set(self, items: dict[str, Any]) -> None:
        for k, v in items.items():
            self._data[k] = copy.deepcopy(v)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()

    async def close(self) -> None:
        pass
