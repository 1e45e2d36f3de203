"""
Key-value persistence used for configuration, audit logs and enforcement ledgers.

The store keeps every value in an in-memory cache so ``get``/``set`` are
synchronous and never suspend the calling task. ``flush`` writes the keys
changed since the last flush to the backing storage.

- :class:`KeyValueStore`: memory only. Values live for the process lifetime.
- :class:`SQLiteKeyValueStore`: same API, persisted as JSON rows through aiosqlite.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, Set

from reportcord.storage.db_connection import ConnectionManager, db_connection
from reportcord.util.logger import get_logger

logger = get_logger("key_value_store")


class KeyValueStore:
    """In-memory key-value store with a get/set/flush contract."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}
        self._dirty: Set[str] = set()

    async def load(self) -> None:
        """Populate the cache from backing storage. No-op for the memory store."""
        return None

    def get(self, key: str, default: Any = None) -> Any:
        """
        Return a deep copy of the value stored under ``key``.

        Copies are returned so callers can mutate the result freely and write
        it back with :meth:`set`.
        """
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` and mark it for the next flush."""
        self._data[key] = copy.deepcopy(value)
        self._dirty.add(key)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)
        self._dirty.add(key)

    def keys(self) -> list[str]:
        return list(self._data)

    @property
    def pending_keys(self) -> Set[str]:
        """Keys changed since the last flush."""
        return set(self._dirty)

    async def flush(self) -> int:
        """Write pending changes to backing storage and return how many keys were written."""
        written = len(self._dirty)
        self._dirty.clear()
        return written


class SQLiteKeyValueStore(KeyValueStore):
    """
    Key-value store persisted in a single SQLite table.

    Args:
        connection: Connection manager to use (defaults to the shared one).
        table: Table name holding the ``key``/``value`` rows.
    """

    def __init__(self, connection: ConnectionManager | None = None, table: str = "kv_store") -> None:
        super().__init__()
        self._connection = connection or db_connection
        self._table = table

    async def load(self) -> None:
        async with self._connection.transaction() as conn:
            await conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self._table} ("
                " key TEXT PRIMARY KEY,"
                " value TEXT NOT NULL,"
                " updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
            )

        async with self._connection.read() as conn:
            async with conn.execute(f"SELECT key, value FROM {self._table}") as cursor:
                rows = await cursor.fetchall()

        loaded = 0
        for key, raw_value in rows:
            try:
                self._data[key] = json.loads(raw_value)
                loaded += 1
            except json.JSONDecodeError as exc:
                logger.error("[KV STORE] Dropping corrupt value for key %s: %s", key, exc)

        self._dirty.clear()
        logger.info("[KV STORE] Loaded %d keys from %s", loaded, self._table)

    async def flush(self) -> int:
        if not self._dirty:
            return 0

        pending = set(self._dirty)
        async with self._connection.transaction() as conn:
            for key in pending:
                if key in self._data:
                    await conn.execute(
                        f"INSERT INTO {self._table} (key, value) VALUES (?, ?) "
                        "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                        "updated_at = CURRENT_TIMESTAMP",
                        (key, json.dumps(self._data[key], ensure_ascii=False)),
                    )
                else:
                    await conn.execute(f"DELETE FROM {self._table} WHERE key = ?", (key,))

        self._dirty -= pending
        logger.debug("[KV STORE] Flushed %d keys", len(pending))
        return len(pending)
