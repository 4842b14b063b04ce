from typing import Dict, List, Optional
from abc import ABC, abstractmethod
import asyncio
import os
import sqlite3
import structlog

logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """Async string key-value store.

    Implementations never raise on storage failure: reads degrade to ``None``
    or an empty list and writes become no-ops, after logging the error.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def list_keys(self) -> List[str]:
        ...

    @abstractmethod
    async def delete_many(self, keys: List[str]) -> None:
        ...


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store, used as the fallback layer and in tests"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self.data[key] = value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self.data.pop(key, None)

    async def list_keys(self) -> List[str]:
        async with self._lock:
            return list(self.data.keys())

    async def delete_many(self, keys: List[str]) -> None:
        async with self._lock:
            for key in keys:
                self.data.pop(key, None)


class SQLiteKeyValueStore(KeyValueStore):
    """Key-value table in an embedded SQLite database.

    The connection is opened lazily on first use. Blocking sqlite calls run in
    a worker thread and are serialized by an asyncio lock.
    """

    CREATE_TABLE_SQL = "CREATE TABLE IF NOT EXISTS kv_store (key TEXT PRIMARY KEY NOT NULL, value TEXT NOT NULL);"

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self.db_path != ":memory:":
            parent = os.path.dirname(os.path.abspath(self.db_path))
            if parent and not os.path.exists(parent):
                os.makedirs(parent, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute(self.CREATE_TABLE_SQL)
        conn.commit()
        return conn

    async def open(self) -> None:
        """Open the database; raises if it is unavailable"""

        async with self._lock:
            if self._conn is not None:
                return
            logger.info("Opening key-value database", db_path=self.db_path)
            self._conn = await asyncio.to_thread(self._connect)
            logger.info("Key-value database ready", db_path=self.db_path)

    async def close(self) -> None:
        async with self._lock:
            if self._conn is not None:
                await asyncio.to_thread(self._conn.close)
                self._conn = None

    def _get(self, key: str) -> Optional[str]:
        row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?;", (key,)).fetchone()
        return row[0] if row else None

    def _set(self, key: str, value: str) -> None:
        self._conn.execute("INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?);", (key, value))
        self._conn.commit()

    def _delete_many(self, keys: List[str]) -> None:
        placeholders = ",".join("?" for _ in keys)
        self._conn.execute(f"DELETE FROM kv_store WHERE key IN ({placeholders});", keys)
        self._conn.commit()

    def _list_keys(self) -> List[str]:
        return [row[0] for row in self._conn.execute("SELECT key FROM kv_store;").fetchall()]

    async def get(self, key: str) -> Optional[str]:
        try:
            await self.open()
            async with self._lock:
                return await asyncio.to_thread(self._get, key)
        except (sqlite3.Error, OSError) as e:
            logger.error("Key-value get failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str) -> None:
        try:
            await self.open()
            async with self._lock:
                await asyncio.to_thread(self._set, key, value)
        except (sqlite3.Error, OSError) as e:
            logger.error("Key-value set failed", key=key, error=str(e))

    async def delete(self, key: str) -> None:
        await self.delete_many([key])

    async def list_keys(self) -> List[str]:
        try:
            await self.open()
            async with self._lock:
                return await asyncio.to_thread(self._list_keys)
        except (sqlite3.Error, OSError) as e:
            logger.error("Key-value list failed", error=str(e))
            return []

    async def delete_many(self, keys: List[str]) -> None:
        if not keys:
            return
        try:
            await self.open()
            async with self._lock:
                await asyncio.to_thread(self._delete_many, list(keys))
        except (sqlite3.Error, OSError) as e:
            logger.error("Key-value delete failed", keys=len(keys), error=str(e))


class FallbackKeyValueStore(KeyValueStore):
    """SQLite-backed store that degrades to memory when the database is unavailable"""

    def __init__(self, primary: SQLiteKeyValueStore, fallback: Optional[KeyValueStore] = None):
        self.primary = primary
        self.fallback = fallback or InMemoryKeyValueStore()
        self._active: Optional[KeyValueStore] = None
        self._lock = asyncio.Lock()

    @property
    def using_fallback(self) -> bool:
        return self._active is self.fallback

    async def _backend(self) -> KeyValueStore:
        async with self._lock:
            if self._active is None:
                try:
                    await self.primary.open()
                    self._active = self.primary
                except (sqlite3.Error, OSError) as e:
                    logger.warning("Embedded database unavailable, using in-memory store", error=str(e))
                    self._active = self.fallback
            return self._active

    async def get(self, key: str) -> Optional[str]:
        return await (await self._backend()).get(key)

    async def set(self, key: str, value: str) -> None:
        await (await self._backend()).set(key, value)

    async def delete(self, key: str) -> None:
        await (await self._backend()).delete(key)

    async def list_keys(self) -> List[str]:
        return await (await self._backend()).list_keys()

    async def delete_many(self, keys: List[str]) -> None:
        await (await self._backend()).delete_many(keys)

    async def close(self) -> None:
        if self._active is self.primary:
            await self.primary.close()
