"""
Key-value store with pluggable backends.
In-memory store for tests and throwaway runs, SQLite for persistence.
"""
import asyncio
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Generator, Optional, Union

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract key-value store interface"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get value by key, None if absent"""
        pass

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Store value under key (overwrites)"""
        pass


class MemoryStore(KeyValueStore):
    """In-memory store implementation"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        # webhook 线程和调度器线程可能同时访问
        self._lock = threading.Lock()

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value


class SqliteStore(KeyValueStore):
    """SQLite-backed store, one row per key"""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = db_path
        self._init_db()

    @contextmanager
    def _get_conn(self) -> Generator[sqlite3.Connection, None, None]:
        """Get database connection context manager"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    async def get(self, key: str) -> Optional[str]:
        # sqlite3 是阻塞调用，放到线程池执行
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._get_sync, key)

    async def put(self, key: str, value: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._put_sync, key, value)

    def _get_sync(self, key: str) -> Optional[str]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None

    def _put_sync(self, key: str, value: str) -> None:
        now = datetime.now().isoformat()
        with self._get_conn() as conn:
            conn.execute(
                """
                INSERT INTO kv(key, value, updated_at) VALUES(?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """,
                (key, value, now)
            )


def create_kv_store(store_type: str, db_path: Optional[Path] = None) -> KeyValueStore:
    """Factory function to create a store backend from config"""
    if store_type == "sqlite":
        if db_path is None:
            raise ValueError("SQLite store requires a database path")
        logger.info(f"💾 使用 SQLite 存储: {db_path}")
        return SqliteStore(db_path)
    if store_type == "memory":
        logger.warning("⚠️ 使用内存存储，重启后规则会丢失")
        return MemoryStore()
    raise ValueError(f"Unknown store type: {store_type}")
