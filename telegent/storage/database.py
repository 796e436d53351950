"""
Telegent — Database Handle

One SQLite connection shared by the message log and the context store.
Blocking calls run in worker threads so every storage access is a
suspension point for the event loop; a thread lock keeps the single
connection serialized.
"""
import asyncio
import sqlite3
import threading
from typing import Any, Callable, TypeVar

from ..core.errors import StorageError
from .schema import init_database

T = TypeVar("T")


class Database:
    """Owns the connection and runs work against it off the event loop."""

    def __init__(self, db_path: str = "data/telegent.db"):
        self.db_path = db_path
        try:
            self.conn = init_database(db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Could not open database at {db_path}: {e}") from e
        self._lock = threading.Lock()
        self._closed = False

    def run_sync(self, fn: Callable[..., T], *args: Any) -> T:
        """Run fn(conn, *args) under the connection lock. Commits on success."""
        if self._closed:
            raise StorageError("Database is closed")
        with self._lock:
            try:
                result = fn(self.conn, *args)
                self.conn.commit()
                return result
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StorageError(str(e)) from e

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(self.run_sync, fn, *args)

    def close(self) -> None:
        """Checkpoint the WAL and close the connection."""
        if self._closed:
            return
        with self._lock:
            try:
                self.conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            except sqlite3.Error:
                pass  # DB may be read-only; closing still matters
            self.conn.close()
            self._closed = True
