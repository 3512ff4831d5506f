"""SQLite connection management for the visited-URL store."""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict

_BUCKET_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self, busy_timeout: float = 3.0) -> None:
        self.busy_timeout = busy_timeout
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path, bucket: str) -> sqlite3.Connection:
        if not _BUCKET_PATTERN.match(bucket):
            raise ValueError(f"Invalid bucket name: {bucket!r}")
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, timeout=self.busy_timeout, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                # WAL + FULL sync: a committed mark survives a crash right after commit
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=FULL")
                self._connections[path] = conn
            conn = self._connections[path]
            self._ensure_bucket(conn, bucket)
            return conn

    def _ensure_bucket(self, conn: sqlite3.Connection, bucket: str) -> None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {bucket} (
                key TEXT PRIMARY KEY,
                value TEXT
            )
            """
        )
        conn.commit()

    def close(self, path: Path) -> None:
        with self._lock:
            conn = self._connections.pop(path, None)
        if conn is not None:
            conn.close()

    def reset(self, path: Path) -> None:
        self.close(path)
        for candidate in (path, path.with_name(path.name + "-wal"), path.with_name(path.name + "-shm")):
            if candidate.exists():
                candidate.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SQLiteManager"]
