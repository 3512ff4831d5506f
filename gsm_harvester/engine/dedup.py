"""Durable visited-URL store backed by a single SQLite bucket."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock

import structlog

from ..errors import StorageFault
from ..infra.storage import SQLiteManager
from ..logging_conf import get_logger

DEFAULT_BUCKET = "visited_urls"


class VisitedStore:
    """Key-presence store suppressing repeated work across restarts.

    ``is_visited`` fails open: a storage fault reads as "not visited" so a
    broken check causes redundant work instead of silently dropping targets.
    ``mark_visited`` commits before returning.
    """

    def __init__(
        self,
        manager: SQLiteManager,
        db_path: Path,
        bucket: str = DEFAULT_BUCKET,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.manager = manager
        self.db_path = db_path
        self.bucket = bucket
        self.logger = logger or get_logger("dedup")
        self._lock = Lock()
        self._conn: sqlite3.Connection | None = self.manager.connect(db_path, bucket)
        self.logger.info("visited_store_opened", path=str(db_path), bucket=bucket)

    def is_visited(self, url: str) -> bool:
        try:
            with self._lock:
                conn = self._require_connection()
                cur = conn.execute(f"SELECT 1 FROM {self.bucket} WHERE key = ?", (url,))
                return cur.fetchone() is not None
        except (sqlite3.Error, StorageFault) as exc:
            self.logger.error("visited_check_failed", url=url, error=str(exc))
            return False

    def mark_visited(self, url: str) -> None:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        try:
            with self._lock:
                conn = self._require_connection()
                conn.execute(
                    f"INSERT OR REPLACE INTO {self.bucket}(key, value) VALUES (?, ?)",
                    (url, timestamp),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageFault(f"Failed to mark URL as visited: {exc}", url=url) from exc

    def count(self) -> int:
        with self._lock:
            conn = self._require_connection()
            row = conn.execute(f"SELECT count(*) FROM {self.bucket}").fetchone()
        return int(row[0])

    def recent(self, limit: int = 20) -> list[tuple[str, str]]:
        with self._lock:
            conn = self._require_connection()
            rows = conn.execute(
                f"SELECT key, value FROM {self.bucket} ORDER BY value DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [(row["key"], row["value"]) for row in rows]

    def reset(self) -> None:
        with self._lock:
            self.manager.reset(self.db_path)
            self._conn = self.manager.connect(self.db_path, self.bucket)
        self.logger.info("visited_store_reset", path=str(self.db_path))

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn = None
            self.manager.close(self.db_path)
        self.logger.info("visited_store_closed", path=str(self.db_path))

    def _require_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageFault("Visited store is closed", path=str(self.db_path))
        return self._conn


__all__ = ["DEFAULT_BUCKET", "VisitedStore"]
