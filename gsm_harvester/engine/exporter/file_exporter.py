"""Append-only JSON-lines exporter."""

from __future__ import annotations

import json
import os
from pathlib import Path
from threading import Lock

from .base import BaseExporter


class FileExporter(BaseExporter):
    """Write one JSON object per line, safe for concurrent workers."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("a", encoding="utf-8", newline="")
        self._lock = Lock()
        self._closed = False
        self.written = 0

    def export(self, record: dict) -> None:
        line = json.dumps(record, ensure_ascii=False)
        with self._lock:
            self._file.write(line)
            self._file.write("\n")
            self.written += 1

    def flush(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._file.flush()
            os.fsync(self._file.fileno())

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._file.flush()
            self._file.close()
            self._closed = True


__all__ = ["FileExporter"]
