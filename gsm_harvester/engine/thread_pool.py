"""Named thread pools shared by the workers and the proxy refresher."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Dict

WORKER_POOL = "workers"
REFRESH_POOL = "proxy-refresh"


class ThreadPoolManager:
    """Hand out one executor per name, created on first use."""

    def __init__(self, default_workers: int = 8) -> None:
        self.default_workers = default_workers
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()

    def get(self, name: str = WORKER_POOL, max_workers: int | None = None) -> ThreadPoolExecutor:
        with self._lock:
            if name not in self._executors:
                workers = max_workers or self.default_workers
                self._executors[name] = ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix=f"harvester-{name}"
                )
            return self._executors[name]

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
        for executor in executors:
            executor.shutdown(wait=wait)


__all__ = ["REFRESH_POOL", "ThreadPoolManager", "WORKER_POOL"]
