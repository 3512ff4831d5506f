"""Rotating proxy pool fed by an external supplier endpoint."""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from threading import Lock
from typing import Iterable, List, Optional, Protocol

import httpx
import structlog

from ..errors import NoProxyAvailable, ProxySupplyError
from ..logging_conf import get_logger
from .locks import ReadWriteLock

DEFAULT_SCHEME = "http"


def normalize_proxy(raw: str) -> str:
    """Return ``scheme://host:port``, defaulting to plain HTTP."""

    entry = raw.strip()
    if not entry:
        return ""
    if "://" in entry:
        return entry
    return f"{DEFAULT_SCHEME}://{entry}"


def parse_proxy_list(body: str) -> list[str]:
    """Split a supplier response into normalized addresses.

    Lines may end with ``\\n`` or ``\\r\\n``; blank lines are skipped.
    """

    proxies: list[str] = []
    for line in body.split("\n"):
        proxy = normalize_proxy(line.replace("\r", ""))
        if proxy:
            proxies.append(proxy)
    return proxies


class ProxySupplier(Protocol):
    """Source of fresh proxy lists."""

    def fetch(self) -> str:
        """Return the raw line-delimited proxy list or raise ``ProxySupplyError``."""


class HttpProxySupplier:
    """Fetch proxy lists with a single GET against the configured API."""

    def __init__(
        self,
        api_url: str,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_url = api_url
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def fetch(self) -> str:
        try:
            response = self._client.get(self.api_url, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise ProxySupplyError(
                f"Proxy API request failed: {exc}", url=self.api_url
            ) from exc
        if response.status_code != 200:
            raise ProxySupplyError(
                f"Proxy API returned status {response.status_code}",
                url=self.api_url,
                status_code=response.status_code,
            )
        body = response.text
        if not body.strip():
            raise ProxySupplyError("Proxy API returned an empty body", url=self.api_url)
        return body

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class ProxyPool:
    """Round-robin proxy provider with eviction and watermark replenishment.

    The address list and cursor sit behind a reader/writer lock. Background
    refreshes go through a separate guard so that at most one supplier call
    triggered by the watermark is in flight, and the pool lock is never held
    while the supplier is being queried.
    """

    def __init__(
        self,
        supplier: ProxySupplier | None = None,
        min_threshold: int = 0,
        proxies: Iterable[str] | None = None,
        executor: Executor | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.supplier = supplier
        self.min_threshold = min_threshold
        self.logger = logger or get_logger("proxy_pool")
        self._lock = ReadWriteLock()
        self._index = 0
        self._proxies: List[str] = []
        if proxies:
            self._proxies.extend(p for p in (normalize_proxy(raw) for raw in proxies) if p)
        self._refresh_lock = Lock()
        self._refreshing = False
        self._executor = executor
        self._owns_executor = executor is None
        self._closed = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    def count(self) -> int:
        with self._lock.read():
            return len(self._proxies)

    @property
    def empty(self) -> bool:
        return self.count() == 0

    @property
    def cursor(self) -> int:
        with self._lock.read():
            return self._index

    @property
    def refreshing(self) -> bool:
        with self._refresh_lock:
            return self._refreshing

    def snapshot(self) -> list[str]:
        with self._lock.read():
            return list(self._proxies)

    def contains(self, proxy: str) -> bool:
        target = normalize_proxy(proxy)
        with self._lock.read():
            return target in self._proxies

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------
    def acquire(self) -> str:
        """Return the next proxy in rotation.

        An empty pool is refilled synchronously before selecting. A pool that
        is non-empty but under the watermark schedules a background refresh
        and returns immediately.
        """

        refreshed_now = False
        if self.count() == 0:
            self.logger.info("proxy_pool_empty_sync_refresh")
            self.replenish()
            refreshed_now = True
        with self._lock.write():
            if not self._proxies:
                raise NoProxyAvailable("Proxy pool is empty and replenishment yielded nothing")
            proxy = self._proxies[self._index]
            self._index = (self._index + 1) % len(self._proxies)
            size = len(self._proxies)
        if size < self.min_threshold and not refreshed_now:
            self.request_refresh()
        return proxy

    def evict(self, proxy: str) -> bool:
        """Drop the first occurrence of ``proxy``; return whether it was present."""

        target = normalize_proxy(proxy)
        with self._lock.write():
            try:
                position = self._proxies.index(target)
            except ValueError:
                position = -1
            if position >= 0:
                del self._proxies[position]
                if self._index >= len(self._proxies):
                    self._index = 0
            remaining = len(self._proxies)
        if position < 0:
            self.logger.warning("proxy_not_in_pool", proxy=target)
            return False
        self.logger.info("proxy_evicted", proxy=target, remaining=remaining)
        if remaining < self.min_threshold:
            self.request_refresh()
        return True

    def replenish(self) -> bool:
        """Replace the pool with a fresh supplier list; keep the old one on failure."""

        if self.supplier is None:
            self.logger.warning("proxy_supplier_missing")
            return False
        self.logger.info("proxy_refresh_started")
        try:
            body = self.supplier.fetch()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("proxy_refresh_failed", error=str(exc))
            return False
        proxies = parse_proxy_list(body)
        if not proxies:
            self.logger.warning("proxy_refresh_empty")
            return False
        with self._lock.write():
            self._proxies = proxies
            self._index = 0
        self.logger.info("proxy_refresh_succeeded", count=len(proxies))
        return True

    def request_refresh(self) -> Optional[Future]:
        """Schedule a background refresh unless one is already running.

        Returns the scheduled future, or ``None`` when the trigger collapsed
        into an in-flight refresh.
        """

        with self._refresh_lock:
            if self._closed or self._refreshing:
                return None
            self._refreshing = True
        try:
            return self._get_executor().submit(self._refresh_in_background)
        except RuntimeError:
            # executor already shut down
            with self._refresh_lock:
                self._refreshing = False
            self.logger.debug("proxy_refresh_skipped_shutdown")
            return None

    def close(self) -> None:
        with self._refresh_lock:
            self._closed = True
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
        close = getattr(self.supplier, "close", None)
        if callable(close):
            close()

    # ------------------------------------------------------------------
    def _refresh_in_background(self) -> bool:
        try:
            self.logger.info(
                "proxy_watermark_refresh", threshold=self.min_threshold, size=self.count()
            )
            return self.replenish()
        finally:
            with self._refresh_lock:
                self._refreshing = False

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="proxy-refresh")
        return self._executor


__all__ = [
    "HttpProxySupplier",
    "ProxyPool",
    "ProxySupplier",
    "normalize_proxy",
    "parse_proxy_list",
]
