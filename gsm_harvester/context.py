"""Process-wide resources bundled and released together."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Callable

import structlog

from .config import HarvestConfig
from .engine import ThreadPoolManager, VisitedStore
from .engine.exporter import BaseExporter, FileExporter
from .engine.thread_pool import REFRESH_POOL
from .errors import InitializationFatal
from .infra import HttpProxySupplier, ProxyPool, ProxySupplier, SQLiteManager
from .logging_conf import get_logger


@dataclass
class HarvestContext:
    """Store, proxy pool, sink and thread pools shared by every worker.

    ``close`` runs once no matter how many exit paths reach it.
    """

    config: HarvestConfig
    store: VisitedStore
    sink: BaseExporter
    thread_pool: ThreadPoolManager
    pool: ProxyPool | None = None
    logger: structlog.BoundLogger = field(default_factory=lambda: get_logger("context"))
    _closed: bool = field(default=False, init=False, repr=False)
    _close_lock: Lock = field(default_factory=Lock, init=False, repr=False)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            if self.pool is not None:
                self.pool.close()
            self.thread_pool.shutdown()
        finally:
            try:
                self.sink.flush()
                self.sink.close()
            finally:
                self.store.close()
        self.logger.info("context_closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "HarvestContext":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_context(
    config: HarvestConfig,
    supplier: ProxySupplier | None = None,
    sink_factory: Callable[[HarvestConfig], BaseExporter] | None = None,
    logger: structlog.BoundLogger | None = None,
) -> HarvestContext:
    """Build every shared resource; on failure release what was built and raise."""

    logger = logger or get_logger("context")
    cleanups: list[Callable[[], None]] = []
    try:
        thread_pool = ThreadPoolManager(config.fetch.parallelism)
        cleanups.append(thread_pool.shutdown)

        store = VisitedStore(SQLiteManager(), config.store.path, bucket=config.store.bucket)
        cleanups.append(store.close)

        pool = None
        if config.proxy_pool.enabled:
            pool = _build_pool(config, supplier, thread_pool)
            cleanups.append(pool.close)

        sink = sink_factory(config) if sink_factory else FileExporter(config.output.path)
        cleanups.append(sink.close)
    except Exception as exc:
        logger.error("context_init_failed", error=str(exc))
        for cleanup in reversed(cleanups):
            try:
                cleanup()
            except Exception as cleanup_exc:  # noqa: BLE001
                logger.warning("context_cleanup_failed", error=str(cleanup_exc))
        raise InitializationFatal(f"Failed to initialise harvester: {exc}") from exc

    return HarvestContext(
        config=config,
        store=store,
        sink=sink,
        thread_pool=thread_pool,
        pool=pool,
        logger=logger,
    )


def _build_pool(
    config: HarvestConfig,
    supplier: ProxySupplier | None,
    thread_pool: ThreadPoolManager,
) -> ProxyPool:
    settings = config.proxy_pool
    if supplier is None and settings.api_url:
        supplier = HttpProxySupplier(settings.api_url, timeout=settings.request_timeout)
    pool = ProxyPool(
        supplier=supplier,
        min_threshold=settings.min_threshold,
        proxies=settings.proxies,
        executor=thread_pool.get(REFRESH_POOL, max_workers=1),
    )
    if supplier is not None:
        pool.replenish()
    if pool.empty:
        pool.logger.warning("proxy_pool_empty_at_startup")
    else:
        pool.logger.info("proxy_pool_ready", count=pool.count())
    return pool


__all__ = ["HarvestContext", "open_context"]
