"""Pull-based worker loop wiring fetcher, classifier, dedup store and sink."""

from __future__ import annotations

from collections import deque
from concurrent.futures import as_completed
from dataclasses import dataclass, replace
from enum import Enum
from threading import Condition, Event, Lock
from typing import Deque, Iterable
from urllib.parse import urlparse

import structlog

from .context import HarvestContext
from .engine import Fetcher, FetchOutcome, Parser, RetryController, Verdict
from .engine.parser import brand_from_url
from .engine.thread_pool import WORKER_POOL
from .errors import NoProxyAvailable, StorageFault
from .logging_conf import get_logger

POLL_INTERVAL = 0.2


class Stage(str, Enum):
    """Page kinds visited in order: makers → listing → detail."""

    MAKERS = "makers"
    LISTING = "listing"
    DETAIL = "detail"


@dataclass(frozen=True, slots=True)
class HarvestTask:
    stage: Stage
    url: str
    attempt: int = 1
    category: str | None = None

    def next_attempt(self) -> "HarvestTask":
        return replace(self, attempt=self.attempt + 1)


class TaskFrontier:
    """Queue of pending tasks that knows when the crawl has drained.

    A task counts as pending from ``push`` until ``task_done``, so follow-up
    tasks pushed while processing keep the frontier open. Each URL is queued
    once per run unless ``force`` is set (retries).
    """

    def __init__(self) -> None:
        self._cond = Condition(Lock())
        self._queue: Deque[HarvestTask] = deque()
        self._pending = 0
        self._seen: set[str] = set()

    def push(self, task: HarvestTask, force: bool = False) -> bool:
        with self._cond:
            if not force:
                if task.url in self._seen:
                    return False
                self._seen.add(task.url)
            self._queue.append(task)
            self._pending += 1
            self._cond.notify()
        return True

    def pop(self, timeout: float = POLL_INTERVAL) -> HarvestTask | None:
        with self._cond:
            if not self._queue and self._pending:
                self._cond.wait(timeout)
            if self._queue:
                return self._queue.popleft()
            return None

    def task_done(self) -> None:
        with self._cond:
            self._pending -= 1
            self._cond.notify_all()

    @property
    def drained(self) -> bool:
        with self._cond:
            return self._pending == 0


class RunSummary:
    """Thread-safe counters reported at the end of a run."""

    KEYS = ("success", "failed", "skipped", "absent", "retried", "discovered")

    def __init__(self) -> None:
        self._lock = Lock()
        self._counts = dict.fromkeys(self.KEYS, 0)

    def bump(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[key] += amount

    def as_dict(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)


class Orchestrator:
    """Drive workers over the task frontier until it drains or is cancelled."""

    def __init__(
        self,
        context: HarvestContext,
        fetcher: Fetcher | None = None,
        parser: Parser | None = None,
        cancel_event: Event | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.context = context
        self.config = context.config
        self.store = context.store
        self.pool = context.pool
        self.sink = context.sink
        self.fetcher = fetcher or Fetcher(context.config.fetch)
        self.parser = parser or Parser()
        self.controller = RetryController(self.pool, self.store, context.config.retry)
        self.cancel_event = cancel_event or Event()
        self.logger = logger or get_logger("orchestrator")
        self._emit_lock = Lock()

    def cancel(self) -> None:
        self.cancel_event.set()

    def run(self, seeds: Iterable[HarvestTask] | None = None) -> dict[str, int]:
        summary = RunSummary()
        frontier = TaskFrontier()
        for seed in seeds or [HarvestTask(Stage.MAKERS, self.config.start_url)]:
            frontier.push(seed)
        workers = self.config.fetch.parallelism
        executor = self.context.thread_pool.get(WORKER_POOL, max_workers=workers)
        self.logger.info("run_started", workers=workers)
        try:
            futures = [executor.submit(self._worker, frontier, summary) for _ in range(workers)]
            for future in as_completed(futures):
                future.result()
        finally:
            self.fetcher.close()
        result = summary.as_dict()
        self.logger.info(
            "run_finished",
            cancelled=self.cancel_event.is_set(),
            visited_total=self.store.count(),
            proxies_left=self.pool.count() if self.pool is not None else None,
            **result,
        )
        return result

    # ------------------------------------------------------------------
    def _worker(self, frontier: TaskFrontier, summary: RunSummary) -> None:
        while not self.cancel_event.is_set():
            task = frontier.pop()
            if task is None:
                if frontier.drained:
                    return
                continue
            try:
                self._process(task, frontier, summary)
            except Exception as exc:  # noqa: BLE001
                self.logger.error(
                    "task_error", url=task.url, stage=task.stage.value, error=str(exc)
                )
                summary.bump("failed")
            finally:
                frontier.task_done()

    def _process(self, task: HarvestTask, frontier: TaskFrontier, summary: RunSummary) -> None:
        if self.store.is_visited(task.url):
            self.logger.debug("already_visited", url=task.url)
            summary.bump("skipped")
            return
        proxy = None
        if self.pool is not None:
            try:
                proxy = self.pool.acquire()
            except NoProxyAvailable as exc:
                self.logger.error("no_proxy_available", url=task.url, error=str(exc))
                summary.bump("failed")
                return
        self.logger.debug("fetch_dispatched", url=task.url, proxy=proxy, attempt=task.attempt)
        outcome = self.fetcher.fetch(task.url, proxy)
        decision = self.controller.handle(outcome, task.attempt)
        if decision.evicted or (proxy is not None and not self.pool.contains(proxy)):
            self.fetcher.discard(proxy)

        if decision.verdict is Verdict.RETRYABLE:
            summary.bump("retried")
            if decision.delay and self.cancel_event.wait(decision.delay):
                return
            frontier.push(task.next_attempt(), force=True)
        elif decision.verdict is Verdict.SKIP_AND_MARK:
            summary.bump("absent")
        elif decision.verdict is Verdict.SKIP_NO_MARK:
            summary.bump("failed")
        else:
            self._handle_success(task, outcome, frontier, summary)

    def _handle_success(
        self,
        task: HarvestTask,
        outcome: FetchOutcome,
        frontier: TaskFrontier,
        summary: RunSummary,
    ) -> None:
        base_url = outcome.final_url or task.url
        if task.stage is Stage.MAKERS:
            for url in self.parser.parse_makers(outcome.text, base_url):
                if self._allowed(url) and frontier.push(
                    HarvestTask(Stage.LISTING, url, category=brand_from_url(url))
                ):
                    summary.bump("discovered")
            return
        if task.stage is Stage.LISTING:
            page = self.parser.parse_listing(outcome.text, base_url)
            for url in page.detail_urls:
                if not self._allowed(url):
                    continue
                if self.store.is_visited(url):
                    summary.bump("skipped")
                    continue
                if frontier.push(HarvestTask(Stage.DETAIL, url, category=task.category)):
                    summary.bump("discovered")
            if page.next_page and self._allowed(page.next_page):
                frontier.push(HarvestTask(Stage.LISTING, page.next_page, category=task.category))
            return
        self._emit(task, outcome, summary)

    def _emit(self, task: HarvestTask, outcome: FetchOutcome, summary: RunSummary) -> None:
        record = self.parser.parse_detail(outcome.text, task.url, brand=task.category)
        if record is None:
            self.logger.warning("detail_without_specs", url=task.url)
            summary.bump("failed")
            return
        # sink write is durable before the mark
        with self._emit_lock:
            if self.store.is_visited(task.url):
                summary.bump("skipped")
                return
            self.sink.export(record.as_dict())
            self.sink.flush()
            try:
                self.store.mark_visited(task.url)
            except StorageFault as exc:
                self.logger.error("mark_visited_failed", url=task.url, error=str(exc))
        self.logger.info("record_saved", url=task.url, model=record.model_name, brand=record.brand)
        summary.bump("success")

    def _allowed(self, url: str) -> bool:
        domains = self.config.fetch.allowed_domains
        if not domains:
            return True
        return (urlparse(url).hostname or "") in domains


__all__ = ["HarvestTask", "Orchestrator", "RunSummary", "Stage", "TaskFrontier"]
