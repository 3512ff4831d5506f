"""Failure classification and the retry controller acting on it."""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum

import httpx
import structlog

from ..config import RetryConfig
from ..errors import StorageFault
from ..infra import ProxyPool
from ..logging_conf import get_logger
from .dedup import VisitedStore
from .fetcher import FetchOutcome

ABSENT_STATUSES = frozenset({404, 410})
BLOCKED_STATUSES = frozenset({403, 429, 503})
TRANSIENT_MARKERS = ("timeout", "timed out", "connection refused", "connection reset", "eof")


class Verdict(str, Enum):
    """Terminal state of one request attempt."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    SKIP_NO_MARK = "skip_no_mark"
    SKIP_AND_MARK = "skip_and_mark"
    FATAL = "fatal"


class ErrorKind(str, Enum):
    TRANSPORT_TRANSIENT = "transport_transient"
    RATE_LIMITED_OR_BLOCKED = "rate_limited_or_blocked"
    RESOURCE_ABSENT = "resource_absent"
    UNCLASSIFIED = "unclassified"
    INITIALIZATION_FATAL = "initialization_fatal"


@dataclass(frozen=True, slots=True)
class Classification:
    verdict: Verdict
    kind: ErrorKind | None = None


def _has_transient_marker(error: BaseException | None) -> bool:
    if error is None:
        return False
    if isinstance(error, httpx.TransportError):
        return True
    text = str(error).lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


def classify(outcome: FetchOutcome) -> Classification:
    """Map an outcome to a verdict; the first matching rule wins.

    Status rules run before error-text matching whenever a response exists,
    so a 404 carrying a transport-looking error is still marked.
    """

    if not outcome.has_response:
        return Classification(Verdict.RETRYABLE, ErrorKind.TRANSPORT_TRANSIENT)
    if outcome.status_code in ABSENT_STATUSES:
        return Classification(Verdict.SKIP_AND_MARK, ErrorKind.RESOURCE_ABSENT)
    if outcome.status_code in BLOCKED_STATUSES:
        return Classification(Verdict.RETRYABLE, ErrorKind.RATE_LIMITED_OR_BLOCKED)
    if _has_transient_marker(outcome.error):
        return Classification(Verdict.RETRYABLE, ErrorKind.TRANSPORT_TRANSIENT)
    if outcome.error is not None or not 200 <= outcome.status_code < 400:
        return Classification(Verdict.SKIP_NO_MARK, ErrorKind.UNCLASSIFIED)
    return Classification(Verdict.SUCCESS)


@dataclass(frozen=True, slots=True)
class Decision:
    """What the orchestrator should do next with a target."""

    verdict: Verdict
    kind: ErrorKind | None = None
    retry: bool = False
    delay: float = 0.0
    evicted: bool = False
    marked: bool = False


class RetryController:
    """Apply classifier verdicts to the proxy pool and visited store."""

    def __init__(
        self,
        pool: ProxyPool | None,
        store: VisitedStore,
        policy: RetryConfig | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.pool = pool
        self.store = store
        self.policy = policy or RetryConfig()
        self.logger = logger or get_logger("classifier")

    def handle(self, outcome: FetchOutcome, attempt: int = 1) -> Decision:
        result = classify(outcome)
        if result.verdict is Verdict.RETRYABLE:
            return self._handle_retryable(outcome, result, attempt)
        if result.verdict is Verdict.SKIP_AND_MARK:
            self.logger.info("resource_absent", url=outcome.target, status=outcome.status_code)
            return Decision(result.verdict, result.kind, marked=self._mark(outcome.target))
        if result.verdict is Verdict.SKIP_NO_MARK:
            self.logger.warning(
                "attempt_dropped",
                url=outcome.target,
                status=outcome.status_code,
                error=str(outcome.error) if outcome.error else None,
            )
        return Decision(result.verdict, result.kind)

    def backoff_delay(self, attempt: int, base: float | None = None) -> float:
        base = self.policy.backoff_base if base is None else base
        if base <= 0:
            return 0.0
        exp = min(self.policy.backoff_max, base * (2 ** max(attempt - 1, 0)))
        return exp + random.uniform(0, exp * 0.1)

    # ------------------------------------------------------------------
    def _handle_retryable(
        self, outcome: FetchOutcome, result: Classification, attempt: int
    ) -> Decision:
        rotated = self.pool is not None and bool(outcome.proxy)
        evicted = self.pool.evict(outcome.proxy) if rotated else False
        limit = self.policy.max_attempts
        base = self.policy.backoff_base
        if not rotated:
            # the next attempt goes out through the same route
            cap = self.policy.unrotated_max_attempts
            limit = cap if limit is None else min(limit, cap)
            base = max(base, self.policy.unrotated_backoff)
        if limit is not None and attempt >= limit:
            self.logger.warning(
                "retry_budget_exhausted",
                url=outcome.target,
                attempts=attempt,
                rotated=rotated,
                kind=result.kind.value if result.kind else None,
            )
            return Decision(Verdict.SKIP_NO_MARK, result.kind, evicted=evicted)
        delay = self.backoff_delay(attempt, base)
        self.logger.info(
            "retry_scheduled",
            url=outcome.target,
            proxy=outcome.proxy,
            status=outcome.status_code,
            kind=result.kind.value if result.kind else None,
            attempt=attempt,
            delay=round(delay, 3),
        )
        return Decision(result.verdict, result.kind, retry=True, delay=delay, evicted=evicted)

    def _mark(self, url: str) -> bool:
        try:
            self.store.mark_visited(url)
        except StorageFault as exc:
            self.logger.error("mark_visited_failed", url=url, error=str(exc))
            return False
        return True


__all__ = [
    "ABSENT_STATUSES",
    "BLOCKED_STATUSES",
    "Classification",
    "Decision",
    "ErrorKind",
    "RetryController",
    "Verdict",
    "classify",
]
