"""HTTP fetching through per-proxy httpx clients."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, Optional

import httpx
import structlog

from ..config import FetchConfig
from ..infra import UserAgentPool
from ..logging_conf import get_logger

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

ClientFactory = Callable[[Optional[str]], httpx.Client]


@dataclass(slots=True)
class FetchOutcome:
    """Result of one fetch attempt, consumed once by the classifier.

    ``status_code`` is 0 when no response was received.
    """

    target: str
    proxy: str | None
    status_code: int
    error: BaseException | None = None
    text: str = field(default="", repr=False)
    final_url: str | None = None

    @property
    def has_response(self) -> bool:
        return self.status_code > 0


class Fetcher:
    """Issue GET requests through the proxy chosen by the caller."""

    def __init__(
        self,
        config: FetchConfig,
        ua_pool: UserAgentPool | None = None,
        client_factory: ClientFactory | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.ua_pool = ua_pool or UserAgentPool(
            config.user_agent_list if isinstance(config.user_agent_list, list) else None
        )
        self.logger = logger or get_logger("fetcher")
        self._client_factory = client_factory or self._default_client
        self._clients: Dict[Optional[str], httpx.Client] = {}
        self._lock = Lock()

    def fetch(self, url: str, proxy: str | None) -> FetchOutcome:
        """Fetch ``url``; transport errors come back as a status-0 outcome."""

        delay = self._pick_delay()
        if delay:
            time.sleep(min(delay, 5.0))
        client = self._client_for(proxy)
        try:
            response = client.get(url, headers=self._build_headers())
        except httpx.HTTPError as exc:
            self.logger.warning("fetch_error", url=url, proxy=proxy, error=str(exc))
            return FetchOutcome(target=url, proxy=proxy, status_code=0, error=exc)
        except RuntimeError as exc:
            # client closed by discard() from another worker
            if not client.is_closed:
                raise
            self.logger.warning("fetch_client_closed", url=url, proxy=proxy)
            return FetchOutcome(target=url, proxy=proxy, status_code=0, error=exc)
        self.logger.debug(
            "fetch_response",
            url=url,
            proxy=proxy,
            status=response.status_code,
            size=len(response.content),
        )
        return FetchOutcome(
            target=url,
            proxy=proxy,
            status_code=response.status_code,
            text=response.text,
            final_url=str(response.url),
        )

    def discard(self, proxy: str | None) -> None:
        """Close the client bound to an evicted proxy."""

        with self._lock:
            client = self._clients.pop(proxy, None)
        if client is not None:
            client.close()

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()

    # ------------------------------------------------------------------
    def _client_for(self, proxy: str | None) -> httpx.Client:
        with self._lock:
            client = self._clients.get(proxy)
            if client is None or client.is_closed:
                client = self._client_factory(proxy)
                self._clients[proxy] = client
            return client

    def _default_client(self, proxy: str | None) -> httpx.Client:
        return httpx.Client(
            proxy=proxy,
            timeout=self.config.request_timeout,
            follow_redirects=True,
        )

    def _build_headers(self) -> dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        headers.update(self.config.headers)
        headers.setdefault("User-Agent", self.ua_pool.get())
        return headers

    def _pick_delay(self) -> float:
        low, high = self.config.delay_range
        if high <= 0:
            return 0.0
        return random.uniform(low, high)


__all__ = ["ClientFactory", "DEFAULT_HEADERS", "FetchOutcome", "Fetcher"]
