"""Shared fixtures for harvester tests."""

from __future__ import annotations

import time
from pathlib import Path
from threading import Event, Lock
from typing import Any, Callable, Iterable

import pytest

from gsm_harvester.config import ConfigLocator, ConfigRepository, HarvestConfig
from gsm_harvester.errors import ProxySupplyError


class FakeSupplier:
    """Scripted proxy supplier counting its calls.

    ``responses`` are consumed in order; the last one repeats. An exception
    instance is raised instead of returned. ``gate`` blocks each call until set.
    """

    def __init__(
        self,
        responses: Iterable[Any] = ("",),
        gate: Event | None = None,
        delay: float = 0.0,
    ) -> None:
        self.responses = list(responses)
        self.gate = gate
        self.delay = delay
        self.calls = 0
        self.started = Event()
        self.closed = False
        self._lock = Lock()

    def fetch(self) -> str:
        with self._lock:
            self.calls += 1
            index = min(self.calls - 1, len(self.responses) - 1)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.delay:
            time.sleep(self.delay)
        response = self.responses[index]
        if isinstance(response, BaseException):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def supplier_factory() -> Callable[..., FakeSupplier]:
    return FakeSupplier


@pytest.fixture
def failing_supplier() -> FakeSupplier:
    return FakeSupplier([ProxySupplyError("Proxy API returned status 500", status_code=500)])


@pytest.fixture
def waiter() -> Callable[..., bool]:
    return wait_until


@pytest.fixture
def harvest_config(tmp_path: Path) -> Callable[..., HarvestConfig]:
    """Build a config writing into ``tmp_path`` with delays disabled."""

    def _builder(**overrides: Any) -> HarvestConfig:
        base: dict[str, Any] = {
            "store": {"path": tmp_path / "crawler.db"},
            "output": {"path": tmp_path / "outputs" / "results.jsonl"},
            "fetch": {"parallelism": 1, "delay_range": (0.0, 0.0)},
            "proxy_pool": {"enabled": False},
        }
        base.update(overrides)
        return HarvestConfig.model_validate(base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("GSM_HARVESTER_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository


MAKERS_HTML = """
<html><body>
<div class="st-text">
  <table><tr>
    <td><a href="apple-phones-48.php">Apple<span>98 devices</span></a></td>
    <td><a href="samsung-phones-9.php">Samsung</a></td>
    <td><a href="apple-phones-48.php">Apple again</a></td>
    <td><a href="rumored.php3">Rumored</a></td>
    <td><a href="#top">Top</a></td>
  </tr></table>
</div>
</body></html>
"""

LISTING_HTML = """
<html><body>
<div class="makers">
  <ul>
    <li><a href="apple_iphone_15-12559.php"><strong>iPhone 15</strong></a></li>
    <li><a href="apple_iphone_14-11861.php"><strong>iPhone 14</strong></a></li>
  </ul>
</div>
<div class="nav-pages">
  <strong>1</strong>
  <a href="apple-phones-f-48-0-p2.php">2</a>
  <a class="prevnextbutton" href="apple-phones-f-48-0-p2.php" title="Next page">&#9658;</a>
</div>
</body></html>
"""

DETAIL_HTML = """
<html><body>
<h1 class="specs-phone-name-title">Apple iPhone 15</h1>
<div id="specs-list">
  <table>
    <tr><th rowspan="2">Launch</th><td class="ttl"><a href="#">Announced</a></td><td class="nfo">2023, September 12</td></tr>
    <tr><td class="ttl">Released</td><td class="nfo">2023, September 22</td></tr>
  </table>
  <table>
    <tr><th>Body</th><td class="ttl">Weight</td><td class="nfo">171 g (6.03 oz)</td></tr>
    <tr><td class="ttl">&nbsp;</td><td class="nfo">IP68</td></tr>
  </table>
</div>
</body></html>
"""


@pytest.fixture
def makers_html() -> str:
    return MAKERS_HTML


@pytest.fixture
def listing_html() -> str:
    return LISTING_HTML


@pytest.fixture
def detail_html() -> str:
    return DETAIL_HTML
