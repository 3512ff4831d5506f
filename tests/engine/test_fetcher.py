from __future__ import annotations

import httpx

from gsm_harvester.config import FetchConfig
from gsm_harvester.engine.fetcher import Fetcher
from gsm_harvester.infra import UserAgentPool


def make_fetcher(handler, **config) -> tuple[Fetcher, list]:
    created: list = []

    def factory(proxy):
        created.append(proxy)
        return httpx.Client(transport=httpx.MockTransport(handler))

    settings = FetchConfig(delay_range=(0.0, 0.0), **config)
    fetcher = Fetcher(settings, ua_pool=UserAgentPool(["UA-test"]), client_factory=factory)
    return fetcher, created


def test_fetch_returns_response_outcome() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, text="<html>ok</html>")

    fetcher, _ = make_fetcher(handler, headers={"Referer": "https://www.gsmarena.com/"})
    result = fetcher.fetch("https://www.gsmarena.com/a.php", "http://1.1.1.1:80")
    fetcher.close()

    assert result.status_code == 200
    assert result.has_response
    assert result.text == "<html>ok</html>"
    assert result.proxy == "http://1.1.1.1:80"
    assert result.final_url == "https://www.gsmarena.com/a.php"
    assert seen["user-agent"] == "UA-test"
    assert seen["referer"] == "https://www.gsmarena.com/"


def test_transport_error_becomes_status_zero() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    fetcher, _ = make_fetcher(handler)
    result = fetcher.fetch("https://www.gsmarena.com/a.php", None)
    fetcher.close()

    assert result.status_code == 0
    assert not result.has_response
    assert isinstance(result.error, httpx.ConnectTimeout)


def test_error_status_is_reported_not_raised() -> None:
    fetcher, _ = make_fetcher(lambda request: httpx.Response(429))
    result = fetcher.fetch("https://www.gsmarena.com/a.php", None)
    fetcher.close()
    assert result.status_code == 429
    assert result.error is None


def test_clients_are_cached_per_proxy_and_discarded() -> None:
    fetcher, created = make_fetcher(lambda request: httpx.Response(200))
    fetcher.fetch("https://www.gsmarena.com/a.php", "http://1.1.1.1:80")
    fetcher.fetch("https://www.gsmarena.com/b.php", "http://1.1.1.1:80")
    fetcher.fetch("https://www.gsmarena.com/c.php", "http://2.2.2.2:80")
    assert created == ["http://1.1.1.1:80", "http://2.2.2.2:80"]

    fetcher.discard("http://1.1.1.1:80")
    fetcher.fetch("https://www.gsmarena.com/d.php", "http://1.1.1.1:80")
    assert created[-1] == "http://1.1.1.1:80"
    assert len(created) == 3
    fetcher.close()


def test_client_closed_elsewhere_is_reported_then_rebuilt() -> None:
    created: list = []

    def factory(proxy):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        created.append(client)
        if len(created) == 1:
            client.close()
        return client

    settings = FetchConfig(delay_range=(0.0, 0.0))
    fetcher = Fetcher(settings, ua_pool=UserAgentPool(["UA-test"]), client_factory=factory)
    first = fetcher.fetch("https://www.gsmarena.com/a.php", "http://1.1.1.1:80")
    assert first.status_code == 0
    assert isinstance(first.error, RuntimeError)

    second = fetcher.fetch("https://www.gsmarena.com/a.php", "http://1.1.1.1:80")
    fetcher.close()
    assert second.status_code == 200
    assert len(created) == 2
