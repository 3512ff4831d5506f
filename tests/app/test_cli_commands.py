from __future__ import annotations

import pytest
from typer.testing import CliRunner

from gsm_harvester.app import AppState, app
from gsm_harvester.config import ConfigLocator, ConfigRepository, HarvestConfig
from gsm_harvester.engine.dedup import VisitedStore
from gsm_harvester.errors import InitializationFatal, ProxySupplyError
from gsm_harvester.infra import SQLiteManager
from gsm_harvester.orchestrator import Stage

runner = CliRunner()


@pytest.fixture
def state(tmp_path, monkeypatch) -> AppState:
    monkeypatch.setenv("GSM_HARVESTER_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    app_state = AppState(locator=locator, repository=ConfigRepository(locator))
    monkeypatch.setattr("gsm_harvester.app.build_state", lambda verbose: app_state)
    return app_state


def seed_store(state: AppState, *urls: str) -> None:
    config = state.repository.load()
    store = VisitedStore(SQLiteManager(), config.store.path, bucket=config.store.bucket)
    for url in urls:
        store.mark_visited(url)
    store.close()


class StubOrchestrator:
    instances: list["StubOrchestrator"] = []

    def __init__(self, context, cancel_event=None, **_kwargs) -> None:
        self.context = context
        self.cancel_event = cancel_event
        self.seeds = None
        StubOrchestrator.instances.append(self)

    def run(self, seeds=None) -> dict[str, int]:
        self.seeds = seeds
        return {"success": 2, "failed": 1, "skipped": 0, "absent": 0, "retried": 3, "discovered": 0}


def test_cli_init_writes_default_config(state) -> None:
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.stdout
    assert state.locator.config_path().exists()

    again = runner.invoke(app, ["init"])
    assert again.exit_code == 0
    assert "already exists" in again.stdout


def test_cli_run_applies_overrides(state, monkeypatch) -> None:
    StubOrchestrator.instances.clear()
    monkeypatch.setattr("gsm_harvester.app.Orchestrator", StubOrchestrator)
    result = runner.invoke(
        app,
        [
            "run",
            "--seed",
            "https://www.gsmarena.com/apple_iphone_15-12559.php",
            "--parallelism",
            "2",
            "--max-attempts",
            "4",
        ],
    )
    assert result.exit_code == 0, result.stdout
    stub = StubOrchestrator.instances[0]
    assert stub.context.config.fetch.parallelism == 2
    assert stub.context.config.retry.max_attempts == 4
    assert [(task.stage, task.url) for task in stub.seeds] == [
        (Stage.DETAIL, "https://www.gsmarena.com/apple_iphone_15-12559.php")
    ]
    assert stub.context.closed
    assert "Run finished" in result.stdout
    assert "retried" in result.stdout


def test_cli_run_without_seed_starts_from_makers(state, monkeypatch) -> None:
    StubOrchestrator.instances.clear()
    monkeypatch.setattr("gsm_harvester.app.Orchestrator", StubOrchestrator)
    result = runner.invoke(app, ["run"])
    assert result.exit_code == 0, result.stdout
    assert StubOrchestrator.instances[0].seeds is None


def test_cli_run_initialization_failure(state, monkeypatch) -> None:
    def broken(_config):
        raise InitializationFatal("Failed to initialise harvester: disk full")

    monkeypatch.setattr("gsm_harvester.app.open_context", broken)
    result = runner.invoke(app, ["run"])
    assert result.exit_code == 1
    assert "disk full" in result.stdout


def test_cli_stats_and_history(state) -> None:
    seed_store(state, "https://x.io/a.php", "https://x.io/b.php")
    stats = runner.invoke(app, ["stats"])
    assert stats.exit_code == 0, stats.stdout
    assert "Visited URLs" in stats.stdout
    assert "2" in stats.stdout

    history = runner.invoke(app, ["history", "--limit", "5"])
    assert history.exit_code == 0, history.stdout
    assert "https://x.io/a.php" in history.stdout


def test_cli_history_empty(state) -> None:
    result = runner.invoke(app, ["history"])
    assert result.exit_code == 0
    assert "No visited URLs yet." in result.stdout


def test_cli_reset_requires_confirmation(state) -> None:
    seed_store(state, "https://x.io/a.php")
    declined = runner.invoke(app, ["reset"], input="n\n")
    assert declined.exit_code == 0
    assert "Cancelled." in declined.stdout

    confirmed = runner.invoke(app, ["reset", "--yes"])
    assert confirmed.exit_code == 0, confirmed.stdout
    config = state.repository.load()
    store = VisitedStore(SQLiteManager(), config.store.path)
    assert store.count() == 0
    store.close()


def test_cli_proxies_without_supplier(state) -> None:
    result = runner.invoke(app, ["proxies"])
    assert result.exit_code == 1
    assert "No proxy supplier configured" in result.stdout


def _configure_supplier(state: AppState) -> None:
    state.repository.save(
        HarvestConfig(proxy_pool={"enabled": True, "api_url": "https://proxy.example/api"})
    )


def test_cli_proxies_lists_supplier_batch(state, monkeypatch) -> None:
    _configure_supplier(state)

    class StubSupplier:
        def __init__(self, api_url, timeout=10.0) -> None:
            self.api_url = api_url

        def fetch(self) -> str:
            return "1.1.1.1:80\r\n2.2.2.2:8080\n"

        def close(self) -> None:
            return

    monkeypatch.setattr("gsm_harvester.app.HttpProxySupplier", StubSupplier)
    result = runner.invoke(app, ["proxies"])
    assert result.exit_code == 0, result.stdout
    assert "http://1.1.1.1:80" in result.stdout
    assert "http://2.2.2.2:8080" in result.stdout


def test_cli_proxies_supplier_failure(state, monkeypatch) -> None:
    _configure_supplier(state)

    class FailingSupplier:
        def __init__(self, api_url, timeout=10.0) -> None:
            return

        def fetch(self) -> str:
            raise ProxySupplyError("Proxy API returned status 500")

        def close(self) -> None:
            return

    monkeypatch.setattr("gsm_harvester.app.HttpProxySupplier", FailingSupplier)
    result = runner.invoke(app, ["proxies"])
    assert result.exit_code == 1
    assert "status 500" in result.stdout


def test_cli_log_tail(state) -> None:
    log_file = state.locator.logs_dir / "harvester.log"
    log_file.write_text('{"event": "first"}\n{"event": "second"}\n', encoding="utf-8")
    result = runner.invoke(app, ["log", "--lines", "1"])
    assert result.exit_code == 0, result.stdout
    assert "second" in result.stdout
    assert "first" not in result.stdout
