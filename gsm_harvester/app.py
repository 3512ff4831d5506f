"""Typer CLI entrypoint for the GSM harvester."""

from __future__ import annotations

import signal
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Event
from typing import Iterator, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigLocator, ConfigRepository, HarvestConfig
from .context import open_context
from .engine import VisitedStore
from .errors import InitializationFatal, ProxySupplyError
from .infra import HttpProxySupplier, SQLiteManager, parse_proxy_list
from .logging_conf import ERROR_LOG, HARVESTER_LOG, configure_logging, tail_log
from .orchestrator import HarvestTask, Orchestrator, Stage

app = typer.Typer(
    help="GSMArena phone spec harvester",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    locator: ConfigLocator
    repository: ConfigRepository


def build_state(verbose: bool) -> AppState:
    locator = ConfigLocator()
    repository = ConfigRepository(locator)
    configure_logging(verbose=verbose, log_dir=locator.logs_dir)
    return AppState(locator=locator, repository=repository)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _load_config(state: AppState) -> HarvestConfig:
    try:
        return state.repository.load()
    except ValueError as exc:
        console.print(f"Configuration is invalid: {exc}", style="red")
        raise typer.Exit(code=1) from exc


@contextmanager
def _open_store(config: HarvestConfig) -> Iterator[VisitedStore]:
    store = VisitedStore(SQLiteManager(), config.store.path, bucket=config.store.bucket)
    try:
        yield store
    finally:
        store.close()


@contextmanager
def _cancel_on_signals(cancel_event: Event) -> Iterator[None]:
    """Turn SIGINT/SIGTERM into a cooperative cancellation request."""

    def _handler(signum, _frame) -> None:
        console.print(f"Received {signal.Signals(signum).name}, finishing in-flight work...", style="yellow")
        cancel_event.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[signum] = signal.signal(signum, _handler)
        except ValueError:
            # not on the main thread
            pass
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _render_summary(summary: dict[str, int], cancelled: bool) -> Table:
    title = "Run cancelled" if cancelled else "Run finished"
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Outcome", style="cyan", no_wrap=True)
    table.add_column("Count", style="green", justify="right")
    for key, value in summary.items():
        table.add_row(key, str(value))
    return table


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("init", help="Write a default configuration file.")
def init_config(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    target = state.locator.config_path()
    if target.exists() and not force:
        console.print(f"Configuration already exists: {target}", style="yellow")
        raise typer.Exit(code=0)
    path = state.repository.save(HarvestConfig())
    console.print(f"Configuration written to {path}", style="green")


@app.command("run", help="Crawl makers, listings and detail pages.")
def run(
    ctx: typer.Context,
    parallelism: Optional[int] = typer.Option(None, "--parallelism", min=1, help="Number of workers."),
    seeds: Optional[List[str]] = typer.Option(
        None, "--seed", help="Detail page URL to fetch instead of the makers page (repeatable)."
    ),
    max_attempts: Optional[int] = typer.Option(
        None, "--max-attempts", min=1, help="Cap attempts per URL (default: unlimited)."
    ),
) -> None:
    state = _get_state(ctx)
    config = _load_config(state)
    if parallelism is not None:
        config = config.model_copy(
            update={"fetch": config.fetch.model_copy(update={"parallelism": parallelism})}
        )
    if max_attempts is not None:
        config = config.model_copy(
            update={"retry": config.retry.model_copy(update={"max_attempts": max_attempts})}
        )

    try:
        context = open_context(config)
    except InitializationFatal as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1) from exc

    cancel_event = Event()
    tasks = [HarvestTask(Stage.DETAIL, url) for url in seeds] if seeds else None
    with context, _cancel_on_signals(cancel_event):
        orchestrator = Orchestrator(context, cancel_event=cancel_event)
        summary = orchestrator.run(tasks)
    console.print(_render_summary(summary, cancel_event.is_set()))
    console.print(f"Records appended to {config.output.path}", style="dim")


@app.command("stats", help="Show visited-store and output statistics.")
def stats(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = _load_config(state)
    with _open_store(config) as store:
        visited = store.count()
    output = config.output.path
    records = 0
    if output.exists():
        with output.open("r", encoding="utf-8") as stream:
            records = sum(1 for line in stream if line.strip())
    table = Table(title="Harvester statistics", box=box.SIMPLE_HEAD)
    table.add_column("Item", style="cyan", no_wrap=True)
    table.add_column("Value", style="green", overflow="fold")
    table.add_row("Visited URLs", str(visited))
    table.add_row("Exported records", str(records))
    table.add_row("Store", str(config.store.path))
    table.add_row("Output", str(output))
    console.print(table)


@app.command("history", help="List the most recently visited URLs.")
def history(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", min=1, help="Number of rows to show."),
) -> None:
    state = _get_state(ctx)
    config = _load_config(state)
    with _open_store(config) as store:
        rows = store.recent(limit)
    if not rows:
        console.print("No visited URLs yet.", style="dim")
        return
    table = Table(title=f"Last {len(rows)} visited URLs", box=box.SIMPLE_HEAD)
    table.add_column("Visited at", style="green")
    table.add_column("URL", overflow="fold")
    for url, ts in rows:
        table.add_row(str(ts), str(url))
    console.print(table)


@app.command("reset", help="Clear the visited-URL store.")
def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    config = _load_config(state)
    if not yes:
        confirm = typer.confirm("Clear every visited URL?", default=False)
        if not confirm:
            console.print("Cancelled.", style="yellow")
            raise typer.Exit(code=0)
    with _open_store(config) as store:
        store.reset()
    console.print("Visited store cleared.", style="green")


@app.command("proxies", help="Fetch one batch from the proxy supplier and list it.")
def proxies(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = _load_config(state)
    settings = config.proxy_pool
    if not settings.api_url:
        console.print("No proxy supplier configured (proxy_pool.api_url).", style="yellow")
        raise typer.Exit(code=1)
    supplier = HttpProxySupplier(settings.api_url, timeout=settings.request_timeout)
    try:
        entries = parse_proxy_list(supplier.fetch())
    except ProxySupplyError as exc:
        console.print(f"Proxy supplier failed: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    finally:
        supplier.close()
    table = Table(title=f"Proxies · {len(entries)}", box=box.SIMPLE_HEAD)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Address", style="cyan")
    for index, entry in enumerate(entries, start=1):
        table.add_row(str(index), entry)
    console.print(table)


@app.command("log", help="Show the tail of the harvester log.")
def show_log(
    ctx: typer.Context,
    lines: int = typer.Option(100, "--lines", min=1, help="Number of lines to show."),
    errors: bool = typer.Option(False, "--errors", help="Show the error log instead.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    name = ERROR_LOG if errors else HARVESTER_LOG
    content = tail_log(state.locator.logs_dir / name, lines)
    if not content:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{name} · last {len(content)} lines", style="cyan")
    console.print("".join(content), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
