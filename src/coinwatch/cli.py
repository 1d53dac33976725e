"""Click-based CLI for coinwatch.

Thin wrapper around library modules. Every command delegates to the
ingestion or query layers.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from coinwatch.core.models import plain_decimal

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from coinwatch.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as e:
            console.print(f"[red]Configuration error:[/red] {e}")
            raise SystemExit(1) from e
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from coinwatch.ingestion import create_store

    return await create_store(config.storage)


def _fmt(value) -> str:
    if value is None:
        return "-"
    return plain_decimal(value)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="COINWATCH_CONFIG",
    default=None,
    help="Path to coinwatch.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.version_option(package_name="coinwatch")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """coinwatch: cryptocurrency listings with recent price history."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# poll
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--once/--forever",
    default=True,
    help="Run a single cycle (default) or poll until interrupted.",
)
@click.pass_context
def poll(ctx: click.Context, once: bool) -> None:
    """Fetch listings from CoinMarketCap and store them."""
    async def _run():
        from coinwatch.ingestion import CoinMarketCapClient, IngestionCycle, Poller

        config = _load_config(ctx)
        if not config.provider.api_key:
            console.print(
                "[red]No API key configured. Set COINWATCH_PROVIDER__API_KEY.[/red]"
            )
            raise SystemExit(1)

        store = await _create_store_async(config)
        try:
            async with CoinMarketCapClient(config.provider) as client:
                cycle = IngestionCycle(
                    client,
                    store,
                    convert=config.provider.convert,
                    limit=config.provider.limit,
                )
                if once:
                    report = await cycle.run_once()
                    _print_report(report)
                    if not report.ok:
                        raise SystemExit(1)
                    return

                poller = Poller(cycle, interval_seconds=config.poller.interval_seconds)
                console.print(
                    f"Polling every [bold]{poller.interval_seconds:g}s[/bold]. "
                    "Press Ctrl+C to stop."
                )
                poller.start()
                try:
                    await asyncio.Event().wait()
                finally:
                    poller.stop()
                    await poller.wait_idle()
        finally:
            await store.close()

    try:
        _run_async(_run())
    except KeyboardInterrupt:
        console.print("Stopped.")


def _print_report(report) -> None:
    if report.error:
        console.print(f"[red]Cycle failed:[/red] {report.error}")
        return
    colour = "green" if not report.failed else "yellow"
    console.print(
        f"[{colour}]Updated {report.succeeded}/{report.fetched} coins "
        f"in {report.duration_seconds:.2f}s[/{colour}]"
    )
    if report.failed_ids:
        console.print(f"Failed coin ids: {', '.join(report.failed_ids)}")


# ---------------------------------------------------------------------------
# top
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--limit", "-n", type=click.IntRange(min=1), default=None, help="Number of coins."
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def top(ctx: click.Context, limit: int | None, output_format: str) -> None:
    """Show the top coins by market cap."""
    async def _run():
        from coinwatch.query import QueryService

        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            query = QueryService(store, history_window=config.query.history_window)
            ranked = await query.top_ranked(limit or config.query.page_size)
        finally:
            await store.close()

        if not ranked:
            console.print("[yellow]No coins stored. Run 'poll' first.[/yellow]")
            return

        if output_format == "json":
            click.echo(
                json.dumps([item.model_dump(mode="json") for item in ranked], indent=2)
            )
        else:
            _output_top_table(ranked)

    _run_async(_run())


def _output_top_table(ranked) -> None:
    """Render ranked coins as a Rich table."""
    table = Table(title="Top Coins by Market Cap")
    table.add_column("Rank", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Symbol")
    table.add_column("Price", justify="right")
    table.add_column("24h %", justify="right")
    table.add_column("Market Cap", justify="right")
    table.add_column("History", justify="right")

    for item in ranked:
        coin = item.coin
        table.add_row(
            str(coin.cmc_rank),
            coin.name,
            coin.symbol,
            _fmt(coin.current_price),
            _fmt(coin.percent_change_24h),
            _fmt(coin.market_cap),
            str(len(item.history)),
        )

    console.print(table)


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("slug")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def show(ctx: click.Context, slug: str, output_format: str) -> None:
    """Show one coin with its full price history."""
    async def _run():
        from coinwatch.core import NotFoundError
        from coinwatch.query import QueryService

        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            query = QueryService(store, history_window=config.query.history_window)
            try:
                detail = await query.asset_detail(slug.strip())
            except NotFoundError as e:
                console.print(f"[red]{e}[/red]")
                raise SystemExit(1) from e
        finally:
            await store.close()

        if output_format == "json":
            click.echo(json.dumps(detail.model_dump(mode="json"), indent=2))
            return

        coin = detail.coin
        summary = Table(title=f"{coin.name} ({coin.symbol})", show_header=False)
        summary.add_column("Field", style="bold")
        summary.add_column("Value", justify="right")
        summary.add_row("Rank", str(coin.cmc_rank))
        summary.add_row("Price", _fmt(coin.current_price))
        summary.add_row("Market cap", _fmt(coin.market_cap))
        summary.add_row("Volume 24h", _fmt(coin.volume_24h))
        summary.add_row("Change 1h %", _fmt(coin.percent_change_1h))
        summary.add_row("Change 24h %", _fmt(coin.percent_change_24h))
        summary.add_row("Change 7d %", _fmt(coin.percent_change_7d))
        summary.add_row("Circulating supply", _fmt(coin.circulating_supply))
        summary.add_row("Max supply", _fmt(coin.max_supply))
        summary.add_row("Last updated", coin.last_updated.isoformat())
        console.print(summary)

        history = Table(title="Price History")
        history.add_column("Timestamp")
        history.add_column("Price", justify="right")
        for point in detail.history:
            history.add_row(point.timestamp.isoformat(), _fmt(point.price))
        console.print(history)

    _run_async(_run())


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address.")
@click.option("--port", "-p", type=int, default=None, help="Port number.")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server and the background poller."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    # The app factory loads its own config in the server process
    if ctx.obj.get("config_path"):
        os.environ["COINWATCH_CONFIG"] = ctx.obj["config_path"]

    console.print(f"Starting coinwatch API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "coinwatch.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show stored data coverage."""
    async def _run():
        config = _load_config(ctx)
        store = await _create_store_async(config)
        try:
            stats = await store.get_statistics()
        finally:
            await store.close()

        table = Table(title="coinwatch Status")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")

        table.add_row("Database path", config.storage.sqlite_path)
        table.add_row("Poll interval", f"{config.poller.interval_seconds:g}s")
        table.add_section()
        table.add_row("Coins", str(stats["coins"]))
        table.add_row("History entries", str(stats["history_entries"]))
        latest = stats["latest_observation"]
        table.add_row("Latest cycle", latest.isoformat() if latest else "N/A")

        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
