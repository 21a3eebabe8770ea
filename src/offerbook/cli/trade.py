"""Trade subcommand: run."""

from __future__ import annotations

import signal
import threading

import structlog
import typer

from offerbook.errors import ConfigError
from offerbook.storage.db import get_connection, init_schema
from offerbook.strategies.registry import build_default_registry
from offerbook.trader import make_trader

app = typer.Typer(help="Run a strategy against the ledger offer book")
log = structlog.get_logger(__name__)


@app.command("run")
def run_trader(
    ctx: typer.Context,
    strategy: str = typer.Option(..., "--strategy", "-s", help="Strategy name (see 'offerbook strategies list')"),
    ticks: int | None = typer.Option(None, "--ticks", "-n", help="Stop after this many ticks (default: run until Ctrl+C)"),
    sim: bool | None = typer.Option(None, "--sim/--no-sim", help="Override [trader] sim"),
) -> None:
    """Run the trader tick loop."""
    settings = ctx.obj["settings"]
    if sim is not None:
        settings.trader["sim"] = sim
    registry = build_default_registry(settings)
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        try:
            trader = make_trader(settings, registry, strategy, conn=conn)
        except ConfigError as e:
            typer.echo(f"Could not start strategy '{strategy}': {e}")
            raise typer.Exit(1)

        stop = threading.Event()

        def _on_signal(*_args: object) -> None:
            log.info("stop_requested")
            stop.set()

        signal.signal(signal.SIGINT, _on_signal)
        signal.signal(signal.SIGTERM, _on_signal)
        typer.echo(f"Trading {trader.pair} with '{strategy}' (sim={settings.sim}). Ctrl+C to stop.")
        trader.run(max_ticks=ticks, stop_event=stop)
        typer.echo(f"Stopped after {trader.tick_count} successful ticks.")
    finally:
        conn.close()
