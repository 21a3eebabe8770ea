"""Volume subcommand: show."""

from __future__ import annotations

import typer

from offerbook.models import OrderAction
from offerbook.storage.db import get_connection, init_schema
from offerbook.storage.markets import list_markets
from offerbook.storage.trades import daily_volume, date_string

app = typer.Typer(help="Daily traded volume from the trade log")


@app.command("show")
def show(
    ctx: typer.Context,
    market_id: list[str] | None = typer.Option(None, "--market-id", "-m", help="Market id (repeatable; default: all)"),
    date: str | None = typer.Option(None, "--date", "-d", help="UTC date YYYY-MM-DD (default: today)"),
) -> None:
    """Show base and quote volume per side for a day."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        ids = list(market_id or [m["market_id"] for m in list_markets(conn)])
        if not ids:
            typer.echo("No markets recorded yet. Run 'offerbook trade run' first.")
            raise typer.Exit(1)
        day = date or date_string()
        typer.echo(f"Volume on {day} across {len(ids)} market(s): {', '.join(ids)}")
        for action in (OrderAction.SELL, OrderAction.BUY):
            vol = daily_volume(conn, ids, action, day)
            typer.echo(f"  {action.value:<5} base={vol.base_vol:.7f}  quote={vol.quote_vol:.7f}")
    finally:
        conn.close()
