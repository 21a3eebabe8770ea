"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from offerbook.config import get_settings
from offerbook.config.settings import configure_logging

app = typer.Typer(
    name="offerbook",
    help="Offerbook - market making and order reconciliation on a ledger offer book.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from offerbook.cli import strategies, trade, volume  # noqa: E402

app.add_typer(trade.app, name="trade")
app.add_typer(volume.app, name="volume")
app.add_typer(strategies.app, name="strategies")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
