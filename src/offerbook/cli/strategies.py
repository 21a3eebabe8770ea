"""Strategies subcommand: list."""

from __future__ import annotations

import typer

from offerbook.strategies.registry import build_default_registry

app = typer.Typer(help="Available strategies and exchanges")


@app.command("list")
def list_strategies(ctx: typer.Context) -> None:
    """List registered strategies and exchanges."""
    registry = build_default_registry(ctx.obj["settings"])
    typer.echo("Strategies:")
    for name, container in registry.strategies():
        config_note = "needs config" if container.needs_config else "no config"
        typer.echo(f"  {name:<10} [{container.complexity}, {config_note}] {container.description}")
    typer.echo("Exchanges:")
    for name, description in registry.exchanges().items():
        typer.echo(f"  {name:<14} {description}")
