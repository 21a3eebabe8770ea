"""Tick loop and fill polling."""

from offerbook.trader.bot import FillTracker, Trader, make_trader

__all__ = ["FillTracker", "Trader", "make_trader"]
