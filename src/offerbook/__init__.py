"""Offerbook - market-making strategy and order reconciliation engine."""

__version__ = "0.1.0"
