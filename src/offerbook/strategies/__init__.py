"""Strategies and the strategy registry."""
