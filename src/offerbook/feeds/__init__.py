"""Price feeds: fixed, fiat rate, exchange ticker."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from offerbook.errors import ConfigError
from offerbook.feeds.base import FixedFeed, PriceFeed
from offerbook.feeds.exchange import ExchangeFeed
from offerbook.feeds.fiat import FiatFeed
from offerbook.models import Asset, TradingPair

__all__ = ["PriceFeed", "FixedFeed", "FiatFeed", "ExchangeFeed", "make_feed"]


def make_feed(feed_type: str, url: str, make_exchange: Callable[[str], Any] | None = None) -> PriceFeed:
    """Build a feed from its type and url.

    ``exchange`` urls look like ``<exchange>/<base>/<quote>[/<modifier>]`` and need
    ``make_exchange`` to resolve the exchange key.
    """
    if feed_type == "fixed":
        return FixedFeed.from_url(url)
    if feed_type == "fiat":
        return FiatFeed(url)
    if feed_type == "exchange":
        parts = url.split("/")
        if len(parts) not in (3, 4):
            raise ConfigError(f"exchange feed url must be <exchange>/<base>/<quote>[/<modifier>], got {url!r}")
        if make_exchange is None:
            raise ConfigError("exchange feed needs an exchange factory")
        name, base, quote = parts[:3]
        modifier = parts[3] if len(parts) == 4 else "mid"
        pair = TradingPair(base=Asset(code=base), quote=Asset(code=quote))
        return ExchangeFeed(name, make_exchange(name), pair, modifier)
    raise ConfigError(f"invalid feed type: {feed_type}")
