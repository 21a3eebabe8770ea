"""Ticker-based price feed over any exchange that exposes a ticker."""

from __future__ import annotations

import structlog

from offerbook.errors import ConfigError, FeedError
from offerbook.exchanges.base import TickerAPI
from offerbook.feeds.base import PriceFeed
from offerbook.models import TradingPair

log = structlog.get_logger(__name__)

MODIFIERS = ("ask", "bid", "mid")


class ExchangeFeed(PriceFeed):
    """Price from an exchange ticker: ask, bid or mid (default)."""

    def __init__(self, name: str, ticker_api: TickerAPI, pair: TradingPair, modifier: str = "mid") -> None:
        if modifier not in MODIFIERS:
            raise ConfigError(f"invalid exchange feed modifier '{modifier}', expected one of {MODIFIERS}")
        self.name = name
        self.ticker_api = ticker_api
        self.pair = pair
        self.modifier = modifier

    def get_price(self) -> float:
        try:
            tickers = self.ticker_api.get_ticker_price([self.pair])
        except FeedError:
            raise
        except Exception as e:
            raise FeedError(f"error while getting price from exchange feed {self.name}: {e}") from e
        ticker = tickers.get(self.pair)
        if ticker is None:
            raise FeedError(f"could not get price for trading pair: {self.pair}")
        if self.modifier == "ask":
            price = ticker.ask_price
        elif self.modifier == "bid":
            price = ticker.bid_price
        else:
            price = ticker.mid_price
        log.info(
            "exchange_feed_price",
            feed=self.name,
            modifier=self.modifier,
            bid=ticker.bid_price.as_float(),
            ask=ticker.ask_price.as_float(),
            price=price.as_float(),
        )
        return price.as_float()
