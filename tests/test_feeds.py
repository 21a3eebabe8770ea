"""Price feeds over mocked HTTP and fake tickers."""

import httpx
import pytest

from offerbook.errors import ConfigError, FeedError
from offerbook.feeds import ExchangeFeed, FiatFeed, make_feed
from offerbook.models import Asset, Number, Ticker, TradingPair

PAIR = TradingPair(base=Asset(code="XLM"), quote=Asset(code="USDT"))


def _fiat_client(status=200, body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body if body is not None else {"quotes": {"USDPHP": 50.0}})

    return httpx.Client(transport=httpx.MockTransport(handler))


class FakeTicker:
    def __init__(self, tickers):
        self.tickers = tickers

    def get_ticker_price(self, pairs):
        return self.tickers


def test_fiat_feed_returns_inverse_rate():
    feed = FiatFeed("http://rates.test/live", client=_fiat_client())
    assert feed.get_price() == pytest.approx(0.02)


def test_fiat_feed_errors_become_feed_errors():
    with pytest.raises(FeedError):
        FiatFeed("http://rates.test/live", client=_fiat_client(status=500)).get_price()
    with pytest.raises(FeedError):
        FiatFeed("http://rates.test/live", client=_fiat_client(body={"success": False})).get_price()


def test_exchange_feed_modifiers():
    ticker = Ticker(ask_price=Number.from_float(1.2, 7), bid_price=Number.from_float(1.0, 7))
    api = FakeTicker({PAIR: ticker})
    assert ExchangeFeed("x", api, PAIR).get_price() == pytest.approx(1.1)
    assert ExchangeFeed("x", api, PAIR, "ask").get_price() == pytest.approx(1.2)
    assert ExchangeFeed("x", api, PAIR, "bid").get_price() == pytest.approx(1.0)
    with pytest.raises(ConfigError):
        ExchangeFeed("x", api, PAIR, "last")


def test_exchange_feed_missing_pair():
    with pytest.raises(FeedError):
        ExchangeFeed("x", FakeTicker({}), PAIR).get_price()


def test_make_feed():
    assert make_feed("fixed", "0.25").get_price() == 0.25
    feed = make_feed("exchange", "ccxt-binance/XLM/USDT/bid", make_exchange=lambda name: FakeTicker({}))
    assert isinstance(feed, ExchangeFeed)
    assert feed.modifier == "bid"
    assert feed.pair == PAIR
    with pytest.raises(ConfigError):
        make_feed("exchange", "ccxt-binance/XLM")
    with pytest.raises(ConfigError):
        make_feed("crystal-ball", "")
    with pytest.raises(ConfigError):
        make_feed("fixed", "free")
