"""Fiat exchange-rate feed (currencylayer-style JSON)."""

from __future__ import annotations

import httpx
import structlog

from offerbook.errors import FeedError
from offerbook.feeds.base import PriceFeed

log = structlog.get_logger(__name__)

# {"success": true, "source": "USD", "quotes": {"USDPHP": 51.080002}}


class FiatFeed(PriceFeed):
    """Reads the single quote in the response and returns its inverse (USD per unit of the currency)."""

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.Client | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    def _fetch(self) -> dict:
        if self._client is not None:
            resp = self._client.get(self.url)
            resp.raise_for_status()
            return resp.json()
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.get(self.url)
            resp.raise_for_status()
            return resp.json()

    def get_price(self) -> float:
        try:
            data = self._fetch()
        except (httpx.HTTPError, ValueError) as e:
            raise FeedError(f"could not fetch fiat rate from {self.url}: {e}") from e
        quotes = data.get("quotes") if isinstance(data, dict) else None
        if not quotes:
            raise FeedError(f"fiat feed response had no quotes: {data}")
        rate = float(list(quotes.values())[-1])
        if rate <= 0:
            raise FeedError(f"fiat feed returned a non-positive rate: {rate}")
        log.debug("fiat_feed_rate", url=self.url, rate=rate)
        return 1.0 / rate
