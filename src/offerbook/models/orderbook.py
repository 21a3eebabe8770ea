"""OrderBook, Ticker - market snapshots read from a venue."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from offerbook.models.asset import TradingPair
from offerbook.models.number import Number
from offerbook.models.order import Order


class OrderBook(BaseModel):
    """L2 book for one pair. Asks ascending by price, bids descending."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    pair: TradingPair
    asks: list[Order] = Field(default_factory=list)
    bids: list[Order] = Field(default_factory=list)

    @property
    def best_bid(self) -> Number | None:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Number | None:
        return self.asks[0].price if self.asks else None


class Ticker(BaseModel):
    """Top-of-book prices."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ask_price: Number
    bid_price: Number
    last_price: Number | None = None

    @property
    def mid_price(self) -> Number:
        return self.bid_price.add(self.ask_price).divide(Number(2, 0))
