"""Venue capability set - every exchange integration implements the same contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol

from offerbook.models import Asset, Number, OpenOrder, Order, OrderBook, OrderConstraints, Ticker, Trade, TradingPair


@dataclass
class TradesResult:
    """A page of trades plus the cursor to resume from."""

    cursor: Any = None
    trades: list[Trade] = field(default_factory=list)


class TickerAPI(Protocol):
    """Protocol for ticker lookups (used by exchange price feeds)."""

    def get_ticker_price(self, pairs: list[TradingPair]) -> dict[TradingPair, Ticker]: ...


class TradeAPI(Protocol):
    """Protocol for the subset used to hedge fills on a backing exchange."""

    def get_order_book(self, pair: TradingPair, max_count: int) -> OrderBook: ...
    def get_order_constraints(self, pair: TradingPair) -> OrderConstraints: ...
    def add_order(self, order: Order) -> str | None: ...


class Exchange(ABC):
    """Abstract venue: market data + account + order entry. Implement for each exchange."""

    name: str = ""

    @abstractmethod
    def get_ticker_price(self, pairs: list[TradingPair]) -> dict[TradingPair, Ticker]:
        ...

    @abstractmethod
    def get_order_book(self, pair: TradingPair, max_count: int) -> OrderBook:
        ...

    @abstractmethod
    def get_trades(self, pair: TradingPair, cursor: Any = None) -> TradesResult:
        """Public trades for a pair, oldest first."""
        ...

    @abstractmethod
    def get_open_orders(self, pairs: list[TradingPair]) -> dict[TradingPair, list[OpenOrder]]:
        ...

    @abstractmethod
    def add_order(self, order: Order) -> str | None:
        """Place a limit order. Returns the venue transaction id (None means not placed)."""
        ...

    @abstractmethod
    def cancel_order(self, order_id: str, pair: TradingPair) -> bool:
        ...

    @abstractmethod
    def get_order_constraints(self, pair: TradingPair) -> OrderConstraints:
        ...

    @abstractmethod
    def get_account_balances(self, assets: list[Asset]) -> dict[Asset, Number]:
        ...
