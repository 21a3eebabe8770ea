"""Generic REST-bridge venue - any exchange reachable through a ccxt-rest style HTTP bridge."""

from __future__ import annotations

import time
import uuid
from typing import Any

import httpx
import structlog

from offerbook.errors import ConfigError, OfferbookError, SubmissionError
from offerbook.exchanges.base import Exchange, TradesResult
from offerbook.exchanges.rate_limit import TokenBucket, backoff_delay
from offerbook.models import (
    Asset,
    Number,
    OpenOrder,
    Order,
    OrderAction,
    OrderBook,
    OrderConstraints,
    OrderType,
    Ticker,
    Trade,
    TradingPair,
)

log = structlog.get_logger(__name__)

DEFAULT_PRECISION = 8


class BridgeError(OfferbookError):
    """The bridge returned an error or an unexpected payload."""


def _field(raw: dict[str, Any], key: str) -> Any:
    if key not in raw or raw[key] is None:
        raise BridgeError(f"response did not contain the '{key}' field: {raw}")
    return raw[key]


class RestBridgeExchange(Exchange):
    """Calls ``POST {base_url}/exchanges/{exchange}/{instance}/{method}`` with a JSON list of args."""

    def __init__(
        self,
        base_url: str,
        exchange_name: str,
        api_key: str = "",
        secret: str = "",
        precision: int = DEFAULT_PRECISION,
        delimiter: str = "/",
        timeout: float = 30.0,
        rate_limit_per_sec: float = 10.0,
        max_retries: int = 3,
        acquire_timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.name = f"bridge-{exchange_name}"
        self.base_url = base_url.rstrip("/")
        self.exchange_name = exchange_name
        self.api_key = api_key
        self.secret = secret
        self.precision = precision
        self.delimiter = delimiter
        self.max_retries = max_retries
        self.acquire_timeout = acquire_timeout
        self.instance_id = f"offerbook-{uuid.uuid4().hex[:8]}"
        self._client = client or httpx.Client(timeout=timeout)
        self._limiter = TokenBucket(rate=rate_limit_per_sec)
        self._initialized = False
        self._markets: dict[str, Any] | None = None

    def close(self) -> None:
        self._client.close()

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        try:
            resp = self._client.post(
                f"{self.base_url}/exchanges/{self.exchange_name}",
                json={"id": self.instance_id, "apiKey": self.api_key, "secret": self.secret},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise BridgeError(f"could not create {self.exchange_name} instance on the bridge: {e}") from e
        self._initialized = True
        log.info("bridge_exchange_initialized", exchange=self.exchange_name, instance_id=self.instance_id)

    def _call(self, method: str, *args: Any) -> Any:
        self._ensure_initialized()
        url = f"{self.base_url}/exchanges/{self.exchange_name}/{self.instance_id}/{method}"
        attempt = 0
        while True:
            if not self._limiter.acquire(timeout=self.acquire_timeout):
                raise BridgeError(f"rate limiter gave no slot for {method} within {self.acquire_timeout}s")
            try:
                resp = self._client.post(url, json=list(args))
            except httpx.HTTPError as e:
                raise BridgeError(f"error calling {method} on {self.exchange_name}: {e}") from e
            if resp.status_code == 429 and attempt < self.max_retries:
                delay = backoff_delay(attempt, resp.headers.get("Retry-After"))
                log.warning("bridge_rate_limited", method=method, attempt=attempt, delay_sec=delay)
                time.sleep(delay)
                attempt += 1
                continue
            if resp.status_code >= 400:
                raise BridgeError(f"{method} on {self.exchange_name} failed with {resp.status_code}: {resp.text}")
            return resp.json()

    def symbol(self, pair: TradingPair) -> str:
        return pair.to_string(self.delimiter)

    def _number(self, value: Any, precision: int | None = None) -> Number:
        return Number.from_float(float(value), self.precision if precision is None else precision)

    def get_ticker_price(self, pairs: list[TradingPair]) -> dict[TradingPair, Ticker]:
        result = {}
        for pair in pairs:
            raw = self._call("fetchTicker", self.symbol(pair))
            last = raw.get("last")
            result[pair] = Ticker(
                ask_price=self._number(_field(raw, "ask")),
                bid_price=self._number(_field(raw, "bid")),
                last_price=self._number(last) if last is not None else None,
            )
        return result

    def get_order_book(self, pair: TradingPair, max_count: int) -> OrderBook:
        raw = self._call("fetchOrderBook", self.symbol(pair), max_count)
        asks = self._read_levels(_field(raw, "asks"), pair, OrderAction.SELL)
        bids = self._read_levels(_field(raw, "bids"), pair, OrderAction.BUY)
        return OrderBook(pair=pair, asks=asks, bids=bids)

    def _read_levels(self, levels: list[list[float]], pair: TradingPair, action: OrderAction) -> list[Order]:
        return [
            Order(
                pair=pair,
                action=action,
                type=OrderType.LIMIT,
                price=self._number(level[0]),
                volume=self._number(level[1]),
            )
            for level in levels
        ]

    def get_trades(self, pair: TradingPair, cursor: Any = None) -> TradesResult:
        symbol = self.symbol(pair)
        raw_trades = self._call("fetchTrades", symbol)
        trades = []
        last_ts = cursor
        for raw in raw_trades:
            if raw.get("symbol") != symbol:
                raise BridgeError(f"expected '{symbol}' for 'symbol' field, got: {raw.get('symbol')}")
            ts = raw.get("timestamp")
            if cursor is not None and ts is not None and ts <= cursor:
                continue
            trades.append(self._read_trade(pair, raw))
            if ts is not None and (last_ts is None or ts > last_ts):
                last_ts = ts
        return TradesResult(cursor=last_ts, trades=trades)

    def _read_trade(self, pair: TradingPair, raw: dict[str, Any]) -> Trade:
        side = raw.get("side")
        if side not in ("buy", "sell"):
            raise BridgeError(f"unrecognized value for 'side' field: {side}")
        cost = raw.get("cost")
        return Trade(
            pair=pair,
            action=OrderAction(side),
            price=self._number(_field(raw, "price")),
            volume=self._number(_field(raw, "amount")),
            timestamp=raw.get("timestamp"),
            transaction_id=str(raw.get("id")) if raw.get("id") is not None else None,
            # cost is derived from price and amount so it gets twice the precision
            cost=self._number(cost, self.precision * 2) if cost else None,
        )

    def get_open_orders(self, pairs: list[TradingPair]) -> dict[TradingPair, list[OpenOrder]]:
        result: dict[TradingPair, list[OpenOrder]] = {}
        for pair in pairs:
            orders = []
            for raw in self._call("fetchOpenOrders", self.symbol(pair)):
                if raw.get("type") != "limit":
                    raise BridgeError(f"only limit orders are supported, got: {raw.get('type')}")
                orders.append(
                    OpenOrder(
                        pair=pair,
                        action=OrderAction.BUY if raw.get("side") == "buy" else OrderAction.SELL,
                        price=self._number(_field(raw, "price")),
                        volume=self._number(_field(raw, "amount")),
                        timestamp=raw.get("timestamp"),
                        order_id=str(_field(raw, "id")),
                        volume_executed=self._number(raw.get("filled") or 0),
                    )
                )
            result[pair] = orders
        return result

    def add_order(self, order: Order) -> str | None:
        side = "buy" if order.action.is_buy else "sell"
        try:
            raw = self._call(
                "createOrder",
                self.symbol(order.pair),
                "limit",
                side,
                order.volume.as_float(),
                order.price.as_float(),
            )
        except BridgeError as e:
            raise SubmissionError(f"error while creating limit order {order}: {e}") from e
        order_id = raw.get("id") if isinstance(raw, dict) else None
        log.info("bridge_order_created", order=str(order), order_id=order_id)
        return str(order_id) if order_id is not None else None

    def cancel_order(self, order_id: str, pair: TradingPair) -> bool:
        self._call("cancelOrder", order_id, self.symbol(pair))
        return True

    def _load_markets(self) -> dict[str, Any]:
        if self._markets is None:
            self._markets = self._call("loadMarkets")
        return self._markets

    def get_order_constraints(self, pair: TradingPair) -> OrderConstraints:
        market = self._load_markets().get(self.symbol(pair))
        if market is None:
            raise ConfigError(f"exchange {self.exchange_name} does not list market {self.symbol(pair)}")
        precision = market.get("precision") or {}
        limits = (market.get("limits") or {}).get("amount") or {}
        return OrderConstraints.make(
            price_precision=int(precision.get("price", self.precision)),
            volume_precision=int(precision.get("amount", self.precision)),
            min_base_volume=float(limits.get("min") or 0.0),
        )

    def get_account_balances(self, assets: list[Asset]) -> dict[Asset, Number]:
        raw = self._call("fetchBalance")
        result = {}
        for asset in assets:
            entry = raw.get(asset.code)
            total = entry.get("total", 0.0) if isinstance(entry, dict) else 0.0
            result[asset] = self._number(total or 0.0)
        return result
