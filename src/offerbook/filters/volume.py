"""Daily traded-volume caps for sell orders, across one or more markets."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Protocol

import structlog
from pydantic import BaseModel, Field

from offerbook.errors import ConfigError
from offerbook.models import Number, Offer, Order, OrderAction, TradingPair
from offerbook.storage.markets import make_market_id
from offerbook.storage.trades import DailyVolume, DailyVolumeByDate, date_string

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


class VolumeFilterMode(str, Enum):
    EXACT = "exact"
    IGNORE = "ignore"


def parse_volume_filter_mode(mode: str) -> VolumeFilterMode:
    try:
        return VolumeFilterMode(mode)
    except ValueError:
        raise ConfigError(f"invalid input mode '{mode}'") from None


class VolumeFilterConfig(BaseModel):
    """Any one cap being hit suspends further selling for the rest of the day."""

    sell_base_asset_cap_in_base_units: float | None = Field(None, ge=0)
    sell_base_asset_cap_in_quote_units: float | None = Field(None, ge=0)
    mode: VolumeFilterMode = VolumeFilterMode.EXACT
    additional_market_ids: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return self.sell_base_asset_cap_in_base_units is None and self.sell_base_asset_cap_in_quote_units is None

    def ensure_valid(self) -> None:
        if self.is_empty():
            raise ConfigError("the volume filter config was empty")

    def __str__(self) -> str:
        return (
            f"VolumeFilterConfig[sell_base_asset_cap_in_base_units={self.sell_base_asset_cap_in_base_units}, "
            f"sell_base_asset_cap_in_quote_units={self.sell_base_asset_cap_in_quote_units}, "
            f"mode={self.mode.value}, additional_market_ids={self.additional_market_ids}]"
        )


class DailyVolumeQuery(Protocol):
    def query(self, date: str) -> DailyVolume: ...


@dataclass
class _Tally:
    base: Decimal = Decimal(0)
    quote: Decimal = Decimal(0)


def _dec(value: float) -> Decimal:
    return Decimal(repr(value))


def dedupe(items: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


class VolumeFilter:
    """Caps cumulative sold volume per UTC day.

    On-the-books volume is read once per ``apply`` call; to-be-booked accumulates the
    orders accepted earlier in the same call, best price first.
    """

    name = "volume_filter"

    def __init__(
        self,
        config: VolumeFilterConfig,
        daily_volume_query: DailyVolumeQuery,
        date_fn: Callable[[], str] = date_string,
    ) -> None:
        config.ensure_valid()
        self.config = config
        self.daily_volume_query = daily_volume_query
        self.date_fn = date_fn

    @classmethod
    def make(
        cls,
        exchange_name: str,
        pair: TradingPair,
        conn: DuckDBPyConnection,
        config: VolumeFilterConfig,
        asset_display: Callable[[str], str] = str,
    ) -> VolumeFilter:
        """Build a filter whose market id is derived from the exchange and the issuer-free asset codes."""
        config.ensure_valid()
        market_id = make_market_id(exchange_name, asset_display(pair.base.code), asset_display(pair.quote.code))
        market_ids = dedupe([market_id, *config.additional_market_ids])
        return cls(config, DailyVolumeByDate(conn, market_ids, OrderAction.SELL))

    def is_selling_base(self) -> bool:
        return not self.config.is_empty()

    def base_cap_in_base_units(self) -> float:
        cap = self.config.sell_base_asset_cap_in_base_units
        if cap is None:
            raise ConfigError(f"volume filter has no base-units cap: {self.config}")
        return cap

    def daily_values(self, date: str) -> DailyVolume:
        return self.daily_volume_query.query(date)

    def apply(self, orders: Sequence[Order], live_offers: Sequence[Offer] = ()) -> list[Order]:
        """Return the orders that fit under today's caps, possibly shrunk, in input order.

        Buy orders always pass.
        """
        date = self.date_fn()
        on_the_books = self.daily_values(date)
        log.info(
            "volume_filter_daily_values",
            date=date,
            base_sold=on_the_books.base_vol,
            quote_sold=on_the_books.quote_vol,
            config=str(self.config),
        )
        otb = _Tally(base=_dec(on_the_books.base_vol), quote=_dec(on_the_books.quote_vol))
        tbb = _Tally()

        # best price first so the most favourable sells consume the cap first
        sell_indexes = sorted(
            (i for i, o in enumerate(orders) if o.action is OrderAction.SELL),
            key=lambda i: orders[i].price,
        )
        results: dict[int, Order | None] = {}
        for i in sell_indexes:
            results[i] = self._filter_sell(orders[i], otb, tbb)

        kept = []
        for i, order in enumerate(orders):
            if order.action is OrderAction.BUY:
                kept.append(order)
            elif results.get(i) is not None:
                kept.append(results[i])
        log.info("volume_filter_applied", orders_in=len(orders), orders_out=len(kept))
        return kept

    def _filter_sell(self, order: Order, otb: _Tally, tbb: _Tally) -> Order | None:
        price = order.price.value
        amount = order.volume.value
        precision = order.volume.precision
        new_amount = amount
        mode = self.config.mode

        keep_base = True
        base_cap = self.config.sell_base_asset_cap_in_base_units
        if base_cap is not None:
            cap = _dec(base_cap)
            projected = otb.base + tbb.base + amount
            keep_base = projected <= cap
            if not keep_base and mode is VolumeFilterMode.EXACT:
                shrunk = Number.truncated(cap - otb.base - tbb.base, precision).value
                if shrunk > 0:
                    new_amount = shrunk
                    keep_base = True
            log.info(
                "volume_filter_sell_base_units",
                price=float(price),
                amount=float(amount),
                projected=float(projected),
                cap=base_cap,
                keep=keep_base,
                new_amount=float(new_amount),
            )

        keep_quote = True
        quote_cap = self.config.sell_base_asset_cap_in_quote_units
        if keep_base and quote_cap is not None:
            cap = _dec(quote_cap)
            projected = otb.quote + tbb.quote + new_amount * price
            keep_quote = projected <= cap
            if not keep_quote and mode is VolumeFilterMode.EXACT and price > 0:
                shrunk = Number.truncated((cap - otb.quote - tbb.quote) / price, precision).value
                if shrunk > 0:
                    new_amount = shrunk
                    keep_quote = True
            log.info(
                "volume_filter_sell_quote_units",
                price=float(price),
                amount=float(amount),
                projected=float(projected),
                cap=quote_cap,
                keep=keep_quote,
                new_amount=float(new_amount),
            )

        if not (keep_base and keep_quote):
            return None
        tbb.base += new_amount
        tbb.quote += new_amount * price
        if new_amount == amount:
            return order
        return order.with_volume(Number(new_amount, precision))
