"""Order, Offer, OrderConstraints, Level - order-side entities."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from offerbook.models.asset import Asset, TradingPair
from offerbook.models.number import Number


class OrderAction(str, Enum):
    BUY = "buy"
    SELL = "sell"

    def reverse(self) -> OrderAction:
        return OrderAction.SELL if self is OrderAction.BUY else OrderAction.BUY

    @property
    def is_buy(self) -> bool:
        return self is OrderAction.BUY


class OrderType(str, Enum):
    LIMIT = "limit"


class OrderConstraints(BaseModel):
    """Per-market limits published by a venue. Read-only to the engine."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    price_precision: int = Field(..., ge=0)
    volume_precision: int = Field(..., ge=0)
    min_base_volume: Number

    @classmethod
    def make(cls, price_precision: int, volume_precision: int, min_base_volume: float) -> OrderConstraints:
        return cls(
            price_precision=price_precision,
            volume_precision=volume_precision,
            min_base_volume=Number.from_float(min_base_volume, volume_precision),
        )


class Order(BaseModel):
    """A target order (no venue identity)."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    pair: TradingPair
    action: OrderAction
    type: OrderType = OrderType.LIMIT
    price: Number
    volume: Number
    timestamp: int | None = None  # ms epoch

    def with_volume(self, volume: Number) -> Order:
        return self.model_copy(update={"volume": volume})

    def __str__(self) -> str:
        return f"Order[{self.action.value} {self.volume} {self.pair.base.code} @ {self.price} {self.pair.quote.code}]"


class OpenOrder(Order):
    """An order resting on a centralized venue."""

    order_id: str
    volume_executed: Number | None = None


class Offer(BaseModel):
    """A live offer on the ledger venue, exactly as posted.

    ``price`` is units of ``buying`` per unit of ``selling``; ``amount`` is in units of
    ``selling``. Both stay as the venue's strings until parsed.
    """

    model_config = ConfigDict(frozen=True)

    offer_id: int
    selling: Asset
    buying: Asset
    price: str
    amount: str


class Level(BaseModel):
    """One price/amount level produced by a level provider."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    price: Number
    amount: Number


def invert_buy(price: Number, volume: Number) -> tuple[Number, Number]:
    """Base-terms bid (price, volume) as the ledger offer that sells quote for it.

    The offer price is base per quote (``1/price``) and its amount is quote units
    (``volume * price``), each held at the input precisions.
    """
    return price.invert(), volume.multiply(price)
