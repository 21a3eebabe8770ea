"""Canonical schema (Pydantic) - Asset, Number, Order, Offer, Operation, Trade."""

from offerbook.models.asset import Asset, TradingPair
from offerbook.models.number import DEFAULT_EPSILON, Number
from offerbook.models.operation import Operation, OperationKind
from offerbook.models.order import (
    Level,
    Offer,
    OpenOrder,
    Order,
    OrderAction,
    OrderConstraints,
    OrderType,
    invert_buy,
)
from offerbook.models.orderbook import OrderBook, Ticker
from offerbook.models.trade import Trade

__all__ = [
    "Asset",
    "TradingPair",
    "Number",
    "DEFAULT_EPSILON",
    "Operation",
    "OperationKind",
    "Level",
    "Offer",
    "OpenOrder",
    "Order",
    "OrderAction",
    "OrderConstraints",
    "OrderType",
    "OrderBook",
    "Ticker",
    "Trade",
    "invert_buy",
]
