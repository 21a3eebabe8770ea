"""Mirror strategy - copies a backing venue's book onto ours and offsets our fills there."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from pydantic import BaseModel, Field

from offerbook.errors import SubmissionError
from offerbook.exchanges.base import TradeAPI
from offerbook.models import Number, Offer, Operation, Order, OrderAction, OrderConstraints, Trade, TradingPair
from offerbook.strategies.base import FillHandler, Strategy, StrategyContext, apply_filters
from offerbook.trading.reconciler import OrderReconciler

log = structlog.get_logger(__name__)

# one transaction carries at most 100 operations
DEFAULT_MAX_LEVELS_PER_SIDE = 50


class MirrorConfig(BaseModel):
    exchange: str
    exchange_base: str
    exchange_quote: str
    orderbook_depth: int = Field(20, gt=0)
    volume_divide_by: float = Field(1.0, gt=0)
    per_level_spread: float = Field(0.0, ge=0, lt=1)
    offset_trades: bool = False
    release_on_failure: bool = False
    max_levels_per_side: int = Field(DEFAULT_MAX_LEVELS_PER_SIDE, gt=0)


@dataclass
class AssetSurplus:
    """Base volume filled on our venue that still needs offsetting in one direction."""

    total: Number
    committed: Number

    @classmethod
    def empty(cls, precision: int) -> AssetSurplus:
        return cls(total=Number.zero(precision), committed=Number.zero(precision))

    @property
    def uncommitted(self) -> Number:
        return self.total.subtract(self.committed)


class MirrorStrategy(Strategy):
    """Quotes the backing book (spread applied per level, volume divided) on both sides.

    When ``offset_trades`` is on, every fill on our venue is hedged with the reverse
    order on the backing venue. Fills are serialized by one lock that stays held
    while the hedge is submitted.
    """

    def __init__(
        self,
        ctx: StrategyContext,
        config: MirrorConfig,
        trade_api: TradeAPI,
        backing_pair: TradingPair,
        backing_constraints: OrderConstraints | None = None,
    ) -> None:
        self.ctx = ctx
        self.config = config
        self.trade_api = trade_api
        self.backing_pair = backing_pair
        self.backing_constraints = backing_constraints or trade_api.get_order_constraints(backing_pair)
        self._lock = threading.Lock()
        precision = self.backing_constraints.volume_precision
        self.base_surplus: dict[OrderAction, AssetSurplus] = {
            OrderAction.BUY: AssetSurplus.empty(precision),
            OrderAction.SELL: AssetSurplus.empty(precision),
        }
        self.buy_reconciler = self._make_reconciler(is_buy_side=True)
        self.sell_reconciler = self._make_reconciler(is_buy_side=False)

    def _make_reconciler(self, is_buy_side: bool) -> OrderReconciler:
        return OrderReconciler(
            venue=self.ctx.venue,
            liabilities=self.ctx.liabilities,
            base_asset=self.ctx.base_asset,
            quote_asset=self.ctx.quote_asset,
            primary_constraints=self.ctx.primary_constraints,
            backing_constraints=self.backing_constraints,
            is_buy_side=is_buy_side,
        )

    def _targets(self, levels: Sequence[Order], price_multiplier: float) -> list[Order]:
        divide_by = self.config.volume_divide_by
        return [
            Order(
                pair=self.ctx.pair,
                action=level.action,
                price=level.price.scale(price_multiplier),
                volume=level.volume.scale(1.0 / divide_by),
            )
            for level in levels
        ]

    def update_with_ops(self, buying_offers: Sequence[Offer], selling_offers: Sequence[Offer]) -> list[Operation]:
        ob = self.trade_api.get_order_book(self.backing_pair, self.config.orderbook_depth)
        max_levels = self.config.max_levels_per_side
        bids = ob.bids[:max_levels]
        asks = ob.asks[:max_levels]

        spread = self.config.per_level_spread
        bid_targets = apply_filters(self.ctx.filters, self._targets(bids, 1 - spread), buying_offers)
        ask_targets = apply_filters(self.ctx.filters, self._targets(asks, 1 + spread), selling_offers)

        buy_ops = self.buy_reconciler.reconcile(bid_targets, buying_offers)
        sell_ops = self.sell_reconciler.reconcile(ask_targets, selling_offers)
        log.info("mirror_update", buy_ops=len(buy_ops), sell_ops=len(sell_ops))

        # when the backing bid crosses our lowest ask, move the asks out of the way first
        best_bid = ob.best_bid
        if best_bid is not None and selling_offers and best_bid.as_float() >= float(selling_offers[0].price):
            return sell_ops + buy_ops
        return buy_ops + sell_ops

    def get_fill_handlers(self) -> list[FillHandler]:
        if self.config.offset_trades:
            return [self]
        return []

    def _base_volume_to_offset(self, trade: Trade, action: OrderAction) -> Number | None:
        surplus = self.base_surplus[action]
        uncommitted = surplus.uncommitted
        min_base = self.backing_constraints.min_base_volume
        if uncommitted < min_base.scale(0.5):
            log.info(
                "offset_skip",
                trade_id=trade.transaction_id,
                trade_base_amt=trade.volume.as_float(),
                trade_price=trade.price.as_float(),
                min_base_volume=min_base.as_float(),
                new_order_action=action.value,
                base_surplus_total=surplus.total.as_float(),
                base_surplus_committed=surplus.committed.as_float(),
            )
            return None
        if uncommitted > min_base:
            volume = uncommitted
        else:
            # offset the minimum and carry the deficit in the surplus
            volume = min_base
        return volume.cap_precision(self.backing_constraints.volume_precision)

    def handle_fill(self, trade: Trade) -> None:
        with self._lock:
            action = trade.action.reverse()
            surplus = self.base_surplus[action]
            surplus.total = surplus.total.add(trade.volume)

            volume = self._base_volume_to_offset(trade, action)
            if volume is None:
                return
            surplus.committed = surplus.committed.add(volume)

            new_order = Order(
                pair=self.backing_pair,
                action=action,
                price=trade.price.cap_precision(self.backing_constraints.price_precision),
                volume=volume,
            )
            log.info(
                "offset_attempt",
                trade_id=trade.transaction_id,
                trade_base_amt=trade.volume.as_float(),
                trade_price=trade.price.as_float(),
                new_order_action=action.value,
                base_surplus_total=surplus.total.as_float(),
                base_surplus_committed=surplus.committed.as_float(),
                new_order_base_amt=new_order.volume.as_float(),
                new_order_price=new_order.price.as_float(),
            )
            try:
                transaction_id = self.trade_api.add_order(new_order)
            except Exception as e:
                self._on_offset_failure(surplus, volume)
                raise SubmissionError(f"error when offsetting trade (new_order={new_order}): {e}") from e
            if transaction_id is None:
                self._on_offset_failure(surplus, volume)
                raise SubmissionError(f"error when offsetting trade (new_order={new_order}): transaction id was None")

            surplus.total = surplus.total.subtract(volume)
            surplus.committed = surplus.committed.subtract(volume)
            log.info(
                "offset_success",
                trade_id=trade.transaction_id,
                new_order_action=action.value,
                base_surplus_total=surplus.total.as_float(),
                base_surplus_committed=surplus.committed.as_float(),
                new_order_base_amt=new_order.volume.as_float(),
                transaction_id=transaction_id,
            )

    def _on_offset_failure(self, surplus: AssetSurplus, volume: Number) -> None:
        if self.config.release_on_failure:
            surplus.committed = surplus.committed.subtract(volume)
        log.error(
            "offset_failed",
            volume=volume.as_float(),
            released=self.config.release_on_failure,
            base_surplus_committed=surplus.committed.as_float(),
        )
