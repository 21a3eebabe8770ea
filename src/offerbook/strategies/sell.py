"""Sell strategy - quotes the levels of a level provider on the sell side only."""

from __future__ import annotations

from collections.abc import Sequence

import structlog
from pydantic import BaseModel, Field, field_validator

from offerbook.levels.base import LevelProvider
from offerbook.models import Offer, Operation, Order, OrderAction
from offerbook.strategies.base import FillHandler, Strategy, StrategyContext, apply_filters
from offerbook.trading.reconciler import OrderReconciler

log = structlog.get_logger(__name__)


class SellTwapConfig(BaseModel):
    """Parameters of the TWAP sell strategy. Daily caps are in base units, Monday first."""

    price_feed_type: str = "fixed"
    price_feed_url: str = "1.0"
    rate_offset_percent: float = 0.0
    rate_offset: float = 0.0
    rate_offset_percent_first: bool = True
    hours_to_sell: int = Field(24, gt=0, le=24)
    bucket_size_seconds: int = Field(3600, gt=0)
    surplus_distribution_ceiling: float = Field(1.0, ge=0, le=1)
    smoothing_factor: float = Field(0.5, ge=0, le=1)
    min_child_order_fraction: float = Field(0.1, ge=0, le=1)
    seed: int | None = None
    day_of_week_daily_cap: list[float]
    additional_market_ids: list[str] = Field(default_factory=list)

    @field_validator("day_of_week_daily_cap")
    @classmethod
    def _seven_days(cls, v: list[float]) -> list[float]:
        if len(v) != 7:
            raise ValueError(f"day_of_week_daily_cap needs 7 entries (Monday first), got {len(v)}")
        if any(cap < 0 for cap in v):
            raise ValueError("day_of_week_daily_cap entries must be >= 0")
        return v


class SellStrategy(Strategy):
    """Sells at the provider's levels and keeps no buy offers."""

    def __init__(self, ctx: StrategyContext, level_provider: LevelProvider) -> None:
        self.ctx = ctx
        self.level_provider = level_provider
        self.max_base = 0.0
        self.max_quote = 0.0
        self.reconciler = OrderReconciler(
            venue=ctx.venue,
            liabilities=ctx.liabilities,
            base_asset=ctx.base_asset,
            quote_asset=ctx.quote_asset,
            primary_constraints=ctx.primary_constraints,
        )

    def pre_update(self, max_base: float, max_quote: float, trust_base: float, trust_quote: float) -> None:
        self.max_base = max_base
        self.max_quote = max_quote

    def update_with_ops(self, buying_offers: Sequence[Offer], selling_offers: Sequence[Offer]) -> list[Operation]:
        levels = self.level_provider.get_levels(self.max_base, self.max_quote)
        targets = [
            Order(pair=self.ctx.pair, action=OrderAction.SELL, price=level.price, volume=level.amount)
            for level in levels
            if level.amount.is_positive()
        ]
        if len(targets) < len(levels):
            log.info("empty_levels_skipped", levels=len(levels), targets=len(targets))
        targets = apply_filters(self.ctx.filters, targets, selling_offers)

        delete_buys = [self.ctx.venue.delete_offer(offer) for offer in buying_offers]
        sell_ops = self.reconciler.reconcile(targets, selling_offers)
        return delete_buys + sell_ops

    def get_fill_handlers(self) -> list[FillHandler]:
        return self.level_provider.get_fill_handlers()
