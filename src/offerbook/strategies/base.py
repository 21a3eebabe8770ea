"""Strategy protocol - venue-agnostic; the trader drives one pass per tick."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import structlog

from offerbook.models import Asset, Offer, Operation, Order, OrderConstraints, Trade, TradingPair
from offerbook.trading.liabilities import LiabilityTracker
from offerbook.trading.reconciler import OfferVenue

log = structlog.get_logger(__name__)


class FillHandler(Protocol):
    """Receives every fill of our offers, oldest first."""

    def handle_fill(self, trade: Trade) -> None: ...


class SubmitFilter(Protocol):
    """Narrows a target order list before reconciliation."""

    name: str

    def apply(self, orders: Sequence[Order], live_offers: Sequence[Offer] = ()) -> list[Order]: ...


@dataclass
class StrategyContext:
    """What every strategy needs from the trader: the venue, capital, and the traded pair."""

    venue: OfferVenue
    liabilities: LiabilityTracker
    pair: TradingPair
    primary_constraints: OrderConstraints
    filters: list[SubmitFilter] = field(default_factory=list)

    @property
    def base_asset(self) -> Asset:
        return self.pair.base

    @property
    def quote_asset(self) -> Asset:
        return self.pair.quote


def apply_filters(
    filters: Sequence[SubmitFilter], orders: Sequence[Order], live_offers: Sequence[Offer] = ()
) -> list[Order]:
    """Run ``orders`` through each filter in turn."""
    result = list(orders)
    for f in filters:
        before = len(result)
        result = f.apply(result, live_offers)
        log.debug("filter_applied", filter=f.name, before=before, after=len(result))
    return result


class Strategy(ABC):
    """Base for strategies."""

    def pre_update(self, max_base: float, max_quote: float, trust_base: float, trust_quote: float) -> None:
        """Called before ``update_with_ops`` with the tradable balances and trust limits."""
        pass

    @abstractmethod
    def update_with_ops(self, buying_offers: Sequence[Offer], selling_offers: Sequence[Offer]) -> list[Operation]:
        """Operations that move our live offers to the strategy's targets."""
        ...

    def post_update(self) -> None:
        pass

    def get_fill_handlers(self) -> list[FillHandler]:
        return []
