"""Delete strategy - removes every offer on the configured book."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from offerbook.models import Offer, Operation
from offerbook.strategies.base import Strategy, StrategyContext

log = structlog.get_logger(__name__)


class DeleteStrategy(Strategy):
    def __init__(self, ctx: StrategyContext) -> None:
        self.ctx = ctx

    def update_with_ops(self, buying_offers: Sequence[Offer], selling_offers: Sequence[Offer]) -> list[Operation]:
        ops = [self.ctx.venue.delete_offer(offer) for offer in [*selling_offers, *buying_offers]]
        log.info("delete_all_offers", n_ops=len(ops))
        return ops
