"""Order reconciler - diff target orders against live offers into create/modify/delete operations."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import structlog

from offerbook.models import DEFAULT_EPSILON, Asset, Number, Offer, Operation, Order, OrderConstraints, invert_buy
from offerbook.trading.liabilities import LiabilityTracker

log = structlog.get_logger(__name__)


class OfferVenue(Protocol):
    """Operation builders of the venue offers are posted on.

    Create/modify return None when the venue abandons the operation (e.g. no capacity).
    Buy-side builders take price/amount in base terms and invert them for the ledger.
    """

    def create_sell_offer(
        self, base: Asset, quote: Asset, price: Number, amount: Number, fee_buffer: float
    ) -> Operation | None: ...

    def create_buy_offer(
        self, base: Asset, quote: Asset, price: Number, amount: Number, fee_buffer: float
    ) -> Operation | None: ...

    def modify_sell_offer(self, offer: Offer, price: Number, amount: Number, fee_buffer: float) -> Operation | None: ...

    def modify_buy_offer(self, offer: Offer, price: Number, amount: Number, fee_buffer: float) -> Operation | None: ...

    def delete_offer(self, offer: Offer) -> Operation: ...

    def compute_fee_buffer(self, is_new_offer: bool) -> float: ...


class OrderReconciler:
    """Reconciles one side of the book.

    Targets and live offers are both best-price-first and paired by index. Buy-side
    live offers are stored inverted (selling quote for base), so each target is put in
    the exact form its offer would be posted with before comparison.
    """

    def __init__(
        self,
        venue: OfferVenue,
        liabilities: LiabilityTracker,
        base_asset: Asset,
        quote_asset: Asset,
        primary_constraints: OrderConstraints,
        backing_constraints: OrderConstraints | None = None,
        is_buy_side: bool = False,
        epsilon: float = DEFAULT_EPSILON,
    ) -> None:
        self.venue = venue
        self.liabilities = liabilities
        self.base_asset = base_asset
        self.quote_asset = quote_asset
        self.primary_constraints = primary_constraints
        self.backing_constraints = backing_constraints or primary_constraints
        self.is_buy_side = is_buy_side
        self.epsilon = epsilon

    @property
    def side(self) -> str:
        return "buy" if self.is_buy_side else "sell"

    @property
    def min_base_volume(self) -> Number:
        return self.backing_constraints.min_base_volume

    def reconcile(self, targets: Sequence[Order], live_offers: Sequence[Offer]) -> list[Operation]:
        """Return the operations that move ``live_offers`` to ``targets``, deletes first.

        Raises NumberParseError (before touching liabilities) if any paired live offer
        has a malformed price or amount.
        """
        n_paired = min(len(targets), len(live_offers))
        parsed = [self._parse(offer) for offer in live_offers[:n_paired]]

        ops: list[Operation] = []
        delete_ops: list[Operation] = []
        kept = 0
        for offer, (old_price, old_amount), target in zip(live_offers, parsed, targets):
            modify_op, delete_op = self._reconcile_pair(offer, old_price, old_amount, target)
            if modify_op is not None:
                ops.append(modify_op)
            elif delete_op is not None:
                delete_ops.append(delete_op)
            else:
                kept += 1

        for target in targets[n_paired:]:
            create_op = self._create(target)
            if create_op is not None:
                ops.append(create_op)

        for offer in live_offers[n_paired:]:
            delete_ops.append(self.venue.delete_offer(offer))

        log.info(
            "reconciled",
            side=self.side,
            targets=len(targets),
            live=len(live_offers),
            kept=kept,
            deletes=len(delete_ops),
            upserts=len(ops),
        )
        # deletes go first so the capital they free is available to the rest of the batch
        return delete_ops + ops

    def _parse(self, offer: Offer) -> tuple[Number, Number]:
        price = Number.from_string(offer.price, self.primary_constraints.price_precision)
        amount = Number.from_string(offer.amount, self.primary_constraints.volume_precision)
        return price, amount

    def _target_terms(self, target: Order) -> tuple[Number, Number]:
        price = target.price.cap_precision(self.primary_constraints.price_precision)
        volume = target.volume.cap_precision(self.primary_constraints.volume_precision)
        return price, volume

    def _ledger_form(self, price: Number, volume: Number) -> tuple[Number, Number]:
        """The (price, amount) an offer for this base-terms level is posted with."""
        if not self.is_buy_side:
            return price, volume
        # buy offers sell quote: amount is quote units and price is base per quote
        ledger_price, ledger_amount = invert_buy(price, volume)
        return (
            ledger_price.cap_precision(self.primary_constraints.price_precision),
            ledger_amount.cap_precision(self.primary_constraints.volume_precision),
        )

    def _reconcile_pair(
        self,
        offer: Offer,
        old_price: Number,
        old_amount: Number,
        target: Order,
    ) -> tuple[Operation | None, Operation | None]:
        fee_buffer = self.venue.compute_fee_buffer(False)
        offer_price, offer_amount = self._target_terms(target)
        new_price, new_amount = self._ledger_form(offer_price, offer_amount)
        unchanged = old_price.equals_precision_normalized(
            new_price, self.epsilon
        ) and old_amount.equals_precision_normalized(new_amount, self.epsilon)
        if unchanged:
            self._reserve(offer.selling, offer.buying, old_price, old_amount, fee_buffer)
            return None, None

        if offer_amount < self.min_base_volume:
            log.info(
                "level_deleted_below_min_volume",
                side=self.side,
                offer_id=offer.offer_id,
                volume=offer_amount.as_float(),
                min_base_volume=self.min_base_volume.as_float(),
            )
            return None, self.venue.delete_offer(offer)

        modify = self.venue.modify_buy_offer if self.is_buy_side else self.venue.modify_sell_offer
        op = modify(offer, offer_price, offer_amount, fee_buffer)
        if op is None:
            log.info("modify_abandoned", side=self.side, offer_id=offer.offer_id)
            return None, self.venue.delete_offer(offer)
        self._reserve(op.selling, op.buying, op.price, op.amount, fee_buffer)
        return op, None

    def _create(self, target: Order) -> Operation | None:
        price, volume = self._target_terms(target)
        if volume < self.min_base_volume:
            log.info(
                "level_creation_skipped",
                side=self.side,
                volume=volume.as_float(),
                min_base_volume=self.min_base_volume.as_float(),
            )
            return None

        fee_buffer = self.venue.compute_fee_buffer(True)
        create = self.venue.create_buy_offer if self.is_buy_side else self.venue.create_sell_offer
        op = create(self.base_asset, self.quote_asset, price, volume, fee_buffer)
        if op is None:
            return None
        self._reserve(op.selling, op.buying, op.price, op.amount, fee_buffer)
        return op

    def _reserve(self, selling: Asset, buying: Asset, price: Number, amount: Number, fee_buffer: float) -> None:
        """Reserve capital for an offer in ledger terms: ``amount`` of selling for ``amount * price`` of buying."""
        self.liabilities.reserve(selling, buying, amount, amount.multiply(price), fee_buffer)
