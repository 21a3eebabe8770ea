"""Ledger venue - offers live on a decentralized ledger and change only through submitted operations."""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

import structlog

from offerbook.errors import NumberParseError, SubmissionError
from offerbook.exchanges.base import TradesResult
from offerbook.models import (
    Asset,
    Number,
    Offer,
    Operation,
    OperationKind,
    OrderConstraints,
    Trade,
    TradingPair,
    invert_buy,
)
from offerbook.trading.liabilities import LiabilityTracker

log = structlog.get_logger(__name__)

LEDGER_PRECISION = 7
DEFAULT_BASE_RESERVE = 0.5
DEFAULT_BASE_FEE = 0.00001


def _ledger_number(value: float | Number) -> Number:
    if isinstance(value, Number):
        return Number(value.value, LEDGER_PRECISION)
    return Number.from_float(value, LEDGER_PRECISION)


class Broadcaster(Protocol):
    """Reads account state from, and submits operation batches to, the ledger."""

    def load_offers(self) -> list[Offer]: ...
    def load_balances(self) -> dict[Asset, float]: ...
    def load_trust_limits(self) -> dict[Asset, float]: ...
    def submit(self, ops: Sequence[Operation]) -> str: ...
    def fetch_trades(self, cursor: Any = None) -> TradesResult: ...


class PaperBroadcaster:
    """In-memory ledger account. Applies operations atomically and records trades injected by callers."""

    def __init__(
        self,
        balances: dict[Asset, float] | None = None,
        trust_limits: dict[Asset, float] | None = None,
        start_offer_id: int = 1,
    ) -> None:
        self.balances = dict(balances or {})
        self.trust_limits = dict(trust_limits or {})
        self.offers: dict[int, Offer] = {}
        self.submitted: list[list[Operation]] = []
        self._trades: list[Trade] = []
        self._next_id = start_offer_id
        self._lock = threading.Lock()

    def load_offers(self) -> list[Offer]:
        with self._lock:
            return list(self.offers.values())

    def load_balances(self) -> dict[Asset, float]:
        with self._lock:
            return dict(self.balances)

    def load_trust_limits(self) -> dict[Asset, float]:
        return dict(self.trust_limits)

    def submit(self, ops: Sequence[Operation]) -> str:
        with self._lock:
            for op in ops:
                if op.kind is not OperationKind.CREATE and op.offer_id not in self.offers:
                    raise SubmissionError(f"offer {op.offer_id} does not exist", {"op": str(op)})
            for op in ops:
                self._apply(op)
            self.submitted.append(list(ops))
        tx_hash = uuid.uuid4().hex
        log.info("paper_tx_applied", tx_hash=tx_hash, n_ops=len(ops), n_offers=len(self.offers))
        return tx_hash

    def _apply(self, op: Operation) -> None:
        if op.kind is OperationKind.DELETE:
            del self.offers[op.offer_id]
            return
        offer_id = op.offer_id
        if op.kind is OperationKind.CREATE:
            offer_id = self._next_id
            self._next_id += 1
        self.offers[offer_id] = Offer(
            offer_id=offer_id,
            selling=op.selling,
            buying=op.buying,
            price=op.price.as_string(),
            amount=op.amount.as_string(),
        )

    def inject_trade(self, trade: Trade) -> None:
        with self._lock:
            self._trades.append(trade)

    def fetch_trades(self, cursor: Any = None) -> TradesResult:
        start = int(cursor or 0)
        with self._lock:
            trades = self._trades[start:]
            return TradesResult(cursor=len(self._trades), trades=trades)


class LedgerVenue:
    """Builds offer operations for one account and submits them through a ``Broadcaster``.

    Buy-side builders take base-terms price/amount and produce the inverted offer
    (selling quote, price in base per quote, amount in quote units).
    """

    name = "ledger"

    def __init__(
        self,
        broadcaster: Broadcaster,
        liabilities: LiabilityTracker,
        base_reserve: float = DEFAULT_BASE_RESERVE,
        base_fee: float = DEFAULT_BASE_FEE,
        constraints: OrderConstraints | None = None,
    ) -> None:
        self.broadcaster = broadcaster
        self.liabilities = liabilities
        self.base_reserve = base_reserve
        self.base_fee = base_fee
        self.constraints = constraints or OrderConstraints.make(LEDGER_PRECISION, LEDGER_PRECISION, 0.0000001)

    def compute_fee_buffer(self, is_new_offer: bool) -> float:
        """Native amount an operation ties up: the fee, plus a reserve entry for a new offer."""
        if is_new_offer:
            return self.base_fee + self.base_reserve
        return self.base_fee

    def _has_capacity(self, selling: Asset, buying: Asset, sell_amount: Number, buy_amount: Number, fee: float) -> bool:
        fee_amount = _ledger_number(fee)
        if selling.is_native:
            ok_selling = self.liabilities.can_sell(selling, sell_amount.add(fee_amount))
        else:
            ok_selling = self.liabilities.can_sell(selling, sell_amount)
            ok_selling = ok_selling and self.liabilities.can_sell(Asset.native(), fee_amount)
        ok_buying = self.liabilities.can_buy(buying, buy_amount)
        if not (ok_selling and ok_buying):
            capacity = self.liabilities.remaining_capacity(buying)
            log.info(
                "insufficient_capacity",
                selling=str(selling),
                buying=str(buying),
                sell_amount=str(sell_amount),
                buy_amount=str(buy_amount),
                remaining_selling=str(self.liabilities.remaining(selling)),
                remaining_capacity_buying=str(capacity) if capacity is not None else None,
            )
            return False
        return True

    def _op(
        self,
        kind: OperationKind,
        selling: Asset,
        buying: Asset,
        price: Number,
        amount: Number,
        offer_id: int | None = None,
    ) -> Operation:
        return Operation(kind=kind, selling=selling, buying=buying, price=price, amount=amount, offer_id=offer_id)

    def create_sell_offer(
        self, base: Asset, quote: Asset, price: float | Number, amount: float | Number, fee_buffer: float
    ) -> Operation | None:
        price, amount = _ledger_number(price), _ledger_number(amount)
        if not self._has_capacity(base, quote, amount, amount.multiply(price), fee_buffer):
            return None
        return self._op(OperationKind.CREATE, base, quote, price, amount)

    def create_buy_offer(
        self, base: Asset, quote: Asset, price: float | Number, amount: float | Number, fee_buffer: float
    ) -> Operation | None:
        amount = _ledger_number(amount)
        ledger_price, quote_amount = invert_buy(_ledger_number(price), amount)
        if not self._has_capacity(quote, base, quote_amount, amount, fee_buffer):
            return None
        return self._op(OperationKind.CREATE, quote, base, ledger_price, quote_amount)

    def modify_sell_offer(
        self, offer: Offer, price: float | Number, amount: float | Number, fee_buffer: float
    ) -> Operation | None:
        price, amount = _ledger_number(price), _ledger_number(amount)
        if not self._has_capacity(offer.selling, offer.buying, amount, amount.multiply(price), fee_buffer):
            return None
        return self._op(OperationKind.MODIFY, offer.selling, offer.buying, price, amount, offer.offer_id)

    def modify_buy_offer(
        self, offer: Offer, price: float | Number, amount: float | Number, fee_buffer: float
    ) -> Operation | None:
        amount = _ledger_number(amount)
        ledger_price, quote_amount = invert_buy(_ledger_number(price), amount)
        if not self._has_capacity(offer.selling, offer.buying, quote_amount, amount, fee_buffer):
            return None
        return self._op(OperationKind.MODIFY, offer.selling, offer.buying, ledger_price, quote_amount, offer.offer_id)

    def delete_offer(self, offer: Offer) -> Operation:
        try:
            price = Number.from_string(offer.price, LEDGER_PRECISION)
        except NumberParseError:
            log.warning("delete_offer_unparseable_price", offer_id=offer.offer_id, price=offer.price)
            price = Number.zero(LEDGER_PRECISION)
        return Operation(
            kind=OperationKind.DELETE,
            selling=offer.selling,
            buying=offer.buying,
            price=price,
            amount=Number.zero(LEDGER_PRECISION),
            offer_id=offer.offer_id,
        )

    def delete_all_offers(self, offers: Iterable[Offer]) -> list[Operation]:
        return [self.delete_offer(offer) for offer in offers]

    def load_offers(self, base: Asset, quote: Asset) -> tuple[list[Offer], list[Offer]]:
        """Return (selling offers, buying offers), each best price first.

        Both lists are sorted ascending by ledger price: for the inverted buy offers a
        lower base-per-quote price is a higher bid.
        """
        selling: list[Offer] = []
        buying: list[Offer] = []
        for offer in self.broadcaster.load_offers():
            if offer.selling == base and offer.buying == quote:
                selling.append(offer)
            elif offer.selling == quote and offer.buying == base:
                buying.append(offer)

        def key(o: Offer) -> tuple[Number, int]:
            return Number.from_string(o.price, LEDGER_PRECISION), o.offer_id

        return sorted(selling, key=key), sorted(buying, key=key)

    def load_balances(self) -> tuple[dict[Asset, float], dict[Asset, float]]:
        return self.broadcaster.load_balances(), self.broadcaster.load_trust_limits()

    def submit_ops(self, ops: Sequence[Operation]) -> str | None:
        if not ops:
            log.info("no_ops_to_submit")
            return None
        try:
            tx_hash = self.broadcaster.submit(ops)
        except SubmissionError:
            log.error("submit_failed", n_ops=len(ops))
            raise
        log.info("ops_submitted", n_ops=len(ops), tx_hash=tx_hash)
        return tx_hash

    def get_order_constraints(self, pair: TradingPair) -> OrderConstraints:
        return self.constraints

    def get_trades(self, cursor: Any = None) -> TradesResult:
        return self.broadcaster.fetch_trades(cursor)
