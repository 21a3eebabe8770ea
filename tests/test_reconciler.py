"""Order reconciler: target vs live offer diffing."""

import pytest

from offerbook.errors import NumberParseError
from offerbook.exchanges.ledger import LedgerVenue, PaperBroadcaster
from offerbook.models import Number, Offer, OperationKind, Order, OrderAction
from offerbook.trading.liabilities import LiabilityTracker
from offerbook.trading.reconciler import OrderReconciler

FEE = 0.00001


def _order(pair, action, price, volume):
    return Order(
        pair=pair,
        action=action,
        price=Number.from_float(price, 7),
        volume=Number.from_float(volume, 7),
    )


def _sell_offer(offer_id, price, amount, native, usd):
    return Offer(offer_id=offer_id, selling=native, buying=usd, price=price, amount=amount)


@pytest.fixture
def sell_reconciler(venue, liabilities, native, usd, constraints):
    return OrderReconciler(venue, liabilities, native, usd, constraints)


@pytest.fixture
def buy_reconciler(venue, liabilities, native, usd, constraints):
    return OrderReconciler(venue, liabilities, native, usd, constraints, is_buy_side=True)


def test_unchanged_offer_is_kept_and_reserves_capital(sell_reconciler, liabilities, pair, native, usd):
    targets = [_order(pair, OrderAction.SELL, 0.1, 100)]
    live = [_sell_offer(1, "0.1000000", "100.0000000", native, usd)]
    ops = sell_reconciler.reconcile(targets, live)
    assert ops == []
    assert liabilities.liabilities(native).selling.as_float() == pytest.approx(100 + FEE)
    assert liabilities.liabilities(usd).buying.as_float() == pytest.approx(10.0)


def test_creates_one_offer_per_surplus_target(sell_reconciler, pair):
    targets = [
        _order(pair, OrderAction.SELL, 0.10, 100),
        _order(pair, OrderAction.SELL, 0.11, 50),
        _order(pair, OrderAction.SELL, 0.12, 25),
    ]
    ops = sell_reconciler.reconcile(targets, [])
    assert [op.kind for op in ops] == [OperationKind.CREATE] * 3
    assert [op.amount.as_float() for op in ops] == [100, 50, 25]


def test_create_skips_targets_below_min_volume(sell_reconciler, pair):
    targets = [_order(pair, OrderAction.SELL, 0.10, 100), _order(pair, OrderAction.SELL, 0.11, 0.5)]
    ops = sell_reconciler.reconcile(targets, [])
    assert len(ops) == 1


def test_changed_offer_is_modified(sell_reconciler, pair, native, usd):
    targets = [_order(pair, OrderAction.SELL, 0.11, 100)]
    live = [_sell_offer(1, "0.1000000", "100.0000000", native, usd)]
    ops = sell_reconciler.reconcile(targets, live)
    assert len(ops) == 1
    assert ops[0].kind is OperationKind.MODIFY
    assert ops[0].offer_id == 1
    assert ops[0].price.as_string() == "0.1100000"


def test_surplus_live_offers_are_deleted_first(sell_reconciler, pair, native, usd):
    targets = [_order(pair, OrderAction.SELL, 0.1, 100)]
    live = [
        _sell_offer(1, "0.2000000", "50.0000000", native, usd),
        _sell_offer(2, "0.3000000", "50.0000000", native, usd),
    ]
    ops = sell_reconciler.reconcile(targets, live)
    assert [(op.kind, op.offer_id) for op in ops] == [(OperationKind.DELETE, 2), (OperationKind.MODIFY, 1)]
    assert ops[0].amount.is_zero()


def test_changed_offer_below_min_volume_is_deleted(sell_reconciler, pair, native, usd):
    targets = [_order(pair, OrderAction.SELL, 0.1, 0.5)]
    live = [_sell_offer(1, "0.1000000", "100.0000000", native, usd)]
    ops = sell_reconciler.reconcile(targets, live)
    assert [(op.kind, op.offer_id) for op in ops] == [(OperationKind.DELETE, 1)]


def test_abandoned_modify_degrades_to_delete(sell_reconciler, liabilities, pair, native, usd):
    liabilities.reset({native: 0.0, usd: 0.0})
    targets = [_order(pair, OrderAction.SELL, 0.2, 100)]
    live = [_sell_offer(1, "0.1000000", "100.0000000", native, usd)]
    ops = sell_reconciler.reconcile(targets, live)
    assert [(op.kind, op.offer_id) for op in ops] == [(OperationKind.DELETE, 1)]
    assert liabilities.liabilities(native).selling.is_zero()


def test_malformed_live_offer_aborts_before_reserving(sell_reconciler, liabilities, pair, native, usd):
    targets = [_order(pair, OrderAction.SELL, 0.1, 100), _order(pair, OrderAction.SELL, 0.2, 100)]
    live = [
        _sell_offer(1, "0.1000000", "100.0000000", native, usd),
        _sell_offer(2, "not-a-price", "100.0000000", native, usd),
    ]
    with pytest.raises(NumberParseError):
        sell_reconciler.reconcile(targets, live)
    assert liabilities.liabilities(native).selling.is_zero()


def test_buy_side_compares_inverted_offers(buy_reconciler, liabilities, pair, native, usd):
    targets = [_order(pair, OrderAction.BUY, 0.1, 100)]
    # selling 10 USD at 10 native per USD == bidding for 100 native at 0.1
    live = [Offer(offer_id=5, selling=usd, buying=native, price="10.0000000", amount="10.0000000")]
    assert buy_reconciler.reconcile(targets, live) == []
    assert liabilities.liabilities(usd).selling.as_float() == pytest.approx(10.0)
    assert liabilities.liabilities(native).buying.as_float() == pytest.approx(100.0)


def test_buy_side_create_is_inverted(buy_reconciler, pair, native, usd):
    ops = buy_reconciler.reconcile([_order(pair, OrderAction.BUY, 0.1, 100)], [])
    assert len(ops) == 1
    assert ops[0].selling == usd
    assert ops[0].buying == native
    assert ops[0].price.as_float() == 10.0
    assert ops[0].amount.as_float() == 10.0


def test_reconcile_is_idempotent_once_applied(sell_reconciler, venue, liabilities, broadcaster, pair, native, usd):
    targets = [_order(pair, OrderAction.SELL, 0.10, 100), _order(pair, OrderAction.SELL, 0.11, 50)]
    ops = sell_reconciler.reconcile(targets, [])
    venue.submit_ops(ops)

    liabilities.reset(broadcaster.load_balances())
    selling, buying = venue.load_offers(native, usd)
    assert len(selling) == 2
    assert buying == []
    assert sell_reconciler.reconcile(targets, selling) == []


def test_buy_side_is_idempotent_for_inexact_inverse_prices(
    buy_reconciler, venue, liabilities, broadcaster, pair, native, usd
):
    # 1/0.3 does not fit in 7 digits; the posted offer must still compare equal
    targets = [_order(pair, OrderAction.BUY, 0.3, 10000)]
    ops = buy_reconciler.reconcile(targets, [])
    assert [(op.price.as_string(), op.amount.as_string()) for op in ops] == [("3.3333333", "3000.0000000")]
    venue.submit_ops(ops)

    liabilities.reset(broadcaster.load_balances())
    selling, buying = venue.load_offers(native, usd)
    assert selling == []
    assert len(buying) == 1
    assert buy_reconciler.reconcile(targets, buying) == []


def test_two_offers_can_use_up_the_whole_balance(pair, native, usd, constraints):
    # the quote side is not charged the native fee, so the exact balance is spendable
    liabilities = LiabilityTracker()
    liabilities.reset({native: 100.0, usd: 0.3})
    venue = LedgerVenue(PaperBroadcaster(), liabilities)
    reconciler = OrderReconciler(
        venue,
        liabilities,
        native,
        usd,
        constraints.model_copy(update={"min_base_volume": Number.from_float(0.1, 7)}),
        is_buy_side=True,
    )
    targets = [_order(pair, OrderAction.BUY, 0.1, 1), _order(pair, OrderAction.BUY, 0.1, 2)]
    ops = reconciler.reconcile(targets, [])
    assert [op.amount.as_string() for op in ops] == ["0.1000000", "0.2000000"]
    assert liabilities.remaining(usd).is_zero()
