"""Trader tick loop, fill polling and start-up wiring."""

import pytest

from offerbook.config.settings import Settings
from offerbook.errors import ConfigError, FeedError
from offerbook.exchanges.ledger import PaperBroadcaster
from offerbook.models import Number, Operation, OperationKind, OrderAction, Trade
from offerbook.storage.trades import daily_volume, date_string
from offerbook.strategies.base import Strategy
from offerbook.strategies.registry import build_default_registry
from offerbook.trader import FillTracker, Trader, make_trader


def _settings(**strategy):
    return Settings.from_dict(
        {
            "trader": {"base_asset": "native", "quote_asset": "USD:GISSUER", "tick_interval_sec": 0},
            "bridge": {"exchanges": []},
            "strategy": strategy,
        }
    )


def _create_op(native, usd, price=0.1, amount=10):
    return Operation(
        kind=OperationKind.CREATE,
        selling=native,
        buying=usd,
        price=Number.from_float(price, 7),
        amount=Number.from_float(amount, 7),
    )


def _seeded_broadcaster(native, usd):
    b = PaperBroadcaster({native: 1000.0, usd: 1000.0})
    b.submit([_create_op(native, usd), _create_op(usd, native, price=10.0)])
    return b


class FlakyStrategy(Strategy):
    def __init__(self):
        self.calls = 0

    def update_with_ops(self, buying_offers, selling_offers):
        self.calls += 1
        if self.calls == 1:
            raise FeedError("feed down")
        return []


class RecordingHandler:
    def __init__(self):
        self.trades = []

    def handle_fill(self, trade):
        self.trades.append(trade)


def test_sell_twap_tick_posts_one_offer(temp_db, native, usd):
    settings = _settings(sell_twap={"price_feed_url": "0.5", "seed": 3, "day_of_week_daily_cap": [100.0] * 7})
    broadcaster = PaperBroadcaster({native: 1000.0, usd: 1000.0})
    trader = make_trader(settings, build_default_registry(settings), "sell_twap", conn=temp_db, broadcaster=broadcaster)
    assert trader.tick() == 1
    [offer] = broadcaster.offers.values()
    assert offer.selling == native
    assert offer.price == "0.5000000"


def test_delete_strategy_clears_the_book(native, usd):
    settings = _settings()
    broadcaster = _seeded_broadcaster(native, usd)
    trader = make_trader(settings, build_default_registry(settings), "delete", broadcaster=broadcaster)
    assert trader.tick() == 2
    assert broadcaster.offers == {}


def test_failed_strategy_construction_deletes_offers(native, usd):
    settings = _settings()
    broadcaster = _seeded_broadcaster(native, usd)
    with pytest.raises(ConfigError):
        make_trader(settings, build_default_registry(settings), "mirror", broadcaster=broadcaster)
    assert broadcaster.offers == {}


def test_live_mode_without_broadcaster_is_rejected():
    settings = Settings.from_dict({"trader": {"sim": False}})
    with pytest.raises(ConfigError):
        make_trader(settings, build_default_registry(settings), "delete")


def test_run_continues_after_a_failed_tick(venue, liabilities, pair):
    strategy = FlakyStrategy()
    trader = Trader(venue, liabilities, strategy, pair, tick_interval_sec=0)
    trader.run(max_ticks=3)
    assert strategy.calls == 3
    assert trader.tick_count == 2


def test_fill_tracker_records_and_dispatches(temp_db, venue, broadcaster, pair):
    handler = RecordingHandler()
    tracker = FillTracker(venue, [handler], temp_db, "m1")
    trade = Trade(
        pair=pair,
        action=OrderAction.SELL,
        price=Number.from_float(0.1, 7),
        volume=Number.from_float(10, 7),
        transaction_id="fill-1",
    )
    broadcaster.inject_trade(trade)
    assert tracker.poll() == 1
    assert tracker.poll() == 0
    assert handler.trades == [trade]
    assert daily_volume(temp_db, ["m1"], OrderAction.SELL, date_string()).base_vol == pytest.approx(10.0)
