"""Trade log and daily-volume queries against a temp DuckDB."""

import pytest

from offerbook.errors import ConfigError
from offerbook.filters.volume import VolumeFilter, VolumeFilterConfig
from offerbook.models import Number, OrderAction, Trade
from offerbook.storage.markets import list_markets, make_market_id, upsert_market
from offerbook.storage.trades import DailyVolumeByDate, daily_volume, date_string, record_trades

TS = 1_700_000_000_000  # 2023-11-14T22:13:20Z
DAY_MS = 86_400_000


def _trade(pair, action, volume, price, txid, ts=TS):
    return Trade(
        pair=pair,
        action=action,
        price=Number.from_float(price, 7),
        volume=Number.from_float(volume, 7),
        timestamp=ts,
        transaction_id=txid,
    )


def test_make_market_id_is_deterministic():
    a = make_market_id("ledger", "native", "USD")
    assert a == make_market_id("ledger", "native", "USD")
    assert len(a) == 10
    assert a != make_market_id("ledger", "USD", "native")


def test_date_string_is_utc():
    assert date_string(TS) == "2023-11-14"
    assert date_string(TS + 2 * 3600 * 1000) == "2023-11-15"


def test_record_trades_ignores_duplicates(temp_db, pair):
    trades = [_trade(pair, OrderAction.SELL, 10, 0.1, "t1"), _trade(pair, OrderAction.SELL, 5, 0.2, "t2")]
    assert record_trades(temp_db, "m1", trades) == 2
    assert record_trades(temp_db, "m1", trades) == 0
    # same txid on another market is a different fill
    assert record_trades(temp_db, "m2", trades[:1]) == 1


def test_record_trades_skips_missing_txid(temp_db, pair):
    assert record_trades(temp_db, "m1", [_trade(pair, OrderAction.SELL, 10, 0.1, None)]) == 0


def test_daily_volume_sums_one_side_one_day_listed_markets(temp_db, pair):
    record_trades(temp_db, "m1", [
        _trade(pair, OrderAction.SELL, 10, 0.1, "a"),
        _trade(pair, OrderAction.BUY, 7, 0.1, "b"),
        _trade(pair, OrderAction.SELL, 3, 0.1, "c", ts=TS - DAY_MS),
    ])
    record_trades(temp_db, "m2", [_trade(pair, OrderAction.SELL, 5, 0.2, "d")])
    record_trades(temp_db, "m3", [_trade(pair, OrderAction.SELL, 100, 0.2, "e")])

    vol = daily_volume(temp_db, ["m1", "m2"], OrderAction.SELL, "2023-11-14")
    assert vol.base_vol == pytest.approx(15.0)
    assert vol.quote_vol == pytest.approx(2.0)
    assert daily_volume(temp_db, ["m1"], "buy", "2023-11-14").base_vol == pytest.approx(7.0)
    assert daily_volume(temp_db, [], OrderAction.SELL, "2023-11-14").base_vol == 0.0


def test_daily_volume_by_date_needs_market_ids(temp_db):
    with pytest.raises(ConfigError):
        DailyVolumeByDate(temp_db, [], OrderAction.SELL)


def test_volume_filter_reads_its_market_and_additional_ones(temp_db, pair):
    own = make_market_id("ledger", pair.base.code, pair.quote.code)
    record_trades(temp_db, own, [_trade(pair, OrderAction.SELL, 10, 0.1, "a")])
    record_trades(temp_db, "other", [_trade(pair, OrderAction.SELL, 4, 0.1, "b")])
    config = VolumeFilterConfig(sell_base_asset_cap_in_base_units=100.0, additional_market_ids=["other", own])
    f = VolumeFilter.make("ledger", pair, temp_db, config)
    assert f.daily_volume_query.market_ids == [own, "other"]
    assert f.daily_values("2023-11-14").base_vol == pytest.approx(14.0)


def test_upsert_and_list_markets(temp_db):
    market_id = upsert_market(temp_db, "ledger", "native", "USD")
    assert upsert_market(temp_db, "ledger", "native", "USD") == market_id
    assert list_markets(temp_db) == [
        {"market_id": market_id, "exchange_name": "ledger", "base": "native", "quote": "USD"}
    ]
