"""TWAP level provider: bucket transitions, surplus redistribution and round sizing."""

from datetime import datetime, timezone

import pytest

from offerbook.errors import BucketSequenceError, ConfigError
from offerbook.feeds import FixedFeed
from offerbook.filters.volume import VolumeFilter, VolumeFilterConfig
from offerbook.levels.offset import RateOffset
from offerbook.levels.twap import SellTwapLevelProvider
from offerbook.models import OrderConstraints
from offerbook.storage.trades import DailyVolume


class MutableDailyVolume:
    def __init__(self):
        self.base_vol = 0.0

    def query(self, date):
        return DailyVolume(base_vol=self.base_vol)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def at(hour, minute=0, day=1):
    # 2024-01-01 is a Monday
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def sold():
    return MutableDailyVolume()


def _provider(sold, clock, daily_cap=2400.0, seed=7, n_filters=7, **overrides):
    filters = [
        VolumeFilter(VolumeFilterConfig(sell_base_asset_cap_in_base_units=daily_cap), sold) for _ in range(n_filters)
    ]
    kwargs = dict(
        price_feed=FixedFeed(0.5),
        offset=RateOffset(),
        order_constraints=OrderConstraints.make(7, 7, 0.0),
        day_of_week_filters=filters,
        hours_to_sell=24,
        bucket_size_seconds=3600,
        surplus_distribution_ceiling=1.0,
        smoothing_factor=0.5,
        min_child_order_fraction=0.1,
        seed=seed,
        clock=clock,
    )
    kwargs.update(overrides)
    return SellTwapLevelProvider(**kwargs)


@pytest.mark.parametrize(
    "overrides",
    [
        {"hours_to_sell": 0},
        {"hours_to_sell": 25},
        {"bucket_size_seconds": 7000},
        {"bucket_size_seconds": 0},
        {"smoothing_factor": 1.5},
        {"surplus_distribution_ceiling": -0.1},
        {"min_child_order_fraction": 2.0},
        {"n_filters": 6},
    ],
)
def test_invalid_config_is_rejected(sold, overrides):
    with pytest.raises(ConfigError):
        _provider(sold, Clock(at(0, 30)), **overrides)


def test_first_bucket_spreads_the_daily_cap(sold):
    p = _provider(sold, Clock(at(0, 30)))
    levels = p.get_levels(1e9, 1e9)
    assert len(levels) == 1
    assert levels[0].price.as_float() == 0.5
    assert 10.0 <= levels[0].amount.as_float() <= 100.0
    bucket = p.active_bucket
    assert bucket.bucket_id == 0
    assert bucket.total_buckets == 24
    assert bucket.base_capacity == pytest.approx(100.0)
    assert bucket.min_order_size_base == pytest.approx(10.0)
    assert bucket.dynamic.round_id == 0


def test_same_bucket_tracks_what_was_sold(sold):
    clock = Clock(at(0, 30))
    p = _provider(sold, clock)
    p.get_levels(1e9, 1e9)
    sold.base_vol = 40.0
    clock.now = at(0, 45)
    levels = p.get_levels(1e9, 1e9)
    assert p.active_bucket.dynamic.base_sold == 40.0
    assert p.active_bucket.dynamic.round_id == 1
    assert not p.active_bucket.dynamic.is_new
    assert 10.0 <= levels[0].amount.as_float() <= 60.0


def test_sold_out_bucket_returns_zero_amount(sold):
    clock = Clock(at(0, 30))
    p = _provider(sold, clock)
    p.get_levels(1e9, 1e9)
    sold.base_vol = 100.0
    clock.now = at(0, 50)
    assert p.get_levels(1e9, 1e9)[0].amount.is_zero()


def test_new_bucket_front_loads_the_surplus(sold):
    clock = Clock(at(0, 30))
    p = _provider(sold, clock)
    p.get_levels(1e9, 1e9)
    clock.now = at(1, 10)
    p.get_levels(1e9, 1e9)
    bucket = p.active_bucket
    assert bucket.bucket_id == 1
    assert bucket.dynamic.is_new
    # 100 unsold over 23 remaining buckets, halving each bucket: first term ~50
    assert bucket.base_surplus_included > 100.0 / 23
    assert bucket.base_surplus_included == pytest.approx(50.0, rel=1e-4)
    assert bucket.base_capacity == pytest.approx(150.0, rel=1e-4)


def test_oversold_bucket_clamps_capacity_to_zero(sold):
    clock = Clock(at(0, 30))
    p = _provider(sold, clock)
    p.get_levels(1e9, 1e9)
    sold.base_vol = 500.0
    clock.now = at(0, 50)
    p.get_levels(1e9, 1e9)
    clock.now = at(1, 10)
    levels = p.get_levels(1e9, 1e9)
    assert p.active_bucket.base_capacity == 0.0
    assert levels[0].amount.is_zero()


def test_skipped_bucket_raises_and_keeps_state(sold):
    clock = Clock(at(0, 30))
    p = _provider(sold, clock)
    p.get_levels(1e9, 1e9)
    clock.now = at(2, 30)
    with pytest.raises(BucketSequenceError) as exc_info:
        p.get_levels(1e9, 1e9)
    assert exc_info.value.previous_bucket == 0
    assert exc_info.value.new_bucket == 2
    assert p.active_bucket.bucket_id == 0
    assert p.previous_round_id == 0


def test_day_boundary_raises(sold):
    clock = Clock(at(23, 30))
    p = _provider(sold, clock)
    p.get_levels(1e9, 1e9)
    clock.now = at(0, 10, day=2)
    with pytest.raises(BucketSequenceError):
        p.get_levels(1e9, 1e9)


def test_same_seed_gives_same_rounds(sold):
    amounts = []
    for _ in range(2):
        clock = Clock(at(0, 5))
        p = _provider(sold, clock, seed=42)
        run = []
        for minute in (5, 15, 25):
            clock.now = at(0, minute)
            run.append(p.get_levels(1e9, 1e9)[0].amount)
        amounts.append(run)
    assert amounts[0] == amounts[1]


def test_first_distribution_of_base_surplus(sold):
    p = _provider(sold, Clock(at(0, 30)))
    assert p.first_distribution_of_base_surplus(8000.0, 4) == pytest.approx(4266.6667, rel=1e-6)
    assert p.first_distribution_of_base_surplus(0.0, 4) == 0.0
    assert p.first_distribution_of_base_surplus(8000.0, 0) == 0.0
    flat = _provider(sold, Clock(at(0, 30)), smoothing_factor=1.0)
    assert flat.first_distribution_of_base_surplus(8000.0, 4) == 2000.0


def test_rate_offset_applies_to_feed_price(sold):
    p = _provider(sold, Clock(at(0, 30)), offset=RateOffset(percent=0.1))
    assert p.get_levels(1e9, 1e9)[0].price.as_float() == pytest.approx(0.55)
