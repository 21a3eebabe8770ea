"""Sell TWAP level provider - paces a daily sell target into time-bucketed child orders."""

from __future__ import annotations

import math
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

import structlog

from offerbook.errors import BucketSequenceError, ConfigError
from offerbook.feeds.base import PriceFeed
from offerbook.filters.volume import VolumeFilter
from offerbook.levels.base import LevelProvider
from offerbook.levels.offset import RateOffset
from offerbook.models import Level, Number, OrderConstraints
from offerbook.storage.trades import DATE_FORMAT

log = structlog.get_logger(__name__)

SECONDS_IN_HOUR = 60 * 60
SECONDS_IN_DAY = 24 * SECONDS_IN_HOUR
DAYS_IN_WEEK = 7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def floor_date(t: datetime) -> datetime:
    return t.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class DynamicBucketValues:
    """Values refreshed on every round within a bucket."""

    is_new: bool
    round_id: int
    day_base_sold: float
    base_sold: float


@dataclass
class BucketInfo:
    bucket_id: int
    start_time: datetime
    end_time: datetime
    total_buckets: int
    total_buckets_targeted: int
    day_base_sold_start: float
    day_base_capacity: float
    base_surplus_included: float
    base_capacity: float
    min_order_size_base: float
    dynamic: DynamicBucketValues

    @property
    def day_base_remaining(self) -> float:
        return self.day_base_capacity - self.dynamic.day_base_sold

    @property
    def base_remaining(self) -> float:
        return self.base_capacity - self.dynamic.base_sold

    @property
    def progress_pct(self) -> float:
        if self.base_capacity == 0:
            return 0.0
        return 100.0 * self.dynamic.base_sold / self.base_capacity

    def log_fields(self) -> dict:
        return {
            "bucket_id": self.bucket_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "total_buckets": self.total_buckets,
            "total_buckets_targeted": self.total_buckets_targeted,
            "day_base_sold_start": self.day_base_sold_start,
            "day_base_capacity": self.day_base_capacity,
            "base_surplus_included": self.base_surplus_included,
            "base_capacity": self.base_capacity,
            "min_order_size_base": self.min_order_size_base,
            "is_new": self.dynamic.is_new,
            "round_id": self.dynamic.round_id,
            "day_base_sold": self.dynamic.day_base_sold,
            "day_base_remaining": self.day_base_remaining,
            "base_sold": self.dynamic.base_sold,
            "base_remaining": self.base_remaining,
            "bucket_progress_pct": round(self.progress_pct, 2),
        }


@dataclass(frozen=True)
class RoundInfo:
    round_id: int
    bucket_id: int
    now: datetime
    seconds_elapsed_today: int
    size_base_capped: float
    price: float


class SellTwapLevelProvider(LevelProvider):
    """Returns exactly one sell level per call.

    The day is cut into fixed buckets; the targeted selling window's daily cap is
    spread evenly across buckets, and unsold surplus from elapsed buckets is folded
    into the next bucket with a front-loaded geometric decay.
    """

    def __init__(
        self,
        price_feed: PriceFeed,
        offset: RateOffset,
        order_constraints: OrderConstraints,
        day_of_week_filters: Sequence[VolumeFilter],
        hours_to_sell: int,
        bucket_size_seconds: int,
        surplus_distribution_ceiling: float,
        smoothing_factor: float,
        min_child_order_fraction: float,
        seed: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if hours_to_sell <= 0 or hours_to_sell > 24:
            raise ConfigError(f"invalid number of hours to sell, expected 0 < hours_to_sell <= 24; was {hours_to_sell}")
        if bucket_size_seconds <= 0 or bucket_size_seconds > SECONDS_IN_DAY:
            raise ConfigError(
                f"invalid bucket_size_seconds, expected 0 < bucket_size_seconds <= {SECONDS_IN_DAY}; was {bucket_size_seconds}"
            )
        if SECONDS_IN_DAY % bucket_size_seconds != 0:
            raise ConfigError(
                f"bucket_size_seconds needs to divide {SECONDS_IN_DAY} evenly; was {bucket_size_seconds}"
            )
        for name, value in (
            ("surplus_distribution_ceiling", surplus_distribution_ceiling),
            ("smoothing_factor", smoothing_factor),
            ("min_child_order_fraction", min_child_order_fraction),
        ):
            if value < 0.0 or value > 1.0:
                raise ConfigError(f"{name} is invalid, expected 0.0 <= {name} <= 1.0; was {value}")
        if len(day_of_week_filters) != DAYS_IN_WEEK:
            raise ConfigError(f"need one volume filter per weekday, got {len(day_of_week_filters)}")
        for i, f in enumerate(day_of_week_filters):
            if not f.is_selling_base():
                raise ConfigError(f"volume filter at index {i} was not selling the base asset: {f.config}")
            f.base_cap_in_base_units()

        self.price_feed = price_feed
        self.offset = offset
        self.order_constraints = order_constraints
        self.day_of_week_filters = list(day_of_week_filters)
        self.hours_to_sell = hours_to_sell
        self.bucket_size_seconds = bucket_size_seconds
        self.surplus_distribution_ceiling = surplus_distribution_ceiling
        self.smoothing_factor = smoothing_factor
        self.min_child_order_fraction = min_child_order_fraction
        self.random = random.Random(seed)
        self.clock = clock

        self.active_bucket: BucketInfo | None = None
        self.previous_round_id: int | None = None

    def get_levels(self, max_asset_base: float, max_asset_quote: float) -> list[Level]:
        now = self.clock()
        vol_filter = self.day_of_week_filters[now.weekday()]

        round_id = self._next_round_id()
        bucket = self._make_bucket_info(now, vol_filter, round_id)
        log.info("twap_bucket", **bucket.log_fields())

        round_info = self._make_round_info(round_id, now, bucket)
        log.info(
            "twap_round",
            round_id=round_info.round_id,
            bucket_id=round_info.bucket_id,
            now=now.isoformat(),
            weekday=now.strftime("%A"),
            seconds_elapsed_today=round_info.seconds_elapsed_today,
            size_base_capped=round_info.size_base_capped,
            price=round_info.price,
        )

        # only commit state once the whole round succeeded
        self.active_bucket = bucket
        self.previous_round_id = round_info.round_id

        return [
            Level(
                price=Number.from_float(round_info.price, self.order_constraints.price_precision),
                amount=Number.truncated(round_info.size_base_capped, self.order_constraints.volume_precision),
            )
        ]

    def _next_round_id(self) -> int:
        if self.previous_round_id is None:
            return 0
        return self.previous_round_id + 1

    def _make_bucket_info(self, now: datetime, vol_filter: VolumeFilter, round_id: int) -> BucketInfo:
        start_time = floor_date(now)
        seconds_elapsed_today = int((now - start_time).total_seconds())
        bucket_id = seconds_elapsed_today // self.bucket_size_seconds

        if self.active_bucket is None:
            return self._make_first_bucket_frame(now, vol_filter, start_time, bucket_id, round_id)
        if bucket_id == self.active_bucket.bucket_id:
            return self._update_existing_bucket(now, vol_filter, round_id)
        return self._cutover_to_new_bucket(now, vol_filter, start_time, bucket_id, round_id)

    def _make_first_bucket_frame(
        self,
        now: datetime,
        vol_filter: VolumeFilter,
        start_time: datetime,
        bucket_id: int,
        round_id: int,
    ) -> BucketInfo:
        end_time = start_time + timedelta(days=1)
        total_buckets = math.ceil((end_time - start_time).total_seconds() / self.bucket_size_seconds)
        total_buckets_targeted = math.ceil(self.hours_to_sell * SECONDS_IN_HOUR / self.bucket_size_seconds)

        day_base_capacity = vol_filter.base_cap_in_base_units()
        day_base_sold_start = vol_filter.daily_values(now.strftime(DATE_FORMAT)).base_vol
        base_capacity = day_base_capacity / total_buckets_targeted

        return BucketInfo(
            bucket_id=bucket_id,
            start_time=start_time,
            end_time=end_time,
            total_buckets=total_buckets,
            total_buckets_targeted=total_buckets_targeted,
            day_base_sold_start=day_base_sold_start,
            day_base_capacity=day_base_capacity,
            base_surplus_included=0.0,
            base_capacity=base_capacity,
            min_order_size_base=self.min_child_order_fraction * base_capacity,
            # nothing sold in a brand new frame beyond the day's starting value
            dynamic=DynamicBucketValues(
                is_new=True,
                round_id=round_id,
                day_base_sold=day_base_sold_start,
                base_sold=0.0,
            ),
        )

    def _update_existing_bucket(self, now: datetime, vol_filter: VolumeFilter, round_id: int) -> BucketInfo:
        assert self.active_bucket is not None
        day_base_sold = vol_filter.daily_values(now.strftime(DATE_FORMAT)).base_vol
        return replace(
            self.active_bucket,
            dynamic=DynamicBucketValues(
                is_new=False,
                round_id=round_id,
                day_base_sold=day_base_sold,
                base_sold=day_base_sold - self.active_bucket.day_base_sold_start,
            ),
        )

    def _cutover_to_new_bucket(
        self,
        now: datetime,
        vol_filter: VolumeFilter,
        start_time: datetime,
        bucket_id: int,
        round_id: int,
    ) -> BucketInfo:
        previous = self.active_bucket
        assert previous is not None
        if bucket_id != previous.bucket_id + 1:
            # also raised on the day boundary, where the index wraps back to 0
            raise BucketSequenceError(
                f"new bucket id ({bucket_id}) was not one more than the previous bucket id ({previous.bucket_id})",
                previous_bucket=previous.bucket_id,
                new_bucket=bucket_id,
            )

        bucket = self._make_first_bucket_frame(now, vol_filter, start_time, bucket_id, round_id)

        # queried day-sold can exceed what the previous bucket last observed
        day_base_sold_start = previous.dynamic.day_base_sold
        day_base_sold = bucket.day_base_sold_start
        bucket.day_base_sold_start = day_base_sold_start
        bucket.dynamic = DynamicBucketValues(
            is_new=True,
            round_id=round_id,
            day_base_sold=day_base_sold,
            base_sold=day_base_sold - day_base_sold_start,
        )

        average_base_capacity = bucket.base_capacity
        # buckets are 0-indexed so bucket_id is the number of elapsed buckets
        expected_sold = average_base_capacity * bucket_id
        total_surplus = expected_sold - day_base_sold_start
        total_remaining_buckets = bucket.total_buckets - bucket_id
        bucket.base_surplus_included = self.first_distribution_of_base_surplus(total_surplus, total_remaining_buckets)
        bucket.base_capacity = average_base_capacity + bucket.base_surplus_included
        if bucket.base_capacity < 0:
            log.warning(
                "twap_bucket_capacity_negative",
                bucket_id=bucket_id,
                base_capacity=bucket.base_capacity,
                base_surplus_included=bucket.base_surplus_included,
            )
            bucket.base_surplus_included = -average_base_capacity
            bucket.base_capacity = 0.0
        return bucket

    def first_distribution_of_base_surplus(self, total_surplus: float, total_remaining_buckets: int) -> float:
        """First term of the geometric series that sums to ``total_surplus``.

        Sn = a * (r^n - 1) / (r - 1)  =>  a = Sn * (r - 1) / (r^n - 1)
        e.g. Sn=8000, r=0.5, n=4: a = 8000 * 0.5 / 0.9375 = 4266.67
        """
        n = math.ceil(self.surplus_distribution_ceiling * total_remaining_buckets)
        if n <= 0 or total_surplus == 0:
            return 0.0
        r = self.smoothing_factor
        if r == 1.0:
            return total_surplus / n
        return total_surplus * (r - 1.0) / (r**n - 1.0)

    def _make_round_info(self, round_id: int, now: datetime, bucket: BucketInfo) -> RoundInfo:
        seconds_elapsed_today = int((now - bucket.start_time).total_seconds())

        remaining = bucket.base_remaining
        if remaining <= bucket.min_order_size_base:
            size_base_capped = max(remaining, 0.0)
        else:
            size_base_capped = bucket.min_order_size_base + self.random.random() * (
                remaining - bucket.min_order_size_base
            )

        price = self.price_feed.get_price()
        adjusted_price, was_modified = self.offset.apply(price)
        if was_modified:
            log.info("feed_price_adjusted", price=price, adjusted_price=adjusted_price)

        return RoundInfo(
            round_id=round_id,
            bucket_id=bucket.bucket_id,
            now=now,
            seconds_elapsed_today=seconds_elapsed_today,
            size_base_capped=size_base_capped,
            price=adjusted_price,
        )
