"""Token bucket pacing and 429 retry delays, driven by a hand-set clock."""

import pytest

from offerbook.exchanges.rate_limit import TokenBucket, backoff_delay


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_burst_then_waits_for_refill():
    clock = FakeClock()
    bucket = TokenBucket(rate=2.0, capacity=2, clock=clock, sleep=clock.sleep)
    assert bucket.acquire()
    assert bucket.acquire()
    assert clock.sleeps == []
    assert bucket.acquire()
    assert clock.sleeps == [pytest.approx(0.5)]


def test_deadline_gives_up_without_sleeping():
    clock = FakeClock()
    bucket = TokenBucket(rate=1.0, capacity=1, clock=clock, sleep=clock.sleep)
    assert bucket.acquire()
    assert not bucket.acquire(timeout=0.5)
    assert clock.sleeps == []
    assert bucket.acquire(timeout=1.0)


def test_cannot_ask_for_more_than_capacity():
    with pytest.raises(ValueError):
        TokenBucket(rate=1.0, capacity=1).acquire(2)


def test_backoff_delay():
    assert [backoff_delay(a) for a in range(3)] == [0.5, 1.0, 2.0]
    assert backoff_delay(10) == 30.0
    assert backoff_delay(0, "3") == 3.0
    assert backoff_delay(0, "120") == 30.0
    assert backoff_delay(1, "Wed, 21 Oct 2015 07:28:00 GMT") == 1.0
