"""Tests for the sliding-window rate limiter."""

from __future__ import annotations

import threading

import pytest

from tipscore.connectors.rate_limiter import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(max_requests: int = 3, window: float = 1.0) -> tuple[SlidingWindowRateLimiter, FakeClock]:
    clock = FakeClock()
    return (
        SlidingWindowRateLimiter(max_requests, window, clock=clock, sleep=clock.sleep),
        clock,
    )


class TestSlidingWindow:
    def test_allows_up_to_max(self):
        limiter, _ = _limiter(3)
        for _ in range(3):
            assert limiter.can_make_request()
            limiter.record_request()
        assert not limiter.can_make_request()
        assert limiter.remaining_requests() == 0

    def test_window_slides(self):
        limiter, clock = _limiter(2, window=1.0)
        limiter.record_request()
        clock.now += 0.4
        limiter.record_request()
        assert not limiter.can_make_request()
        assert limiter.seconds_until_next_slot() == pytest.approx(0.6)

        clock.now += 0.7
        assert limiter.can_make_request()
        assert limiter.remaining_requests() == 1

    def test_wait_is_zero_when_free(self):
        limiter, _ = _limiter(2)
        assert limiter.seconds_until_next_slot() == 0.0

    def test_reset(self):
        limiter, _ = _limiter(1)
        limiter.record_request()
        limiter.reset()
        assert limiter.can_make_request()


class TestAcquire:
    def test_no_wait_under_limit(self):
        limiter, clock = _limiter(2)
        assert limiter.acquire() == 0.0
        assert limiter.acquire() == 0.0
        assert clock.sleeps == []

    def test_blocks_until_slot_frees(self):
        limiter, clock = _limiter(2, window=1.0)
        limiter.acquire()
        clock.now += 0.25
        limiter.acquire()

        waited = limiter.acquire()
        assert waited == pytest.approx(0.75)
        assert clock.sleeps == [pytest.approx(0.75)]
        assert limiter.remaining_requests() == 0

    def test_throttling_never_drops_calls(self):
        limiter, clock = _limiter(5, window=1.0)
        for _ in range(12):
            limiter.acquire()
        # 12 calls at 5/s need at least two full windows
        assert clock.now - 100.0 >= 2.0


class TestValidation:
    def test_rejects_non_positive_max(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(0, 1.0)

    def test_rejects_non_positive_window(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(5, 0)


class TestThreadSafety:
    def test_concurrent_record_counts_every_call(self):
        limiter = SlidingWindowRateLimiter(1000, 60.0)

        def _worker():
            for _ in range(50):
                limiter.record_request()

        threads = [threading.Thread(target=_worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert limiter.remaining_requests() == 1000 - 400
