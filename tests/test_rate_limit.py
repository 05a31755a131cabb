import threading

import pytest

from insta_prospector.core.rate_limit import InMemoryRateLimitStore, RateLimiter, RateLimitExceeded
from insta_prospector.models import RateWindow


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_sixth_call_in_window_is_rejected():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    assert [limiter.admit("ana") for _ in range(5)] == [True] * 5
    clock.now += 30
    assert limiter.admit("ana") is False


def test_window_resets_once_first_window_has_elapsed():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    for _ in range(5):
        limiter.admit("ana")

    clock.now += 60
    assert limiter.admit("ana") is False  # still inside the window at exactly W

    clock.now += 0.001
    assert limiter.admit("ana") is True
    window = limiter.store.get("ana")
    assert window.count == 1
    assert window.window_start == clock.now


def test_boundary_burst_is_allowed():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)

    limiter.admit("ana")
    clock.now += 59
    assert all(limiter.admit("ana") for _ in range(4))
    clock.now += 2
    assert all(limiter.admit("ana") for _ in range(5))


def test_actors_are_independent():
    limiter = RateLimiter(max_requests=1, clock=FakeClock())

    assert limiter.admit("ana") is True
    assert limiter.admit("bob") is True
    assert limiter.admit("ana") is False


def test_check_raises():
    limiter = RateLimiter(max_requests=1, clock=FakeClock())
    limiter.check("ana")
    with pytest.raises(RateLimitExceeded) as excinfo:
        limiter.check("ana")
    assert excinfo.value.actor_id == "ana"


def test_concurrent_admissions_are_linearised():
    limiter = RateLimiter(max_requests=5, clock=FakeClock())
    admitted = []
    lock = threading.Lock()

    def hit():
        result = limiter.admit("ana")
        with lock:
            admitted.append(result)

    threads = [threading.Thread(target=hit) for _ in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert admitted.count(True) == 5
    assert limiter.store.get("ana").count == 5


def test_compare_and_swap_rejects_stale_expected():
    store = InMemoryRateLimitStore()
    first = RateWindow(actor_id="ana", count=1, window_start=0.0)
    assert store.compare_and_swap("ana", None, first) is True
    assert store.compare_and_swap("ana", None, RateWindow("ana", 1, 5.0)) is False
    assert store.get("ana") is first


def test_store_evicts_expired_windows_when_full():
    clock = FakeClock(now=500.0)
    store = InMemoryRateLimitStore(max_entries=2, stale_after=60, clock=clock)
    store.set("old", RateWindow("old", 3, 100.0))
    store.set("fresh", RateWindow("fresh", 1, 490.0))

    store.set("new", RateWindow("new", 1, 500.0))

    assert store.get("old") is None
    assert store.get("fresh") is not None
    assert store.get("new") is not None
    assert len(store) == 2
