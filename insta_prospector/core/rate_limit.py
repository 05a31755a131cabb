"""Per-actor fixed-window admission control for search runs."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol

from insta_prospector.models import RateWindow

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 5
DEFAULT_WINDOW_SECONDS = 60


class RateLimitExceeded(RuntimeError):
    """Raised when an actor has used up the requests of its current window."""

    def __init__(self, actor_id: str) -> None:
        super().__init__("Too many requests. Please wait and try again.")
        self.actor_id = actor_id


class RateLimitStore(Protocol):
    def get(self, actor_id: str) -> Optional[RateWindow]:
        ...

    def set(self, actor_id: str, window: RateWindow) -> None:
        ...

    def compare_and_swap(self, actor_id: str, expected: Optional[RateWindow], new: RateWindow) -> bool:
        ...


class InMemoryRateLimitStore:
    """Process-local store guarded by a lock.

    When `max_entries` is reached, windows older than `stale_after` seconds
    are dropped before a new actor is inserted.
    """

    def __init__(
        self,
        max_entries: int = 10000,
        stale_after: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._max_entries = max_entries
        self._stale_after = stale_after
        self._clock = clock

    def __len__(self) -> int:
        return len(self._windows)

    def get(self, actor_id: str) -> Optional[RateWindow]:
        with self._lock:
            return self._windows.get(actor_id)

    def set(self, actor_id: str, window: RateWindow) -> None:
        with self._lock:
            self._put(actor_id, window)

    def compare_and_swap(self, actor_id: str, expected: Optional[RateWindow], new: RateWindow) -> bool:
        with self._lock:
            if self._windows.get(actor_id) is not expected:
                return False
            self._put(actor_id, new)
            return True

    def _put(self, actor_id: str, window: RateWindow) -> None:
        if actor_id not in self._windows and len(self._windows) >= self._max_entries:
            self._evict_stale()
        self._windows[actor_id] = window

    def _evict_stale(self) -> None:
        cutoff = self._clock() - self._stale_after
        stale = [key for key, window in self._windows.items() if window.window_start < cutoff]
        for key in stale:
            del self._windows[key]
        if stale:
            logger.debug("Evicted %d expired rate-limit windows", len(stale))


class RateLimiter:
    """Fixed-window limiter: at most `max_requests` per `window_seconds` per actor.

    Windows are not sliding, so an actor can get up to ``2 * max_requests - 1``
    requests through around a window boundary.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else InMemoryRateLimitStore(stale_after=window_seconds, clock=clock)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    def admit(self, actor_id: str) -> bool:
        while True:
            now = self._clock()
            current = self.store.get(actor_id)

            if current is None or now > current.window_start + self.window_seconds:
                new = RateWindow(actor_id=actor_id, count=1, window_start=now)
            elif current.count < self.max_requests:
                new = RateWindow(actor_id=actor_id, count=current.count + 1, window_start=current.window_start)
            else:
                logger.info("Rate limit reached for actor=%s (count=%d)", actor_id, current.count)
                return False

            if self.store.compare_and_swap(actor_id, current, new):
                return True

    def check(self, actor_id: str) -> None:
        if not self.admit(actor_id):
            raise RateLimitExceeded(actor_id)
