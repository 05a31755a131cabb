"""Sequential scheduling with a pause between calls to an external provider."""

import logging
import random
import time
from typing import Callable, Iterable, Iterator, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DelayPolicy(Protocol):
    def next_delay(self) -> float:
        """Seconds to wait after the current call."""
        ...


class RandomDelay:
    def __init__(self, min_ms: int = 150, max_ms: int = 350, rng: Optional[random.Random] = None) -> None:
        if min_ms < 0 or max_ms < min_ms:
            raise ValueError("expected 0 <= min_ms <= max_ms")
        self.min_ms = min_ms
        self.max_ms = max_ms
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        return self._rng.uniform(self.min_ms, self.max_ms) / 1000.0


class ThrottledScheduler:
    """Hands out work items one at a time, pausing after each one is processed.

    The pause happens when the consumer asks for the next item, so the body of
    the consumer's loop is what gets spaced out.
    """

    def __init__(self, policy: Optional[DelayPolicy] = None, sleep: Callable[[float], None] = time.sleep) -> None:
        self.policy = policy or RandomDelay()
        self._sleep = sleep

    def paced(self, items: Iterable[T]) -> Iterator[T]:
        for item in items:
            yield item
            delay = self.policy.next_delay()
            if delay > 0:
                logger.debug("Throttling %.3fs before next call", delay)
                self._sleep(delay)
