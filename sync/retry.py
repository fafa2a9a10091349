"""Generic retry policy with randomized exponential backoff."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from platforms.errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def jittered_backoff(base: float = 1.0, spread: float = 0.5, rng: Optional[random.Random] = None) -> Callable[[int, BaseException], float]:
    """Delay for retry *n* (1-based): ``base * 2**(n-1) * (1 + U[0, spread))``.

    With ``spread < 1`` the ranges of consecutive retries do not overlap, so
    delays are randomized yet strictly increasing.  A ``retry_after`` hint on
    the error (HTTP 429) raises the delay to at least that value.
    """
    source = rng or random.Random()

    def backoff(retry: int, error: BaseException) -> float:
        delay = base * (2 ** (retry - 1)) * (1 + source.uniform(0, spread))
        hint = getattr(error, "retry_after", None)
        if hint:
            delay = max(delay, float(hint))
        return delay

    return backoff


@dataclass
class RetryPolicy:
    max_retries: int = 3
    backoff: Callable[[int, BaseException], float] = field(default_factory=jittered_backoff)
    is_retryable: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], None] = time.sleep

    def call(self, fn: Callable[[], T], *, describe: str = "call") -> T:
        """Run *fn*; retry retryable failures up to ``max_retries`` times.

        Each delay is longer than the one before it, even when an earlier
        ``retry_after`` hint pushed that one up.  Terminal failures and the
        last retryable failure propagate unchanged.
        """
        retry = 0
        previous = 0.0
        while True:
            try:
                return fn()
            except Exception as exc:
                if not self.is_retryable(exc) or retry >= self.max_retries:
                    raise
                retry += 1
                delay = self.backoff(retry, exc)
                if delay <= previous:
                    delay = previous * 2
                previous = delay
                logger.warning(
                    "%s failed (%s); retry %d/%d in %.1fs", describe, exc, retry, self.max_retries, delay
                )
                self.sleep(delay)


__all__ = ["RetryPolicy", "jittered_backoff"]
