"""Rate governor shared by every sync path.

Two granularities are enforced:

* **cooldown** per (user, platform): a pair that synced successfully less
  than ``cooldown`` seconds ago is not fetched again.  Failed attempts do not
  move the clock, so failures can be retried sooner than successes.
* **pacing** per platform: a minimum spacing between two dispatched requests
  and a ceiling on in-flight requests, shared by fleet workers and on-demand
  callers alike.

The governor also tracks which (user, platform) pairs currently have a sync
in flight so that two concurrent requests for the same pair never both reach
the upstream.

One instance is meant to be shared by the whole process; all state lives
behind one condition variable per platform (plus one lock for the
per-pair maps).
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterator, Optional, Set, Tuple

from platforms.base import Platform
from platforms.errors import RateLimited

from .config import DEFAULT_LIMITS, PlatformLimits
from .models import utcnow

logger = logging.getLogger(__name__)

PairKey = Tuple[str, Platform]


@dataclass(frozen=True)
class CooldownDecision:
    allowed: bool
    remaining_seconds: float = 0.0


class _PlatformState:
    def __init__(self, limits: PlatformLimits):
        self.limits = limits
        self.cond = threading.Condition()
        self.last_dispatch: Optional[float] = None
        self.in_flight = 0
        self.dispatched = 0


class RateGovernor:
    def __init__(
        self,
        limits: Optional[Dict[Platform, PlatformLimits]] = None,
        *,
        cooldown_seconds: float = 12 * 3600,
        now: Callable[[], datetime] = utcnow,
        clock: Callable[[], float] = time.monotonic,
    ):
        limits = dict(DEFAULT_LIMITS if limits is None else limits)
        self.cooldown_seconds = cooldown_seconds
        self._now = now
        self._clock = clock
        self._platforms: Dict[Platform, _PlatformState] = {p: _PlatformState(l) for p, l in limits.items()}
        self._pairs_lock = threading.Lock()
        self._last_success: Dict[PairKey, datetime] = {}
        self._in_progress: Set[PairKey] = set()

    def _state(self, platform: Platform) -> _PlatformState:
        try:
            return self._platforms[platform]
        except KeyError:
            raise ValueError(f"no rate limits configured for {platform}") from None

    # ------------------------------------------------------------------
    # Cooldown
    # ------------------------------------------------------------------

    def check_cooldown(
        self,
        user_id: str,
        platform: Platform,
        last_success: Optional[datetime] = None,
    ) -> CooldownDecision:
        """Allow or deny a sync of (user, platform) based on the last success.

        ``last_success`` is the persisted timestamp of the last successful
        update, if the caller has one; the later of it and the in-process
        record wins.
        """
        with self._pairs_lock:
            known = self._last_success.get((user_id, platform))
        if last_success is not None and (known is None or last_success > known):
            known = last_success
        if known is None:
            return CooldownDecision(True)

        elapsed = (self._now() - known).total_seconds()
        remaining = self.cooldown_seconds - elapsed
        if remaining > 0:
            return CooldownDecision(False, remaining)
        return CooldownDecision(True)

    def record_success(self, user_id: str, platform: Platform, at: Optional[datetime] = None) -> None:
        with self._pairs_lock:
            self._last_success[(user_id, platform)] = at or self._now()

    # ------------------------------------------------------------------
    # In-flight claims per (user, platform)
    # ------------------------------------------------------------------

    def begin_sync(self, user_id: str, platform: Platform) -> bool:
        """Claim the pair; ``False`` when another sync already holds it."""
        key = (user_id, platform)
        with self._pairs_lock:
            if key in self._in_progress:
                return False
            self._in_progress.add(key)
            return True

    def end_sync(self, user_id: str, platform: Platform) -> None:
        with self._pairs_lock:
            self._in_progress.discard((user_id, platform))

    # ------------------------------------------------------------------
    # Per-platform pacing
    # ------------------------------------------------------------------

    def acquire_slot(self, platform: Platform, timeout: Optional[float] = None) -> None:
        """Block until a request to *platform* may be dispatched, then reserve it.

        Raises :class:`RateLimited` if *timeout* seconds pass first.
        """
        state = self._state(platform)
        limits = state.limits
        give_up = None if timeout is None else self._clock() + timeout

        with state.cond:
            while True:
                now = self._clock()
                if state.in_flight < limits.max_concurrent:
                    wait = 0.0
                    if state.last_dispatch is not None:
                        wait = limits.min_interval - (now - state.last_dispatch)
                    if wait <= 0:
                        state.in_flight += 1
                        state.dispatched += 1
                        state.last_dispatch = now
                        return
                else:
                    wait = None

                if give_up is not None:
                    left = give_up - now
                    if left <= 0:
                        raise RateLimited(
                            f"No {platform.value} request slot became free within {timeout:.1f}s",
                            platform=platform.value,
                        )
                    wait = left if wait is None else min(wait, left)
                if wait is not None and wait > 1.0:
                    logger.debug("Waiting %.1fs before next %s request", wait, platform.value)
                state.cond.wait(wait)

    def release_slot(self, platform: Platform) -> None:
        state = self._state(platform)
        with state.cond:
            if state.in_flight <= 0:
                logger.warning("release_slot(%s) without a matching acquire", platform.value)
                return
            state.in_flight -= 1
            state.cond.notify_all()

    @contextmanager
    def slot(self, platform: Platform, timeout: Optional[float] = None) -> Iterator[None]:
        self.acquire_slot(platform, timeout)
        try:
            yield
        finally:
            self.release_slot(platform)

    # ------------------------------------------------------------------

    def in_flight(self, platform: Platform) -> int:
        state = self._state(platform)
        with state.cond:
            return state.in_flight

    def dispatched(self, platform: Platform) -> int:
        """Number of slots handed out for *platform* since start-up."""
        state = self._state(platform)
        with state.cond:
            return state.dispatched


__all__ = ["RateGovernor", "CooldownDecision"]
