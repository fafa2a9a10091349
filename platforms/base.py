"""Capability interface implemented by every platform adapter.

A fetcher owns an ordered list of named strategies.  ``fetch`` walks that
list and:

* returns as soon as one strategy produces a confirmed profile,
* raises :class:`~platforms.errors.NotFound` the moment any strategy
  positively confirms the username does not exist,
* moves on when a strategy is inconclusive (returns ``None``), hits a
  transport failure, or trips over unexpected markup.

A strategy must only return a result once the account's existence has been
confirmed by the upstream.  "The page had no numbers on it" is inconclusive,
not a zero-activity profile.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests

from .errors import InvalidUsername, NotFound, PlatformError, RateLimited, Timeout, UpstreamUnavailable
from .http import Deadline, create_session
from .scoring import ScoreWeights, platform_score

logger = logging.getLogger(__name__)


class Platform(str, Enum):
    LEETCODE = "leetcode"
    CODEFORCES = "codeforces"
    CODECHEF = "codechef"
    GEEKSFORGEEKS = "geeksforgeeks"
    HACKERRANK = "hackerrank"
    GITHUB = "github"

    @classmethod
    def parse(cls, value: "str | Platform") -> "Platform":
        if isinstance(value, Platform):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported platform: {value}") from None


class Confidence(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


@dataclass
class ProfileStats:
    """Raw numbers a strategy extracted, before scoring.

    ``None`` means the strategy could not read the figure.  On a full-confidence
    result that is the same as zero; on a partial one the stored value stands.
    """

    problems_solved: Optional[int] = None
    difficulty: Dict[str, int] = field(default_factory=dict)
    rating: Optional[float] = None
    max_rating: Optional[float] = None
    rank: Optional[str] = None
    contests: Optional[int] = None
    extras: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StrategyResult:
    stats: ProfileStats
    confidence: Confidence = Confidence.FULL


@dataclass(frozen=True)
class Strategy:
    name: str
    run: Callable[[str, Deadline], Optional[StrategyResult]]


@dataclass
class NormalizedProfile:
    platform: Platform
    username: str
    score: float
    problems_solved: Optional[int] = 0
    difficulty: Dict[str, int] = field(default_factory=dict)
    rating: Optional[float] = None
    max_rating: Optional[float] = None
    rank: Optional[str] = None
    contests: Optional[int] = 0
    confidence: Confidence = Confidence.FULL
    strategy: str = ""
    extras: Dict[str, Any] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    weights: Optional[ScoreWeights] = field(default=None, repr=False)

    @property
    def partial(self) -> bool:
        return self.confidence is Confidence.PARTIAL

    def rescore(self, problems_solved: int, rating: Optional[float], contests: int) -> float:
        """Score merged counters with this platform's weights."""
        if self.weights is None:
            return self.score
        return platform_score(self.weights, problems_solved, rating, contests)


# Unexpected payload shapes count as drift in a single strategy, not a crash.
DRIFT_ERRORS = (KeyError, ValueError, TypeError, AttributeError, IndexError)


class ProfileFetcher:
    """Base class for the six adapters."""

    platform: Platform
    weights: ScoreWeights
    username_pattern: "re.Pattern[str]" = re.compile(r"^[A-Za-z0-9_.-]{1,40}$")
    # Default budget for one ``fetch`` call (seconds).
    timeout: float = 20.0

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session if session is not None else self.create_session()

    def create_session(self) -> requests.Session:
        return create_session()

    def strategies(self) -> List[Strategy]:
        raise NotImplementedError

    # ------------------------------------------------------------------

    def validate_username(self, username: Optional[str]) -> str:
        cleaned = (username or "").strip()
        if not cleaned:
            raise InvalidUsername(
                f"No username provided for {self.platform.value}", platform=self.platform.value
            )
        if not self.username_pattern.match(cleaned):
            raise InvalidUsername(
                f"'{cleaned}' is not a valid {self.platform.value} username",
                platform=self.platform.value,
                username=cleaned,
            )
        return cleaned

    def not_found(self, username: str) -> NotFound:
        return NotFound(
            f"User {username} not found on {self.platform.value}",
            platform=self.platform.value,
            username=username,
        )

    def score(self, stats: ProfileStats) -> float:
        return platform_score(self.weights, stats.problems_solved, stats.rating, stats.contests)

    def fetch(self, username: str, timeout: Optional[float] = None) -> NormalizedProfile:
        """Fetch, parse and score *username*'s profile on this platform."""

        username = self.validate_username(username)
        deadline = Deadline(self.timeout if timeout is None else timeout)
        last_error: Optional[PlatformError] = None

        for strategy in self.strategies():
            try:
                result = strategy.run(username, deadline)
            except NotFound as exc:
                exc.platform, exc.username = self.platform.value, username
                logger.info("%s: %s confirmed missing by %s", self.platform.value, username, strategy.name)
                raise
            except PlatformError as exc:
                exc.platform = exc.platform or self.platform.value
                exc.username = exc.username or username
                # a throttling answer wins so Retry-After reaches the caller
                if not isinstance(last_error, RateLimited):
                    last_error = exc
                logger.debug("%s strategy %s failed for %s: %s", self.platform.value, strategy.name, username, exc)
                if isinstance(exc, Timeout) and deadline.expired:
                    break
                continue
            except DRIFT_ERRORS as exc:
                logger.warning(
                    "%s strategy %s could not parse the response for %s (%s: %s)",
                    self.platform.value, strategy.name, username, type(exc).__name__, exc,
                )
                continue

            if result is None:
                logger.debug("%s strategy %s inconclusive for %s", self.platform.value, strategy.name, username)
                continue

            stats = result.stats
            complete = result.confidence is Confidence.FULL
            profile = NormalizedProfile(
                platform=self.platform,
                username=username,
                score=self.score(stats),
                problems_solved=_counter(stats.problems_solved, complete),
                difficulty={k: max(0, int(v or 0)) for k, v in stats.difficulty.items()},
                rating=stats.rating,
                max_rating=stats.max_rating,
                rank=stats.rank,
                contests=_counter(stats.contests, complete),
                confidence=result.confidence,
                strategy=strategy.name,
                extras=dict(stats.extras),
                weights=self.weights,
            )
            logger.info(
                "%s: fetched %s via %s (score=%s, solved=%s%s)",
                self.platform.value, username, strategy.name, profile.score,
                profile.problems_solved, ", partial" if profile.partial else "",
            )
            return profile

        if last_error is not None:
            raise last_error
        raise UpstreamUnavailable(
            f"Could not confirm that {username} exists on {self.platform.value}",
            platform=self.platform.value,
            username=username,
        )


def _counter(value: Optional[int], complete: bool) -> Optional[int]:
    if value is None:
        return 0 if complete else None
    return max(0, int(value))


def to_int(value: Any, default: int = 0) -> int:
    """Lenient int conversion for upstream payloads ("1,234", None, 12.0 …)."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    match = re.search(r"-?\d[\d,]*", str(value))
    if not match:
        return default
    return int(match.group().replace(",", ""))


__all__ = [
    "Platform",
    "Confidence",
    "ProfileStats",
    "StrategyResult",
    "Strategy",
    "NormalizedProfile",
    "ProfileFetcher",
    "to_int",
]
