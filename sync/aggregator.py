"""Per-user totals, always recomputed in full from the stored profiles."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, Iterable, List

from .models import AggregateUserScore, PlatformProfile, utcnow
from .stores import ProfileStore, UserStore

logger = logging.getLogger(__name__)


def aggregate(profiles: Iterable[PlatformProfile], computed_at: datetime) -> AggregateUserScore:
    """Sum every profile; a profile whose last sync failed keeps its last good numbers."""

    total_score = 0.0
    total_solved = 0
    buckets: Counter = Counter()
    contests_by_platform: Dict[str, int] = {}
    for profile in profiles:
        score = profile.score if isinstance(profile.score, (int, float)) and profile.score == profile.score else 0.0
        total_score += max(0.0, score)
        total_solved += profile.problems_solved or 0
        buckets.update({k: v for k, v in profile.difficulty.items() if v})
        contests_by_platform[profile.platform.value] = profile.contests or 0

    return AggregateUserScore(
        total_score=round(total_score, 2),
        total_problems_solved=total_solved,
        difficulty_totals=dict(sorted(buckets.items())),
        total_contests=sum(contests_by_platform.values()),
        contests_by_platform=contests_by_platform,
        computed_at=computed_at,
    )


class ScoreAggregator:
    def __init__(self, profiles: ProfileStore, users: UserStore, now: Callable[[], datetime] = utcnow):
        self.profiles = profiles
        self.users = users
        self._now = now

    def recompute(self, user_id: str) -> AggregateUserScore:
        """Recompute and persist *user_id*'s totals; idempotent."""
        previous = self.users.read_totals(user_id)
        totals = aggregate(self.profiles.list_for_user(user_id), self._now())
        self.users.write_totals(user_id, totals)
        if previous.total_score != totals.total_score:
            logger.info("Total score for user %s: %s -> %s", user_id, previous.total_score, totals.total_score)
        else:
            logger.debug("Total score for user %s unchanged at %s", user_id, totals.total_score)
        return totals

    def recompute_all(self) -> List[AggregateUserScore]:
        users = self.users.list_users()
        logger.info("Recomputing totals for %d users", len(users))
        return [self.recompute(user.user_id) for user in users]


__all__ = ["ScoreAggregator", "aggregate"]
