"""Per-platform score: volume + clamped quadratic rating + contest participation.

Every adapter publishes a :class:`ScoreWeights` constant and the score of a
profile is always

    volume * problems_solved
    + rating_weight * max(0, rating - rating_floor) ** 2
    + contest_weight * contests

The shape is shared so that scores from different platforms stay comparable
and so a user with no rating is never penalised (the rating term is simply
zero).  Weights are tuned per platform because a 2000 on Codeforces and a
2000 on LeetCode are not the same achievement.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ScoreWeights:
    volume: float
    rating_floor: Optional[float] = None
    rating_weight: float = 0.0
    contest: float = 0.0


def rating_term(weights: ScoreWeights, rating: Optional[float]) -> float:
    if rating is None or weights.rating_floor is None or not weights.rating_weight:
        return 0.0
    above = rating - weights.rating_floor
    if above <= 0:
        return 0.0
    return weights.rating_weight * above * above


def platform_score(
    weights: ScoreWeights,
    problems_solved: int,
    rating: Optional[float] = None,
    contests: int = 0,
) -> float:
    """Return the non-negative platform score, rounded to two decimals."""

    volume = weights.volume * max(0, problems_solved or 0)
    contest_part = weights.contest * max(0, contests or 0)
    score = volume + rating_term(weights, rating) + contest_part
    return round(max(0.0, score), 2)


__all__ = ["ScoreWeights", "platform_score", "rating_term"]
