"""HackerRank adapter built on the badge listing REST endpoints."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from .base import Confidence, Platform, ProfileFetcher, ProfileStats, Strategy, StrategyResult, to_int
from .http import Deadline, json_or_none, request
from .scoring import ScoreWeights

logger = logging.getLogger(__name__)

HACKERRANK_PROFILE_URL = "https://www.hackerrank.com/rest/contests/master/hackers/{username}/profile"
HACKERRANK_BADGES_URL = "https://www.hackerrank.com/rest/hackers/{username}/badges"

# No rating: 10 per solved challenge.
WEIGHTS = ScoreWeights(volume=10)


def summarise_badges(badges: List[Dict]) -> ProfileStats:
    solved = 0
    stars = 0
    language, skills = {}, {}
    for badge in badges:
        if not isinstance(badge, dict):
            continue
        badge_solved = to_int(badge.get("solved"))
        badge_stars = to_int(badge.get("stars"))
        solved += badge_solved
        stars += badge_stars
        entry = {"solved": badge_solved, "stars": badge_stars, "total_challenges": to_int(badge.get("total_challenges"))}
        category = badge.get("category_name")
        if category == "Language Proficiency":
            language[badge.get("badge_name")] = entry
        elif category == "Specialized Skills":
            skills[badge.get("badge_name")] = entry
    return ProfileStats(
        problems_solved=solved,
        extras={"stars": stars, "language_badges": language, "skill_badges": skills},
    )


class HackerRankFetcher(ProfileFetcher):
    platform = Platform.HACKERRANK
    weights = WEIGHTS
    username_pattern = re.compile(r"^[A-Za-z0-9_.-]{1,40}$")

    def strategies(self) -> List[Strategy]:
        return [
            Strategy("profile_and_badges", self._from_profile_and_badges),
            Strategy("badges_only", self._from_badges_only),
        ]

    def _badges(self, username: str, deadline: Deadline) -> Optional[List[Dict]]:
        resp = request(
            self.session, "GET", HACKERRANK_BADGES_URL.format(username=username),
            platform=self.platform.value, deadline=deadline,
            headers={"Accept": "application/json"},
        )
        if resp.status_code == 404:
            raise self.not_found(username)
        payload = json_or_none(resp)
        if resp.status_code != 200 or not isinstance(payload, dict) or payload.get("status") is not True:
            return None
        return payload.get("models") or []

    def _from_profile_and_badges(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        resp = request(
            self.session, "GET", HACKERRANK_PROFILE_URL.format(username=username),
            platform=self.platform.value, deadline=deadline,
            headers={"Accept": "application/json"},
        )
        if resp.status_code == 404:
            raise self.not_found(username)
        payload = json_or_none(resp)
        if resp.status_code != 200 or not isinstance(payload, dict):
            return None
        model = payload.get("model")
        if not isinstance(model, dict) or not model.get("username"):
            return None

        badges = self._badges(username, deadline)
        if badges is None:
            stats = ProfileStats()
            confidence = Confidence.PARTIAL
        else:
            stats = summarise_badges(badges)
            confidence = Confidence.FULL
        stats.extras["country"] = model.get("country")
        stats.extras["level"] = model.get("level")
        return StrategyResult(stats, confidence)

    def _from_badges_only(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        badges = self._badges(username, deadline)
        # An empty listing cannot tell a new account from a missing one.
        if not badges:
            return None
        return StrategyResult(summarise_badges(badges), Confidence.PARTIAL)


__all__ = ["HackerRankFetcher", "WEIGHTS", "summarise_badges"]
