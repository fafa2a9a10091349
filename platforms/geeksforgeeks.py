"""GeeksforGeeks adapter.

The primary source is a community-maintained wrapper API that proxies the
profile page into JSON.  It is run by volunteers, so it is frequently slow
or down; the official profile page is scraped when it does not answer.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from .base import Confidence, Platform, ProfileFetcher, ProfileStats, Strategy, StrategyResult, to_int
from .http import Deadline, json_or_none, request
from .scoring import ScoreWeights

logger = logging.getLogger(__name__)

GFG_API_URL = "https://geeks-for-geeks-api.vercel.app/{username}"
GFG_PROFILE_URL = "https://www.geeksforgeeks.org/user/{username}/"

# No contest rating is published: 10 per solved problem.
WEIGHTS = ScoreWeights(volume=10)

BUCKETS = ("school", "basic", "easy", "medium", "hard")

_MISSING_MARKERS = ("not found", "does not exist", "no user")


def _stats_from_api(info: Dict, solved: Dict) -> ProfileStats:
    difficulty = {}
    for bucket in BUCKETS:
        entry = solved.get(bucket) or {}
        difficulty[bucket] = to_int(entry.get("count") if isinstance(entry, dict) else entry)
    total = to_int(info.get("totalProblemsSolved")) or sum(difficulty.values())
    return ProfileStats(
        problems_solved=total,
        difficulty=difficulty,
        extras={
            "coding_score": to_int(info.get("codingScore")),
            "institute_rank": to_int(info.get("instituteRank")),
            "current_streak": to_int(info.get("currentStreak")),
            "max_streak": to_int(info.get("maxStreak")),
            "monthly_score": to_int(info.get("monthlyScore")),
        },
    )


class GeeksforGeeksFetcher(ProfileFetcher):
    platform = Platform.GEEKSFORGEEKS
    weights = WEIGHTS
    username_pattern = re.compile(r"^[A-Za-z0-9_.-]{1,50}$")

    def strategies(self) -> List[Strategy]:
        return [
            Strategy("community_api", self._from_community_api),
            Strategy("profile_page", self._from_profile_page),
        ]

    def _from_community_api(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        resp = request(
            self.session, "GET", GFG_API_URL.format(username=username),
            platform=self.platform.value, deadline=deadline,
        )
        payload = json_or_none(resp)
        if not isinstance(payload, dict):
            return None
        info = payload.get("info")
        if not isinstance(info, dict) or not info:
            message = str(payload.get("error") or payload.get("message") or "").lower()
            if any(marker in message for marker in _MISSING_MARKERS):
                raise self.not_found(username)
            # An empty body is the wrapper failing, not the user missing.
            return None
        return StrategyResult(_stats_from_api(info, payload.get("solvedStats") or {}), Confidence.FULL)

    def _from_profile_page(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        resp = request(
            self.session, "GET", GFG_PROFILE_URL.format(username=username),
            platform=self.platform.value, deadline=deadline,
        )
        if resp.status_code == 404:
            raise self.not_found(username)
        if resp.status_code != 200:
            return None

        text = BeautifulSoup(resp.text, "lxml").get_text(" ", strip=True)
        if re.search(r"user does not exist|profile not found", text, re.I):
            raise self.not_found(username)
        m = re.search(r"Coding Score\s*:?\s*(\d+)", text, re.I)
        if m is None:
            return None

        stats = ProfileStats(extras={"coding_score": int(m.group(1))})
        m = re.search(r"Problems? Solved\s*:?\s*(\d+)", text, re.I)
        if m:
            stats.problems_solved = int(m.group(1))
        for bucket in BUCKETS:
            m = re.search(rf"\b{bucket}\s*\((\d+)\)", text, re.I)
            if m:
                stats.difficulty[bucket] = int(m.group(1))
        if not stats.problems_solved and stats.difficulty:
            stats.problems_solved = sum(stats.difficulty.values())
        m = re.search(r"Institute Rank\s*:?\s*(\d+)", text, re.I)
        if m:
            stats.extras["institute_rank"] = int(m.group(1))
        return StrategyResult(stats, Confidence.PARTIAL)


__all__ = ["GeeksforGeeksFetcher", "WEIGHTS"]
