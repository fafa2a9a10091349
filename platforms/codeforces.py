"""
Codeforces adapter: official REST API first, profile page as a fallback.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from .base import Confidence, Platform, ProfileFetcher, ProfileStats, Strategy, StrategyResult, to_int
from .errors import RateLimited, UpstreamUnavailable
from .http import Deadline, json_or_none, request
from .scoring import ScoreWeights

logger = logging.getLogger(__name__)

# Base URL for Codeforces API
# Docs: https://codeforces.com/apiHelp/methods
CODEFORCES_API_URL = "https://codeforces.com/api"
CODEFORCES_PROFILE_URL = "https://codeforces.com/profile/{handle}"

# 10 per accepted problem, 0.001 * (rating - 1200)^2, 30 per rated contest.
WEIGHTS = ScoreWeights(volume=10, rating_floor=1200, rating_weight=0.001, contest=30)

# Problem index letter → difficulty bucket
EASY_INDICES = {"A", "B"}
MEDIUM_INDICES = {"C", "D"}


def _bucket(index: str) -> str:
    letter = (index or "?")[0].upper()
    if letter in EASY_INDICES:
        return "easy"
    if letter in MEDIUM_INDICES:
        return "medium"
    return "hard"


def count_solved(submissions: List[Dict]) -> ProfileStats:
    """Unique accepted problems, bucketed by problem index."""

    solved = set()
    buckets = {"easy": 0, "medium": 0, "hard": 0}
    accepted = 0
    for sub in submissions:
        if sub.get("verdict") != "OK":
            continue
        accepted += 1
        problem = sub.get("problem") or {}
        key = (problem.get("contestId") or problem.get("problemsetName"), problem.get("index"), problem.get("name"))
        if key in solved:
            continue
        solved.add(key)
        buckets[_bucket(problem.get("index", ""))] += 1
    return ProfileStats(problems_solved=len(solved), difficulty=buckets, extras={"accepted_submissions": accepted})


class CodeforcesFetcher(ProfileFetcher):
    platform = Platform.CODEFORCES
    weights = WEIGHTS
    username_pattern = re.compile(r"^[A-Za-z0-9_.-]{3,24}$")

    def strategies(self) -> List[Strategy]:
        return [
            Strategy("api", self._from_api),
            Strategy("profile_page", self._from_profile_page),
        ]

    # ------------------------------------------------------------------

    def _call(self, method: str, params: Dict, deadline: Deadline):
        """Call an API method; return ``(ok, payload, http_status)``."""
        resp = request(
            self.session, "GET", f"{CODEFORCES_API_URL}/{method}",
            platform=self.platform.value, deadline=deadline, params=params,
        )
        data = json_or_none(resp)
        if not isinstance(data, dict):
            raise UpstreamUnavailable(f"codeforces {method} returned a non-JSON body (HTTP {resp.status_code})")
        comment = str(data.get("comment", ""))
        if "limit exceeded" in comment.lower():
            raise RateLimited(f"codeforces call limit exceeded: {comment}")
        return data.get("status") == "OK", data, resp.status_code

    def _from_api(self, handle: str, deadline: Deadline) -> Optional[StrategyResult]:
        ok, data, status = self._call("user.info", {"handles": handle}, deadline)
        if not ok:
            comment = str(data.get("comment", ""))
            if status == 400 and "not found" in comment.lower():
                raise self.not_found(handle)
            logger.debug("codeforces user.info failed for %s: %s", handle, comment)
            return None
        results = data.get("result") or []
        if not results:
            return None
        info = results[0]

        confidence = Confidence.FULL
        contests = None
        try:
            ok, rating_data, _ = self._call("user.rating", {"handle": handle}, deadline)
            if ok:
                contests = len(rating_data.get("result") or [])
            else:
                confidence = Confidence.PARTIAL
        except UpstreamUnavailable:
            confidence = Confidence.PARTIAL

        stats = ProfileStats()
        try:
            # count=10000 covers all but the most prolific accounts
            ok, status_data, _ = self._call("user.status", {"handle": handle, "from": 1, "count": 10000}, deadline)
            if ok:
                stats = count_solved(status_data.get("result") or [])
            else:
                confidence = Confidence.PARTIAL
        except UpstreamUnavailable:
            confidence = Confidence.PARTIAL

        stats.rating = info.get("rating")
        stats.max_rating = info.get("maxRating")
        stats.rank = info.get("rank") or "unrated"
        stats.contests = contests
        stats.extras.update(
            {
                "contribution": info.get("contribution", 0),
                "country": info.get("country"),
                "registration_time": info.get("registrationTimeSeconds"),
            }
        )
        return StrategyResult(stats, confidence)

    def _from_profile_page(self, handle: str, deadline: Deadline) -> Optional[StrategyResult]:
        resp = request(
            self.session, "GET", CODEFORCES_PROFILE_URL.format(handle=handle),
            platform=self.platform.value, deadline=deadline,
        )
        if resp.status_code == 404:
            raise self.not_found(handle)
        if resp.status_code != 200:
            return None
        # Unknown handles are redirected to the home page.
        if "/profile/" not in resp.url:
            raise self.not_found(handle)

        soup = BeautifulSoup(resp.text, "lxml")
        info = soup.find("div", class_="info")
        if info is None:
            return None

        stats = ProfileStats()
        rank_el = info.find("div", class_="user-rank")
        if rank_el is not None:
            stats.rank = rank_el.get_text(strip=True).lower() or None

        text = info.get_text(" ", strip=True)
        m = re.search(r"Contest rating:\s*(\d+)", text)
        if m:
            stats.rating = int(m.group(1))
        m = re.search(r"max\.\s*[\w\s]*?,\s*(\d+)", text)
        if m:
            stats.max_rating = int(m.group(1))

        counter = soup.find("div", class_="_UserActivityFrame_counterValue")
        if counter is not None:
            stats.problems_solved = to_int(counter.get_text())
        return StrategyResult(stats, Confidence.PARTIAL)


__all__ = ["CodeforcesFetcher", "WEIGHTS", "count_solved"]
