"""LeetCode profile adapter.

LeetCode has no official public API.  The profile data lives behind the
GraphQL endpoint the website itself uses, which sits behind Cloudflare, so
the session is a ``cloudscraper`` instance.  Logged-in cookies can be
supplied through the environment, which makes the GraphQL route much less
likely to be challenged:

    LEETCODE_SESSION   – value of the `LEETCODE_SESSION` cookie
    LEETCODE_CSRF      – value of the `csrftoken` cookie (optional)

Strategy order
--------------
1. ``graphql``       – matchedUser + userContestRanking (complete data)
2. ``stats_api``     – community-run stats mirror (no contest data)
3. ``profile_page``  – dehydrated Next.js state embedded in the profile page
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, Iterator, List, Optional

import requests
from bs4 import BeautifulSoup

from .base import Confidence, Platform, ProfileFetcher, ProfileStats, Strategy, StrategyResult, to_int
from .http import Deadline, create_session, json_or_none, request
from .scoring import ScoreWeights

logger = logging.getLogger(__name__)

_GRAPHQL_ENDPOINT = "https://leetcode.com/graphql"
_STATS_API_URL = "https://leetcode-stats-api.herokuapp.com/{username}"
_PROFILE_URL = "https://leetcode.com/u/{username}/"

# 10 per solved problem, 0.002 * (contest rating - 1500)^2, 25 per attended contest.
WEIGHTS = ScoreWeights(volume=10, rating_floor=1500, rating_weight=0.002, contest=25)

_PROFILE_QUERY = """
query userProfile($username: String!) {
  matchedUser(username: $username) {
    username
    profile { ranking reputation }
    submitStatsGlobal { acSubmissionNum { difficulty count } }
  }
  userContestRanking(username: $username) {
    attendedContestsCount
    rating
    globalRanking
    badge { name }
  }
}
"""

_MISSING_MARKERS = ("does not exist", "not found", "user not exist")


def _looks_missing(message: Any) -> bool:
    text = str(message or "").lower()
    return any(marker in text for marker in _MISSING_MARKERS)


def parse_ac_counts(rows: List[Dict]) -> ProfileStats:
    """Turn ``acSubmissionNum`` rows into totals + difficulty buckets."""

    if not rows:
        return ProfileStats()
    stats = ProfileStats(difficulty={"easy": 0, "medium": 0, "hard": 0})
    for row in rows:
        if not isinstance(row, dict):
            continue
        diff = (row.get("difficulty") or "").lower()
        count = to_int(row.get("count"))
        if diff == "all":
            stats.problems_solved = count
        elif diff in stats.difficulty:
            stats.difficulty[diff] = count
    if not stats.problems_solved:
        stats.problems_solved = sum(stats.difficulty.values())
    return stats


def _walk(node: Any) -> Iterator[Dict]:
    if isinstance(node, dict):
        yield node
        for value in node.values():
            yield from _walk(value)
    elif isinstance(node, list):
        for value in node:
            yield from _walk(value)


class LeetCodeFetcher(ProfileFetcher):
    platform = Platform.LEETCODE
    weights = WEIGHTS
    username_pattern = re.compile(r"^[A-Za-z0-9_-]{1,30}$")

    def create_session(self) -> requests.Session:
        session = create_session(cloudflare=True, headers={"Referer": "https://leetcode.com/"})
        cookie = os.getenv("LEETCODE_SESSION")
        if cookie:
            session.cookies.set("LEETCODE_SESSION", cookie, domain=".leetcode.com")
            csrf = os.getenv("LEETCODE_CSRF")
            if csrf:
                session.cookies.set("csrftoken", csrf, domain=".leetcode.com")
                session.headers["x-csrftoken"] = csrf
        return session

    def strategies(self) -> List[Strategy]:
        return [
            Strategy("graphql", self._from_graphql),
            Strategy("stats_api", self._from_stats_api),
            Strategy("profile_page", self._from_profile_page),
        ]

    # ------------------------------------------------------------------

    def _from_graphql(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        resp = request(
            self.session, "POST", _GRAPHQL_ENDPOINT,
            platform=self.platform.value, deadline=deadline,
            json={"query": _PROFILE_QUERY, "variables": {"username": username}},
            headers={"Content-Type": "application/json"},
        )
        payload = json_or_none(resp)
        if resp.status_code != 200 or not isinstance(payload, dict):
            # Cloudflare challenge pages come back as 403 HTML.
            return None

        data = payload.get("data") or {}
        user = data.get("matchedUser")
        if user is None:
            errors = payload.get("errors") or []
            if "matchedUser" in data or any(_looks_missing(e.get("message")) for e in errors if isinstance(e, dict)):
                raise self.not_found(username)
            return None

        stats = parse_ac_counts((user.get("submitStatsGlobal") or {}).get("acSubmissionNum"))
        profile = user.get("profile") or {}
        contest = data.get("userContestRanking") or {}
        if contest:
            stats.rating = round(float(contest.get("rating") or 0), 2) or None
            stats.contests = to_int(contest.get("attendedContestsCount"))
            badge = contest.get("badge") or {}
            stats.rank = badge.get("name")
            stats.extras["contest_global_ranking"] = contest.get("globalRanking")
        stats.extras["ranking"] = profile.get("ranking")
        stats.extras["reputation"] = profile.get("reputation")
        return StrategyResult(stats, Confidence.FULL)

    def _from_stats_api(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        resp = request(
            self.session, "GET", _STATS_API_URL.format(username=username),
            platform=self.platform.value, deadline=deadline,
        )
        payload = json_or_none(resp)
        if not isinstance(payload, dict):
            return None
        if payload.get("status") != "success":
            if _looks_missing(payload.get("message")):
                raise self.not_found(username)
            return None

        stats = ProfileStats(
            problems_solved=to_int(payload.get("totalSolved")),
            difficulty={
                "easy": to_int(payload.get("easySolved")),
                "medium": to_int(payload.get("mediumSolved")),
                "hard": to_int(payload.get("hardSolved")),
            },
            extras={
                "ranking": payload.get("ranking"),
                "reputation": payload.get("reputation"),
                "contribution_points": payload.get("contributionPoints"),
            },
        )
        # No contest data on this route.
        return StrategyResult(stats, Confidence.PARTIAL)

    def _from_profile_page(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        resp = request(
            self.session, "GET", _PROFILE_URL.format(username=username),
            platform=self.platform.value, deadline=deadline,
        )
        if resp.status_code == 404:
            raise self.not_found(username)
        if resp.status_code != 200:
            return None

        soup = BeautifulSoup(resp.text, "lxml")
        script = soup.find("script", id="__NEXT_DATA__")
        if script is None or not script.string:
            return None
        state = json.loads(script.string)

        user = None
        ac_rows = None
        contest = None
        for node in _walk(state):
            if user is None and isinstance(node.get("matchedUser"), dict):
                user = node["matchedUser"]
            if ac_rows is None and isinstance(node.get("acSubmissionNum"), list):
                ac_rows = node["acSubmissionNum"]
            if contest is None and isinstance(node.get("userContestRanking"), dict):
                contest = node["userContestRanking"]

        if user is None or str(user.get("username", "")).lower() != username.lower():
            return None

        stats = parse_ac_counts(ac_rows or [])
        if contest:
            stats.rating = round(float(contest.get("rating") or 0), 2) or None
            stats.contests = to_int(contest.get("attendedContestsCount"))
        return StrategyResult(stats, Confidence.PARTIAL)


__all__ = ["LeetCodeFetcher", "WEIGHTS", "parse_ac_counts"]
