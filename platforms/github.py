"""GitHub adapter.

With ``GITHUB_ACCESS_TOKEN`` set, the GraphQL API gives the contribution
count for the last year in a single query.  Without a token only the REST
API is available (60 requests/hour per IP); it confirms the account and sums
stars over public repositories, but has no contribution count, so the result
is partial.
"""

from __future__ import annotations

import logging
import os
import re
import time
from typing import List, Optional

import requests

from .base import Confidence, Platform, ProfileFetcher, ProfileStats, Strategy, StrategyResult, to_int
from .errors import RateLimited
from .http import Deadline, json_or_none, request
from .scoring import ScoreWeights

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"

# One point per contribution in the last year.
WEIGHTS = ScoreWeights(volume=1)

_USER_QUERY = """
query($login: String!) {
  user(login: $login) {
    login
    contributionsCollection { contributionCalendar { totalContributions } }
    repositories(first: 100, ownerAffiliations: OWNER, isFork: false) {
      totalCount
      nodes { stargazerCount }
    }
    followers { totalCount }
    following { totalCount }
  }
}
"""


class GitHubFetcher(ProfileFetcher):
    platform = Platform.GITHUB
    weights = WEIGHTS
    username_pattern = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9]|-(?=[A-Za-z0-9])){0,38}$")

    def __init__(self, session: Optional[requests.Session] = None, *, token: Optional[str] = None):
        super().__init__(session)
        self.token = token if token is not None else os.getenv("GITHUB_ACCESS_TOKEN")
        self.session.headers["Accept"] = "application/vnd.github+json"

    def strategies(self) -> List[Strategy]:
        return [
            Strategy("graphql", self._from_graphql),
            Strategy("rest", self._from_rest),
        ]

    def _auth_headers(self, scheme: str = "token") -> dict:
        return {"Authorization": f"{scheme} {self.token}"} if self.token else {}

    def _check_quota(self, resp: requests.Response) -> None:
        if resp.status_code in (403, 429) and resp.headers.get("X-RateLimit-Remaining") == "0":
            reset = to_int(resp.headers.get("X-RateLimit-Reset"))
            retry_after = max(0.0, reset - time.time()) if reset else None
            raise RateLimited("github API rate limit exhausted", retry_after=retry_after)

    def _from_graphql(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        if not self.token:
            return None
        resp = request(
            self.session, "POST", GITHUB_GRAPHQL_URL,
            platform=self.platform.value, deadline=deadline,
            json={"query": _USER_QUERY, "variables": {"login": username}},
            headers=self._auth_headers("bearer"),
        )
        self._check_quota(resp)
        payload = json_or_none(resp)
        if resp.status_code != 200 or not isinstance(payload, dict):
            logger.warning("github GraphQL answered %s; falling back to REST", resp.status_code)
            return None

        user = (payload.get("data") or {}).get("user")
        if user is None:
            errors = payload.get("errors") or []
            if any(isinstance(e, dict) and e.get("type") == "NOT_FOUND" for e in errors):
                raise self.not_found(username)
            return None

        contributions = to_int(
            ((user.get("contributionsCollection") or {}).get("contributionCalendar") or {}).get("totalContributions")
        )
        repos = user.get("repositories") or {}
        stars = sum(to_int(node.get("stargazerCount")) for node in repos.get("nodes") or [] if node)
        stats = ProfileStats(
            problems_solved=contributions,
            extras={
                "public_repos": to_int(repos.get("totalCount")),
                "stars": stars,
                "followers": to_int((user.get("followers") or {}).get("totalCount")),
                "following": to_int((user.get("following") or {}).get("totalCount")),
            },
        )
        return StrategyResult(stats, Confidence.FULL)

    def _from_rest(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        resp = request(
            self.session, "GET", f"{GITHUB_API_URL}/users/{username}",
            platform=self.platform.value, deadline=deadline, headers=self._auth_headers(),
        )
        self._check_quota(resp)
        if resp.status_code == 404:
            raise self.not_found(username)
        user = json_or_none(resp)
        if resp.status_code != 200 or not isinstance(user, dict) or not user.get("login"):
            return None

        stars = 0
        repos_resp = request(
            self.session, "GET", f"{GITHUB_API_URL}/users/{username}/repos",
            platform=self.platform.value, deadline=deadline, headers=self._auth_headers(),
            params={"per_page": 100, "type": "owner"},
        )
        repos = json_or_none(repos_resp)
        if repos_resp.status_code == 200 and isinstance(repos, list):
            stars = sum(to_int(r.get("stargazers_count")) for r in repos if isinstance(r, dict) and not r.get("fork"))

        stats = ProfileStats(
            extras={
                "public_repos": to_int(user.get("public_repos")),
                "stars": stars,
                "followers": to_int(user.get("followers")),
                "following": to_int(user.get("following")),
            },
        )
        return StrategyResult(stats, Confidence.PARTIAL)


__all__ = ["GitHubFetcher", "WEIGHTS"]
