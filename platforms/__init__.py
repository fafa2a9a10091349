from typing import Dict, Optional

from .base import Confidence, NormalizedProfile, Platform, ProfileFetcher
from .codechef import CodeChefFetcher
from .codeforces import CodeforcesFetcher
from .geeksforgeeks import GeeksforGeeksFetcher
from .github import GitHubFetcher
from .hackerrank import HackerRankFetcher
from .leetcode import LeetCodeFetcher

FETCHERS = {
    Platform.LEETCODE: LeetCodeFetcher,
    Platform.CODEFORCES: CodeforcesFetcher,
    Platform.CODECHEF: CodeChefFetcher,
    Platform.GEEKSFORGEEKS: GeeksforGeeksFetcher,
    Platform.HACKERRANK: HackerRankFetcher,
    Platform.GITHUB: GitHubFetcher,
}


def build_fetchers(*, browser_fallback: bool = False, github_token: Optional[str] = None) -> Dict[Platform, ProfileFetcher]:
    """Instantiate one fetcher per platform."""
    fetchers: Dict[Platform, ProfileFetcher] = {}
    for platform, cls in FETCHERS.items():
        if cls is CodeChefFetcher:
            fetchers[platform] = cls(browser_fallback=browser_fallback)
        elif cls is GitHubFetcher:
            fetchers[platform] = cls(token=github_token)
        else:
            fetchers[platform] = cls()
    return fetchers


def fetch_profile(
    platform, username: str, timeout: Optional[float] = None, *, fetchers: Optional[Dict[Platform, ProfileFetcher]] = None
) -> NormalizedProfile:
    """One-off fetch without governor, retries or persistence."""
    platform = Platform.parse(platform)
    fetcher = (fetchers if fetchers is not None else build_fetchers())[platform]
    return fetcher.fetch(username, timeout=timeout)


__all__ = [
    "Platform",
    "Confidence",
    "NormalizedProfile",
    "ProfileFetcher",
    "FETCHERS",
    "build_fetchers",
    "fetch_profile",
]
