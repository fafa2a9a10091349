"""CodeChef adapter: the only source is the public profile page.

CodeChef has no public API for user statistics, so the profile is scraped.
The page layout changes every few months; the parser therefore tries
several selectors for every field and falls back to regexes over the page
text.  Missing fields leave the result partial rather than failing the
fetch, but a page without the profile header is never accepted as a
profile.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup

from .base import Confidence, Platform, ProfileFetcher, ProfileStats, Strategy, StrategyResult, to_int
from .http import Deadline, request
from .scoring import ScoreWeights

logger = logging.getLogger(__name__)

CODECHEF_PROFILE_URL = "https://www.codechef.com/users/{username}"

# 15 per problem, 0.001 * (rating - 1400)^2, 30 per rated contest.
WEIGHTS = ScoreWeights(volume=15, rating_floor=1400, rating_weight=0.001, contest=30)

_SOLVED_PATTERNS = [
    re.compile(r"Total Problems Solved\s*:?\s*(\d+)", re.I),
    re.compile(r"Fully Solved\s*\(?\s*(\d+)", re.I),
    re.compile(r"Problems Solved\s*:?\s*(\d+)", re.I),
]

_CONTEST_PATTERNS = [
    re.compile(r"No\.?\s*of\s*Contests\s*Participated\s*:?\s*(\d+)", re.I),
    re.compile(r"participated\s+in\s+(\d+)\s+contests", re.I),
    re.compile(r"(\d+)\s+contests?\s+participated", re.I),
    re.compile(r"contests?\s+participated\s*:?\s*(\d+)", re.I),
]


def parse_profile_page(html: str, username: str) -> Optional[StrategyResult]:
    """Extract profile numbers from a CodeChef profile page.

    Returns ``None`` when the markup does not look like a profile page at
    all (challenge page, maintenance page, layout we do not recognise).
    """

    soup = BeautifulSoup(html, "lxml")
    header = soup.select_one("h1.h2-style, .user-details-container h1, .user-details-container header h1")
    rating_el = soup.select_one(".rating-number")
    if header is None and rating_el is None:
        return None

    handle_el = soup.select_one(".user-details .m-username--link, .user-details-container .m-username--link")
    if handle_el is not None and handle_el.get_text(strip=True).lower() != username.lower():
        logger.warning("codechef page for %s shows handle %s", username, handle_el.get_text(strip=True))
        return None

    stats = ProfileStats()
    found = 0

    if rating_el is not None:
        rating = to_int(rating_el.get_text(), default=-1)
        if rating >= 0:
            stats.rating = rating
            found += 1

    highest = soup.select_one(".rating-header small")
    if highest is not None:
        m = re.search(r"(\d+)", highest.get_text())
        if m:
            stats.max_rating = int(m.group(1))

    stars = soup.select(".rating-star span")
    if stars:
        stats.rank = f"{len(stars)}*"
        stats.extras["stars"] = len(stars)

    for item in soup.select(".rating-ranks li, .inline-list li"):
        text = item.get_text(" ", strip=True).lower()
        strong = item.find(["strong", "a"])
        value = to_int(strong.get_text() if strong else text, default=0)
        if "global rank" in text:
            stats.extras["global_rank"] = value
        elif "country rank" in text:
            stats.extras["country_rank"] = value

    page_text = soup.get_text(" ", strip=True)

    for pattern in _SOLVED_PATTERNS:
        m = pattern.search(page_text)
        if m:
            stats.problems_solved = int(m.group(1))
            found += 1
            break

    contests_el = soup.select_one(".contest-participated-count b, .contest-participated-count")
    if contests_el is not None and re.search(r"\d", contests_el.get_text()):
        stats.contests = to_int(contests_el.get_text())
    else:
        for pattern in _CONTEST_PATTERNS:
            m = pattern.search(page_text)
            if m:
                stats.contests = int(m.group(1))
                break
        else:
            rows = [
                row for row in soup.select(".rating-table tbody tr, table.dataTable tbody tr")
                if re.search(r"\d+\s*(?:→|->)\s*\d+|Rated", row.get_text())
            ]
            if rows:
                stats.contests = len(rows)

    confidence = Confidence.FULL if found == 2 else Confidence.PARTIAL
    return StrategyResult(stats, confidence)


class CodeChefFetcher(ProfileFetcher):
    platform = Platform.CODECHEF
    weights = WEIGHTS
    username_pattern = re.compile(r"^[A-Za-z0-9_]{1,30}$")
    timeout = 30.0

    def __init__(self, session=None, *, browser_fallback: bool = False):
        super().__init__(session)
        self.browser_fallback = browser_fallback

    def strategies(self) -> List[Strategy]:
        chain = [Strategy("profile_page", self._from_profile_page)]
        if self.browser_fallback:
            chain.append(Strategy("rendered_page", self._from_rendered_page))
        return chain

    # ------------------------------------------------------------------

    def _from_profile_page(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        url = CODECHEF_PROFILE_URL.format(username=username)
        resp = request(
            self.session, "GET", url,
            platform=self.platform.value, deadline=deadline,
            headers={"Referer": "https://www.codechef.com/", "Cache-Control": "max-age=0"},
            allow_redirects=True,
        )
        if resp.status_code == 404:
            raise self.not_found(username)
        if resp.status_code != 200:
            return None
        # Unknown handles are redirected to the home/search page.
        if f"/users/{username.lower()}" not in resp.url.lower():
            logger.info("codechef redirected %s to %s", username, resp.url)
            raise self.not_found(username)
        return parse_profile_page(resp.text, username)

    def _from_rendered_page(self, username: str, deadline: Deadline) -> Optional[StrategyResult]:
        """Render the profile in headless Chromium (needs `playwright install chromium`)."""

        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import sync_playwright

        budget_ms = int(deadline.budget(60.0) * 1000)
        url = CODECHEF_PROFILE_URL.format(username=username)
        logger.info("Playwright: rendering CodeChef profile for %s", username)
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=True)
                try:
                    page = browser.new_page()
                    page.goto(url, timeout=budget_ms, wait_until="domcontentloaded")
                    final_url = page.url
                    html = page.content()
                finally:
                    browser.close()
        except PlaywrightError as exc:
            logger.warning("Playwright could not render %s: %s", url, exc)
            return None

        if f"/users/{username.lower()}" not in final_url.lower():
            raise self.not_found(username)
        result = parse_profile_page(html, username)
        if result is not None:
            result.confidence = Confidence.PARTIAL
        return result


__all__ = ["CodeChefFetcher", "WEIGHTS", "parse_profile_page"]
