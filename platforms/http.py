"""HTTP plumbing shared by every adapter.

All upstream calls go through :func:`request`, which applies the per-call
deadline and turns transport failures and throttling answers into the error
taxonomy.  Anything else (404, 400, 403 …) is handed back to the adapter,
because only the adapter knows whether a 404 means "no such user" or "the
endpoint moved".
"""

from __future__ import annotations

import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Optional

import cloudscraper
import requests

from .errors import RateLimited, Timeout, UpstreamUnavailable

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Upper bound for a single request; the deadline may shorten it further.
REQUEST_TIMEOUT = 15.0


class Deadline:
    """Cooperative time budget for one ``fetch`` call."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self._expires = None if seconds is None else clock() + seconds

    def remaining(self) -> Optional[float]:
        if self._expires is None:
            return None
        return max(0.0, self._expires - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def budget(self, per_request: float = REQUEST_TIMEOUT) -> float:
        """Timeout to hand to ``requests`` for the next call."""
        remaining = self.remaining()
        if remaining is None:
            return per_request
        if remaining <= 0:
            raise Timeout(f"deadline of {self.seconds:.0f}s exhausted")
        return min(per_request, remaining)


def create_session(*, cloudflare: bool = False, headers: Optional[dict] = None) -> requests.Session:
    """Return a session with browser-like headers.

    ``cloudflare=True`` builds a ``cloudscraper`` session, which is a drop-in
    ``requests.Session`` that solves the JS challenge in front of some hosts.
    """
    session = cloudscraper.create_scraper() if cloudflare else requests.Session()
    session.headers.update(BROWSER_HEADERS)
    if headers:
        session.headers.update(headers)
    return session


def _retry_after(resp: requests.Response) -> Optional[float]:
    value = resp.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        return max(0.0, parsedate_to_datetime(value).timestamp() - time.time())
    except (TypeError, ValueError):
        return None


def request(
    session: requests.Session,
    method: str,
    url: str,
    *,
    platform: str,
    deadline: Deadline,
    timeout: float = REQUEST_TIMEOUT,
    **kwargs: Any,
) -> requests.Response:
    """Send one request and classify transport-level failures."""

    budget = deadline.budget(timeout)
    logger.debug("%s %s (timeout %.1fs)", method, url, budget)
    try:
        resp = session.request(method, url, timeout=budget, **kwargs)
    except requests.Timeout as exc:
        raise Timeout(f"{platform} request timed out: {url}", platform=platform) from exc
    except requests.RequestException as exc:
        raise UpstreamUnavailable(f"{platform} request failed: {exc}", platform=platform) from exc

    logger.debug("%s answered %s for %s", platform, resp.status_code, url)
    if resp.status_code == 429:
        raise RateLimited(
            f"{platform} rate limit exceeded (HTTP 429)",
            platform=platform,
            retry_after=_retry_after(resp),
        )
    if resp.status_code >= 500:
        raise UpstreamUnavailable(f"{platform} returned HTTP {resp.status_code}", platform=platform)
    return resp


def json_or_none(resp: requests.Response) -> Any:
    """Decoded JSON body, or ``None`` for HTML error pages and other junk."""
    try:
        return resp.json()
    except ValueError:
        return None


__all__ = ["Deadline", "create_session", "request", "json_or_none", "BROWSER_HEADERS", "USER_AGENT"]
