"""Error taxonomy shared by the platform adapters and the sync layer.

Every failure a fetcher can surface is a :class:`PlatformError`.  The
``retryable`` class attribute is what the retry policy looks at, so adding a
new failure type only requires picking the right base class.
"""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Root of every error raised by this package."""


class PlatformError(SyncError):
    """A single (user, platform) fetch failed."""

    code = "platform_error"
    retryable = False

    def __init__(self, message: str, *, platform: Optional[str] = None, username: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.platform = platform
        self.username = username

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "platform": self.platform, "username": self.username}


class InvalidUsername(PlatformError):
    """Username rejected by the platform's format rules before dispatch."""

    code = "invalid_username"


class NotFound(PlatformError):
    """The upstream positively denied that the username exists."""

    code = "not_found"


class RateLimited(PlatformError):
    """Throttled, either by the upstream (HTTP 429) or by our own governor."""

    code = "rate_limited"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        platform: Optional[str] = None,
        username: Optional[str] = None,
        retry_after: Optional[float] = None,
        remaining_seconds: Optional[float] = None,
    ):
        super().__init__(message, platform=platform, username=username)
        self.retry_after = retry_after
        self.remaining_seconds = remaining_seconds

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.retry_after is not None:
            data["retry_after"] = self.retry_after
        if self.remaining_seconds is not None:
            data["remaining_seconds"] = self.remaining_seconds
        return data


class Timeout(PlatformError):
    code = "timeout"
    retryable = True


class UpstreamUnavailable(PlatformError):
    """Connection failures, 5xx answers, or an upstream we could not read."""

    code = "upstream_unavailable"
    retryable = True


class ValidationError(SyncError):
    """A normalized record does not satisfy the stored schema."""

    code = "validation_error"


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PlatformError) and exc.retryable


__all__ = [
    "SyncError",
    "PlatformError",
    "InvalidUsername",
    "NotFound",
    "RateLimited",
    "Timeout",
    "UpstreamUnavailable",
    "ValidationError",
    "is_retryable",
]
