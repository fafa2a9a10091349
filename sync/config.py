"""Runtime settings, read from the environment (and ``.env`` when present).

All knobs use the ``CPR_`` prefix, e.g. ``CPR_BATCH_SIZE=10``.  Per-platform
pacing can be tuned with ``CPR_<PLATFORM>_SPACING``,
``CPR_<PLATFORM>_CONCURRENCY`` and ``CPR_<PLATFORM>_TIMEOUT``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, FrozenSet, Optional

from dotenv import load_dotenv

from platforms.base import Platform


@dataclass(frozen=True)
class PlatformLimits:
    min_interval: float  # seconds between two dispatched requests
    max_concurrent: int  # in-flight requests
    timeout: float  # budget for one fetch


DEFAULT_LIMITS: Dict[Platform, PlatformLimits] = {
    Platform.GITHUB: PlatformLimits(1.0, 1, 20.0),
    Platform.LEETCODE: PlatformLimits(2.0, 1, 20.0),
    Platform.CODEFORCES: PlatformLimits(5.0, 1, 20.0),
    Platform.CODECHEF: PlatformLimits(6.0, 1, 30.0),
    Platform.GEEKSFORGEEKS: PlatformLimits(2.0, 1, 20.0),
    Platform.HACKERRANK: PlatformLimits(1.5, 1, 20.0),
}


@dataclass(frozen=True)
class SyncSettings:
    cooldown_hours: float = 12.0
    freshness_hours: float = 24.0
    batch_size: int = 20
    max_retries: int = 3
    backoff_base: float = 1.0
    batch_pause: float = 3.0
    max_jitter: float = 0.3
    only: Optional[FrozenSet[Platform]] = None
    browser_fallback: bool = False
    github_token: Optional[str] = None
    store_path: Path = Path("data") / "store.json"
    report_path: Path = Path("sync_report.md")
    log_level: str = "INFO"
    limits: Dict[Platform, PlatformLimits] = field(default_factory=lambda: dict(DEFAULT_LIMITS))

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_hours * 3600

    def limits_for(self, platform: Platform) -> PlatformLimits:
        return self.limits.get(platform, PlatformLimits(1.0, 1, 20.0))

    def with_overrides(self, **changes) -> "SyncSettings":
        return replace(self, **changes)


def _number(name: str, default: float, cast=float):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


def _flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> SyncSettings:
    """Build :class:`SyncSettings` from the environment."""

    # Load environment variables from .env if present (safe-no-op if file missing)
    load_dotenv()

    only_raw = os.getenv("CPR_ONLY", "")
    only = frozenset(Platform.parse(s) for s in only_raw.split(",") if s.strip()) or None

    limits = {}
    for platform, base in DEFAULT_LIMITS.items():
        prefix = f"CPR_{platform.value.upper()}"
        limits[platform] = PlatformLimits(
            min_interval=_number(f"{prefix}_SPACING", base.min_interval),
            max_concurrent=max(1, _number(f"{prefix}_CONCURRENCY", base.max_concurrent, int)),
            timeout=_number(f"{prefix}_TIMEOUT", base.timeout),
        )

    return SyncSettings(
        cooldown_hours=_number("CPR_COOLDOWN_HOURS", 12.0),
        freshness_hours=_number("CPR_FRESHNESS_HOURS", 24.0),
        batch_size=max(1, _number("CPR_BATCH_SIZE", 20, int)),
        max_retries=_number("CPR_MAX_RETRIES", 3, int),
        backoff_base=_number("CPR_BACKOFF_BASE", 1.0),
        batch_pause=_number("CPR_BATCH_PAUSE", 3.0),
        max_jitter=_number("CPR_MAX_JITTER", 0.3),
        only=only,
        browser_fallback=_flag("CPR_BROWSER_FALLBACK"),
        github_token=os.getenv("GITHUB_ACCESS_TOKEN") or None,
        store_path=Path(os.getenv("CPR_STORE_PATH", str(Path("data") / "store.json"))),
        report_path=Path(os.getenv("CPR_REPORT_PATH", "sync_report.md")),
        log_level=os.getenv("CPR_LOGLEVEL", "INFO").upper(),
        limits=limits,
    )


__all__ = ["PlatformLimits", "SyncSettings", "DEFAULT_LIMITS", "load_settings"]
