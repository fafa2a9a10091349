import random

import pytest

from platforms.base import Platform
from sync.config import PlatformLimits, SyncSettings
from sync.governor import RateGovernor
from sync.orchestrator import SyncOrchestrator
from sync.stores import InMemoryStore

# no spacing so tests never wait on the governor
FAST_LIMITS = {p: PlatformLimits(min_interval=0.0, max_concurrent=2, timeout=5.0) for p in Platform}


@pytest.fixture(autouse=True)
def _no_credentials(monkeypatch):
    for name in ("GITHUB_ACCESS_TOKEN", "LEETCODE_SESSION", "LEETCODE_CSRF"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(store, sleeps):
    def build(fetchers, store_override=None, **overrides):
        target = store_override if store_override is not None else store
        settings = SyncSettings(limits=dict(FAST_LIMITS), **overrides)
        governor = RateGovernor(settings.limits, cooldown_seconds=settings.cooldown_seconds)
        return SyncOrchestrator(
            target,
            target,
            governor,
            fetchers,
            settings=settings,
            sleep=sleeps.append,
            rng=random.Random(3),
            progress=False,
        )

    return build
