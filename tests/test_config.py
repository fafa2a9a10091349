from pathlib import Path

import pytest

from platforms.base import Platform
from sync.config import DEFAULT_LIMITS, load_settings


def test_defaults():
    settings = load_settings()
    assert settings.cooldown_seconds == 12 * 3600
    assert settings.batch_size == 20
    assert settings.max_retries == 3
    assert settings.only is None
    assert settings.store_path == Path("data") / "store.json"
    assert settings.limits_for(Platform.CODECHEF) == DEFAULT_LIMITS[Platform.CODECHEF]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CPR_BATCH_SIZE", "5")
    monkeypatch.setenv("CPR_COOLDOWN_HOURS", "1.5")
    monkeypatch.setenv("CPR_ONLY", "leetcode, GitHub")
    monkeypatch.setenv("CPR_CODEFORCES_SPACING", "10")
    monkeypatch.setenv("CPR_BROWSER_FALLBACK", "1")
    settings = load_settings()
    assert settings.batch_size == 5
    assert settings.cooldown_seconds == 5400
    assert settings.only == frozenset({Platform.LEETCODE, Platform.GITHUB})
    assert settings.limits_for(Platform.CODEFORCES).min_interval == 10.0
    assert settings.browser_fallback is True


def test_invalid_number_names_the_variable(monkeypatch):
    monkeypatch.setenv("CPR_BATCH_SIZE", "lots")
    with pytest.raises(ValueError, match="CPR_BATCH_SIZE"):
        load_settings()


def test_unknown_platform_in_filter(monkeypatch):
    monkeypatch.setenv("CPR_ONLY", "topcoder")
    with pytest.raises(ValueError, match="topcoder"):
        load_settings()
