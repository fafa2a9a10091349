from datetime import datetime, timedelta, timezone

import pytest

from platforms.base import Platform
from sync.models import AggregateUserScore, PlatformProfile, UpdateStatus, UserRecord
from sync.stores import InMemoryStore, JsonFileStore, StoreError

NOW = datetime(2024, 3, 1, 2, 30, tzinfo=timezone.utc)


def _profile(**kwargs):
    fields = dict(user_id="alice", platform=Platform.CODEFORCES, username="alice_cf", score=210.0)
    fields.update(kwargs)
    return PlatformProfile(**fields)


def test_profile_unique_per_user_and_platform():
    store = InMemoryStore()
    store.create(_profile())
    with pytest.raises(StoreError):
        store.create(_profile(score=1.0))
    store.create(_profile(platform=Platform.GITHUB))
    assert len(store.list_for_user("alice")) == 2


def test_negative_score_rejected():
    store = InMemoryStore()
    with pytest.raises(StoreError):
        store.create(_profile(score=-1.0))


def test_update_requires_existing_record():
    with pytest.raises(StoreError):
        InMemoryStore().update(_profile())


def test_records_are_copied():
    store = InMemoryStore()
    profile = store.create(_profile())
    profile.score = 999.0
    assert store.get("alice", Platform.CODEFORCES).score == 210.0


def test_totals_for_unknown_user_fail():
    with pytest.raises(StoreError):
        InMemoryStore().write_totals("ghost", AggregateUserScore())


def test_json_store_survives_reload(tmp_path):
    path = tmp_path / "data" / "store.json"
    store = JsonFileStore(path)
    store.add_user(UserRecord("alice", name="Alice"))
    store.set_handle("alice", Platform.CODEFORCES, "alice_cf")
    store.create(_profile(
        difficulty={"easy": 3}, rating=1500.0, last_updated=NOW,
        last_update_status=UpdateStatus.SUCCESS, update_attempts=2, partial_data=True,
    ))
    store.write_totals("alice", AggregateUserScore(total_score=210.0, computed_at=NOW))

    reloaded = JsonFileStore(path)
    user = reloaded.get_user("alice")
    assert user.name == "Alice"
    assert user.handles == {Platform.CODEFORCES: "alice_cf"}
    assert user.aggregate.total_score == 210.0
    assert reloaded.get("alice", Platform.CODEFORCES) == store.get("alice", Platform.CODEFORCES)
    assert not list(path.parent.glob(".store-*"))


def test_json_store_corrupt_file_is_store_error(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreError):
        JsonFileStore(path)


def test_staleness_is_relative_to_last_success():
    profile = _profile(last_updated=NOW)
    assert not profile.is_stale(NOW + timedelta(hours=23))
    assert profile.is_stale(NOW + timedelta(hours=25))
    assert _profile().is_stale(NOW)
