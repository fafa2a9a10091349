import pytest

import main
from fakes import ScriptedFetcher
from platforms.base import Platform, ProfileStats
from platforms.errors import NotFound
from sync.config import PlatformLimits
from sync.stores import JsonFileStore


@pytest.fixture
def cli(monkeypatch, tmp_path):
    limits = {p: PlatformLimits(0.0, 1, 5.0) for p in Platform}
    settings = main.settings.with_overrides(
        store_path=tmp_path / "store.json", report_path=tmp_path / "report.md", limits=limits,
    )
    monkeypatch.setattr(main, "settings", settings)
    fetchers = {p: ScriptedFetcher(p, default=ProfileStats(problems_solved=2)) for p in Platform}
    monkeypatch.setattr(main, "build_fetchers", lambda **kwargs: fetchers)
    return settings


def test_add_link_and_recompute(cli, capsys):
    assert main.main(["add-user", "alice", "--name", "Alice"]) == 0
    assert main.main(["add-user", "alice"]) == 2
    assert main.main(["link", "alice", "leetcode", "alice_lc"]) == 0
    assert "score=20.0" in capsys.readouterr().out
    assert main.main(["recompute"]) == 0

    store = JsonFileStore(cli.store_path)
    assert store.get_user("alice").handles == {Platform.LEETCODE: "alice_lc"}
    assert store.read_totals("alice").total_score == 20.0


def test_fleet_writes_report(cli, monkeypatch):
    monkeypatch.setattr(main.signal, "signal", lambda *args: None)
    main.main(["add-user", "bob"])
    main.main(["link", "bob", "github", "bob-gh"])
    assert main.main(["fleet"]) == 0
    assert "# Profile Sync Report" in cli.report_path.read_text(encoding="utf-8")


def test_unknown_user_exit_status(cli):
    assert main.main(["user", "ghost"]) == 2


def test_corrupt_store_is_fatal(cli):
    cli.store_path.write_text("{broken", encoding="utf-8")
    assert main.main(["recompute"]) == 1


def test_recompute_unknown_user_is_a_lookup_failure(cli):
    assert main.main(["recompute", "ghost"]) == 2


def test_fetch_prints_profile_without_storing(cli, capsys):
    assert main.main(["fetch", "codeforces", "tourist"]) == 0
    out = capsys.readouterr().out
    assert "score=20.0 via scripted" in out
    assert "solved=2" in out
    assert not cli.store_path.exists()


def test_fetch_unknown_username_exit_status(cli):
    main.build_fetchers()[Platform.GITHUB].script = [NotFound("User ghost not found on github")]
    assert main.main(["fetch", "github", "ghost"]) == 2
