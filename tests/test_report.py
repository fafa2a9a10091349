from datetime import datetime, timedelta, timezone

from platforms.base import Platform
from sync.models import PlatformOutcome, SyncJob, UpdateStatus
from sync.report import platform_summary, write_markdown_report

START = datetime(2024, 3, 1, 2, 0, tzinfo=timezone.utc)


def _job():
    job = SyncJob(["u1", "u2", "u3"], started_at=START)
    job.batch_sizes.append(2)
    job.record("u1", PlatformOutcome(Platform.LEETCODE, "a", UpdateStatus.SUCCESS, score=10.0, elapsed=1.0))
    job.record("u1", PlatformOutcome(Platform.GITHUB, "a", UpdateStatus.SUCCESS, score=3.0, elapsed=0.5))
    job.record("u2", PlatformOutcome(
        Platform.LEETCODE, "b", UpdateStatus.ERROR, error_code="not_found", error="User b not found on leetcode", elapsed=3.0,
    ))
    job.finish_user("u1", "success")
    job.finish_user("u2", "error")
    job.cancelled = True
    return job


def test_job_report_counts():
    report = _job().report(finished_at=START + timedelta(seconds=90))
    assert report.total_users == 3
    assert report.processed_users == 2
    assert report.updated_profiles == 2
    assert report.failed_profiles == 1
    assert report.user_outcomes["u3"] == "skipped"
    assert report.duration == 90.0


def test_platform_summary_aggregates_timings():
    summary = platform_summary(_job().report())
    assert list(summary.index) == ["github", "leetcode"]
    assert summary.loc["leetcode", "success"] == 1
    assert summary.loc["leetcode", "error"] == 1
    assert summary.loc["leetcode", "mean"] == 2.0
    assert summary.loc["leetcode", "max"] == 3.0


def test_markdown_report_lists_failures_and_skipped_users(tmp_path):
    path = tmp_path / "sync_report.md"
    write_markdown_report(_job().report(finished_at=START + timedelta(seconds=5)), path)
    text = path.read_text(encoding="utf-8")
    assert text.startswith("# Profile Sync Report")
    assert "Run cancelled" in text
    assert "| leetcode | 1 | 1 | 0 | 2.00 | 3.00 |" in text
    assert "u3" in text
    assert "`not_found` User b not found on leetcode" in text
