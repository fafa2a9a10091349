"""Report module: writes a Markdown summary of a fleet sync run."""

from typing import List, Union
from pathlib import Path

import pandas as pd

from .models import SyncJobReport


def platform_summary(report: SyncJobReport) -> pd.DataFrame:
    """One row per platform: outcome counts and fetch timings (seconds)."""
    counts = pd.DataFrame.from_dict(report.platform_counts, orient="index")
    counts = counts.reindex(columns=["success", "error", "skipped"], fill_value=0)

    timings = [(p, t) for p, values in report.platform_timings.items() for t in values]
    if timings:
        frame = pd.DataFrame(timings, columns=["platform", "seconds"])
        stats = frame.groupby("platform")["seconds"].agg(["mean", "max"]).round(2)
    else:
        stats = pd.DataFrame(columns=["mean", "max"])

    summary = counts.join(stats, how="left").fillna({"mean": 0.0, "max": 0.0})
    return summary.sort_index()


def write_markdown_report(report: SyncJobReport, output_path: Union[str, Path] = "sync_report.md") -> None:
    """Write *report* as Markdown to *output_path*."""
    lines: List[str] = ["# Profile Sync Report", ""]

    status = "cancelled" if report.cancelled else "complete"
    lines.append(
        f"Run {status}: {report.started_at.isoformat(timespec='seconds')} to "
        f"{report.finished_at.isoformat(timespec='seconds')} ({report.duration:.1f}s)."
    )
    lines.append("")
    lines.append(f"- Users: {report.processed_users}/{report.total_users} processed")
    lines.append(
        f"- Profiles: {report.updated_profiles} updated, {report.failed_profiles} failed, "
        f"{report.skipped_profiles} skipped"
    )
    lines.append(f"- Batches: {', '.join(str(n) for n in report.batch_sizes) or 'none'} ({report.pauses} pauses)")
    if report.stale_profiles:
        lines.append(f"- Stale profiles: {report.stale_profiles}")

    if report.platform_counts:
        summary = platform_summary(report)
        lines += ["", "## Platforms", ""]
        lines.append("| platform | success | error | skipped | mean s | max s |")
        lines.append("|---|---|---|---|---|---|")
        for platform, row in summary.iterrows():
            lines.append(
                f"| {platform} | {int(row['success'])} | {int(row['error'])} | {int(row['skipped'])} "
                f"| {row['mean']:.2f} | {row['max']:.2f} |"
            )

    skipped_users = sorted(uid for uid, outcome in report.user_outcomes.items() if outcome == "skipped")
    if skipped_users:
        lines += ["", "## Users not processed", ""]
        lines.append(", ".join(skipped_users))

    if report.failures:
        lines += ["", "## Failures", ""]
        for failure in report.failures:
            lines.append(
                f"- {failure['user_id']} / {failure['platform']} ({failure.get('username') or '?'}): "
                f"`{failure.get('code')}` {failure.get('error') or ''}".rstrip()
            )

    Path(output_path).write_text("\n".join(lines) + "\n", encoding="utf-8")

__all__ = ["write_markdown_report", "platform_summary"]
