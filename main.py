"""Command-line entry point.

Scheduled nightly (cron or CI) as ``python main.py fleet``; the other
subcommands are for operators:

    python main.py add-user alice --name "Alice"
    python main.py link alice codeforces tourist
    python main.py user alice --platform codeforces --platform leetcode
    python main.py recompute [alice]
    python main.py fetch leetcode alice_lc
"""

import argparse
import logging
import signal
import sys
import threading

from platforms import build_fetchers, fetch_profile
from platforms.base import Platform
from platforms.errors import PlatformError
from sync import (
    JsonFileStore,
    RateGovernor,
    ScoreAggregator,
    StoreError,
    SyncOrchestrator,
    UserRecord,
    load_settings,
)
from sync.report import write_markdown_report

settings = load_settings()

# ---------------------------------------------------------------------------
# Logging setup (controlled by CPR_LOGLEVEL, default INFO)
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


def build_orchestrator(store: JsonFileStore) -> SyncOrchestrator:
    governor = RateGovernor(settings.limits, cooldown_seconds=settings.cooldown_seconds)
    fetchers = build_fetchers(browser_fallback=settings.browser_fallback, github_token=settings.github_token)
    return SyncOrchestrator(store, store, governor, fetchers, settings=settings)


def _print_result(result) -> None:
    for outcome in result.outcomes:
        line = f"{outcome.platform.value:<14} {outcome.status.value:<8} {outcome.username or '-'}"
        if outcome.ok:
            line += f"  score={outcome.score}" + (" (partial)" if outcome.partial else "")
        elif outcome.error:
            line += f"  {outcome.error}"
        print(line)
    if result.aggregate is not None:
        print(f"total score: {result.aggregate.total_score}")


def cmd_fleet(args, store) -> int:
    cancel = threading.Event()

    def _stop(signum, _frame):
        logger.warning("Received signal %s; finishing the current batch", signum)
        cancel.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    report = build_orchestrator(store).run_fleet_sync(cancel)
    write_markdown_report(report, args.report or settings.report_path)
    logger.info("Report written → %s", args.report or settings.report_path)
    return 0


def cmd_user(args, store) -> int:
    result = build_orchestrator(store).sync_user(args.user_id, args.platform or None)
    _print_result(result)
    return 0 if not result.failed else 2


def cmd_link(args, store) -> int:
    result = build_orchestrator(store).link_account(args.user_id, args.platform, args.username)
    _print_result(result)
    return 0 if result.succeeded else 2


def cmd_add_user(args, store) -> int:
    if store.get_user(args.user_id) is not None:
        logger.error("User %s already exists", args.user_id)
        return 2
    store.add_user(UserRecord(user_id=args.user_id, name=args.name or args.user_id))
    logger.info("Added user %s", args.user_id)
    return 0


def cmd_fetch(args, store) -> int:
    fetchers = build_fetchers(browser_fallback=settings.browser_fallback, github_token=settings.github_token)
    try:
        profile = fetch_profile(
            args.platform, args.username, settings.limits_for(args.platform).timeout, fetchers=fetchers
        )
    except PlatformError as exc:
        logger.error("%s", exc)
        return 2
    line = f"{profile.platform.value:<14} {profile.username}  score={profile.score} via {profile.strategy}"
    print(line + (" (partial)" if profile.partial else ""))
    print(f"solved={profile.problems_solved} rating={profile.rating} contests={profile.contests}")
    return 0


def cmd_recompute(args, store) -> int:
    aggregator = ScoreAggregator(store, store)
    if args.user_id:
        if store.get_user(args.user_id) is None:
            raise LookupError(f"Unknown user {args.user_id}")
        totals = [aggregator.recompute(args.user_id)]
    else:
        totals = aggregator.recompute_all()
    logger.info("Recomputed %d users", len(totals))
    return 0


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Competitive-programming profile sync")
    sub = parser.add_subparsers(dest="command", required=True)

    fleet = sub.add_parser("fleet", help="resync every user")
    fleet.add_argument("--report", help="Markdown report path")
    fleet.set_defaults(func=cmd_fleet)

    user = sub.add_parser("user", help="resync one user now")
    user.add_argument("user_id")
    user.add_argument("--platform", action="append", type=Platform.parse, help="repeatable; default all linked")
    user.set_defaults(func=cmd_user)

    link = sub.add_parser("link", help="verify and store a username")
    link.add_argument("user_id")
    link.add_argument("platform", type=Platform.parse)
    link.add_argument("username")
    link.set_defaults(func=cmd_link)

    add = sub.add_parser("add-user", help="register a user")
    add.add_argument("user_id")
    add.add_argument("--name")
    add.set_defaults(func=cmd_add_user)

    recompute = sub.add_parser("recompute", help="recompute aggregate totals")
    recompute.add_argument("user_id", nargs="?")
    recompute.set_defaults(func=cmd_recompute)

    fetch = sub.add_parser("fetch", help="look up a profile without storing it")
    fetch.add_argument("platform", type=Platform.parse)
    fetch.add_argument("username")
    fetch.set_defaults(func=cmd_fetch)

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        store = JsonFileStore(settings.store_path)
        return args.func(args, store)
    except StoreError as exc:
        logger.error("Store failure, aborting: %s", exc)
        return 1
    except LookupError as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
