"""Decides when, and in what order, the platform fetchers run.

Two entry points share one :class:`~sync.governor.RateGovernor`:

``sync_user``
    On-demand resync of one user.  The user's platforms are fetched in
    parallel and the aggregate is recomputed once they are all done.

``run_fleet_sync``
    Nightly resync of every user, in fixed-size batches with a short pause
    between batches.  Each user gets its own worker (with a small random
    start-up delay); inside a worker the user's platforms are walked in
    order.  A cancellation event is honoured at batch boundaries.

Per-platform failures land on the platform's own record and never stop
sibling platforms or sibling users.  Only :class:`~sync.stores.StoreError`
is fatal.
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from tqdm import tqdm

from platforms.base import NormalizedProfile, Platform, ProfileFetcher
from platforms.errors import PlatformError, ValidationError

from .aggregator import ScoreAggregator
from .config import SyncSettings
from .governor import RateGovernor
from .models import (
    PlatformOutcome,
    PlatformProfile,
    SyncJob,
    SyncJobReport,
    SyncResult,
    UpdateStatus,
    UserRecord,
    utcnow,
)
from .retry import RetryPolicy, jittered_backoff
from .stores import ProfileStore, StoreError, UserStore

logger = logging.getLogger(__name__)


def validate_profile(profile: NormalizedProfile, platform: Platform) -> None:
    """Reject a normalized record the store must not accept."""
    if profile.platform is not platform:
        raise ValidationError(f"fetched a {profile.platform.value} profile for {platform.value}")
    if not isinstance(profile.score, (int, float)) or math.isnan(profile.score) or profile.score < 0:
        raise ValidationError(f"invalid score {profile.score!r} for {profile.username}")
    if (profile.problems_solved or 0) < 0 or (profile.contests or 0) < 0:
        raise ValidationError(f"negative counters for {profile.username}")
    if any(v < 0 for v in profile.difficulty.values()):
        raise ValidationError(f"negative difficulty bucket for {profile.username}")


class SyncOrchestrator:
    def __init__(
        self,
        profiles: ProfileStore,
        users: UserStore,
        governor: RateGovernor,
        fetchers: Dict[Platform, ProfileFetcher],
        aggregator: Optional[ScoreAggregator] = None,
        retry: Optional[RetryPolicy] = None,
        settings: Optional[SyncSettings] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        now: Callable[[], datetime] = utcnow,
        clock: Callable[[], float] = time.monotonic,
        progress: bool = True,
    ):
        self.settings = settings or SyncSettings()
        self.profiles = profiles
        self.users = users
        self.governor = governor
        self.fetchers = dict(fetchers)
        self.aggregator = aggregator or ScoreAggregator(profiles, users, now=now)
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._now = now
        self._clock = clock
        self.progress = progress
        self.retry = retry or RetryPolicy(
            max_retries=self.settings.max_retries,
            backoff=jittered_backoff(self.settings.backoff_base, rng=self._rng),
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # On-demand
    # ------------------------------------------------------------------

    def sync_user(self, user_id: str, platforms: Optional[Iterable] = None) -> SyncResult:
        """Resync *user_id* on the requested platforms (default: all linked ones)."""
        user = self._require_user(user_id)
        requested = [Platform.parse(p) for p in platforms] if platforms else list(user.handles)

        outcomes: Dict[Platform, PlatformOutcome] = {}
        targets = []
        for platform in requested:
            if platform in user.handles:
                targets.append(platform)
            else:
                outcomes[platform] = PlatformOutcome(
                    platform=platform,
                    username=None,
                    status=UpdateStatus.SKIPPED,
                    error_code="not_linked",
                    error=f"No {platform.value} username linked for user {user_id}",
                )

        logger.info("On-demand sync of user %s on %s", user_id, ", ".join(p.value for p in targets) or "nothing")
        if targets:
            with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="sync-user") as pool:
                futures = {
                    pool.submit(self._sync_platform, user_id, platform, user.handles[platform]): platform
                    for platform in targets
                }
                for fut in as_completed(futures):
                    outcomes[futures[fut]] = fut.result()

        ordered = [outcomes[p] for p in requested]
        if any(o.ok for o in ordered):
            aggregate = self.aggregator.recompute(user_id)
        else:
            aggregate = self.users.read_totals(user_id)
        return SyncResult(user_id=user_id, outcomes=ordered, aggregate=aggregate)

    def link_account(self, user_id: str, platform, username: str) -> SyncResult:
        """Verify *username* upstream, then store it as the user's handle.

        A failed verification never replaces a username that was verified
        before: the existing record keeps it and only gets the error status.
        Without an existing record nothing is written.
        """
        platform = Platform.parse(platform)
        self._require_user(user_id)
        outcome = self._sync_platform(user_id, platform, username, link=True)
        if outcome.ok:
            aggregate = self.aggregator.recompute(user_id)
        else:
            aggregate = self.users.read_totals(user_id)
        return SyncResult(user_id=user_id, outcomes=[outcome], aggregate=aggregate)

    # ------------------------------------------------------------------
    # Fleet
    # ------------------------------------------------------------------

    def run_fleet_sync(self, cancel: Optional[threading.Event] = None) -> SyncJobReport:
        """Resync every user; returns the job report.

        Raises :class:`StoreError` when the store fails; the rest of the
        current batch is allowed to finish first.
        """
        users = self.users.list_users()
        job = SyncJob([u.user_id for u in users], started_at=self._now())
        size = max(1, self.settings.batch_size)
        batches = [users[i:i + size] for i in range(0, len(users), size)]
        logger.info("Fleet sync: %d users in %d batches of up to %d", len(users), len(batches), size)

        with tqdm(total=len(users), desc="Fleet sync", unit="user", disable=not self.progress) as bar:
            for index, batch in enumerate(batches):
                if cancel is not None and cancel.is_set():
                    job.cancelled = True
                    logger.warning(
                        "Fleet sync cancelled before batch %d; %d users left skipped",
                        index + 1, sum(len(b) for b in batches[index:]),
                    )
                    break

                job.batch_sizes.append(len(batch))
                logger.info("Batch %d/%d: %d users", index + 1, len(batches), len(batch))
                self._run_batch(batch, job, bar)

                if index < len(batches) - 1 and not (cancel is not None and cancel.is_set()):
                    job.pauses += 1
                    self._sleep(self.settings.batch_pause)

        report = job.report(finished_at=self._now())
        logger.info(
            "Fleet sync finished in %.1fs: %d/%d users, %d profiles updated, %d failed, %d skipped%s",
            report.duration, report.processed_users, report.total_users, report.updated_profiles,
            report.failed_profiles, report.skipped_profiles, " (cancelled)" if report.cancelled else "",
        )
        return report

    def _run_batch(self, batch: List[UserRecord], job: SyncJob, bar) -> None:
        fatal: Optional[StoreError] = None
        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="sync-fleet") as pool:
            futures = {
                pool.submit(self._sync_fleet_user, user, job, self._rng.uniform(0, self.settings.max_jitter)): user
                for user in batch
            }
            for fut in as_completed(futures):
                bar.update(1)
                try:
                    fut.result()
                except StoreError as exc:
                    logger.error("Store failure while syncing user %s: %s", futures[fut].user_id, exc)
                    if fatal is None:
                        fatal = exc
        if fatal is not None:
            raise fatal

    def _sync_fleet_user(self, user: UserRecord, job: SyncJob, delay: float) -> None:
        if delay > 0:
            self._sleep(delay)

        only = self.settings.only
        platforms = [p for p in user.handles if only is None or p in only]
        outcomes: List[PlatformOutcome] = []
        try:
            for platform in platforms:
                outcome = self._sync_platform(user.user_id, platform, user.handles[platform])
                job.record(user.user_id, outcome)
                outcomes.append(outcome)

            if any(o.ok for o in outcomes):
                self.aggregator.recompute(user.user_id)

            freshness = timedelta(hours=self.settings.freshness_hours)
            now = self._now()
            job.add_stale(sum(1 for p in self.profiles.list_for_user(user.user_id) if p.is_stale(now, freshness)))
        except StoreError:
            raise
        except Exception:
            logger.exception("Unexpected failure while syncing user %s", user.user_id)
            job.finish_user(user.user_id, UpdateStatus.ERROR.value)
            return

        job.finish_user(user.user_id, _user_status(outcomes))

    # ------------------------------------------------------------------
    # One (user, platform)
    # ------------------------------------------------------------------

    def _sync_platform(self, user_id: str, platform: Platform, username: str, *, link: bool = False) -> PlatformOutcome:
        started = self._clock()

        if not self.governor.begin_sync(user_id, platform):
            logger.info("Sync of %s for user %s already in progress; rejecting", platform.value, user_id)
            return PlatformOutcome(
                platform=platform,
                username=username,
                status=UpdateStatus.SKIPPED,
                error_code="rate_limited",
                error=f"A {platform.value} sync for user {user_id} is already in progress",
            )
        try:
            return self._sync_claimed(user_id, platform, username, link, started)
        finally:
            self.governor.end_sync(user_id, platform)

    def _sync_claimed(
        self, user_id: str, platform: Platform, username: str, link: bool, started: float
    ) -> PlatformOutcome:
        existing = self.profiles.get(user_id, platform)
        fetcher = self.fetchers.get(platform)

        # a new username is verified right away; the same one waits out the cooldown
        if existing is not None and not (link and existing.username != username):
            decision = self.governor.check_cooldown(user_id, platform, existing.last_updated)
            if not decision.allowed:
                logger.debug(
                    "Cooldown: %s for user %s available again in %.0fs",
                    platform.value, user_id, decision.remaining_seconds,
                )
                return PlatformOutcome(
                    platform=platform,
                    username=existing.username,
                    status=UpdateStatus.SKIPPED,
                    error_code="rate_limited",
                    error=f"{platform.value} was synced recently; retry in {_human(decision.remaining_seconds)}",
                    remaining_seconds=decision.remaining_seconds,
                )

        attempted_at = self._now()
        if existing is not None:
            existing.last_update_status = UpdateStatus.UPDATING
            existing.last_update_attempt = attempted_at
            existing.update_attempts += 1
            record: Optional[PlatformProfile] = self.profiles.update(existing)
        elif not link:
            record = self.profiles.create(
                PlatformProfile(
                    user_id=user_id,
                    platform=platform,
                    username=username,
                    last_update_status=UpdateStatus.UPDATING,
                    last_update_attempt=attempted_at,
                    update_attempts=1,
                )
            )
        else:
            record = None

        attempts = 0

        def attempt() -> NormalizedProfile:
            nonlocal attempts
            attempts += 1
            limits = self.settings.limits_for(platform)
            with self.governor.slot(platform):
                return fetcher.fetch(username, timeout=limits.timeout)

        error: Optional[Exception] = None
        fetched: Optional[NormalizedProfile] = None
        try:
            if fetcher is None:
                raise ValidationError(f"No fetcher registered for {platform.value}")
            fetcher.validate_username(username)
            fetched = self.retry.call(attempt, describe=f"{platform.value} fetch of {username}")
            validate_profile(fetched, platform)
        except StoreError:
            raise
        except (PlatformError, ValidationError) as exc:
            error = exc
        except Exception as exc:
            logger.exception("Unexpected error syncing %s for user %s", platform.value, user_id)
            error = exc

        elapsed = self._clock() - started
        if error is not None:
            message = getattr(error, "message", None) or str(error)
            code = getattr(error, "code", "internal_error")
            logger.warning("%s sync failed for user %s (%s): %s", platform.value, user_id, username, message)
            if record is not None:
                record.last_update_status = UpdateStatus.ERROR
                record.last_update_error = message
                self.profiles.update(record)
            return PlatformOutcome(
                platform=platform,
                username=username,
                status=UpdateStatus.ERROR,
                error_code=code,
                error=message,
                remaining_seconds=getattr(error, "remaining_seconds", None),
                attempts=attempts,
                elapsed=elapsed,
            )

        at = self._now()
        if record is None:
            record = PlatformProfile(user_id=user_id, platform=platform, username=fetched.username)
            record.last_update_attempt = attempted_at
            record.update_attempts = 1
            record.apply(fetched, at)
            self.profiles.create(record)
        else:
            record.apply(fetched, at)
            self.profiles.update(record)
        if link:
            self.users.set_handle(user_id, platform, fetched.username)
        self.governor.record_success(user_id, platform, at)

        return PlatformOutcome(
            platform=platform,
            username=fetched.username,
            status=UpdateStatus.SUCCESS,
            score=record.score,
            partial=fetched.partial,
            attempts=attempts,
            elapsed=elapsed,
        )

    def _require_user(self, user_id: str) -> UserRecord:
        user = self.users.get_user(user_id)
        if user is None:
            raise LookupError(f"Unknown user {user_id}")
        return user


def _user_status(outcomes: List[PlatformOutcome]) -> str:
    attempted = [o for o in outcomes if o.status is not UpdateStatus.SKIPPED]
    if not attempted:
        return "up_to_date"
    failed = sum(1 for o in attempted if o.status is UpdateStatus.ERROR)
    if failed == 0:
        return UpdateStatus.SUCCESS.value
    if failed == len(attempted):
        return UpdateStatus.ERROR.value
    return "partial"


def _human(seconds: float) -> str:
    seconds = int(math.ceil(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


__all__ = ["SyncOrchestrator", "validate_profile"]
