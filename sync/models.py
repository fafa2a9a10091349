"""Records read and written by the sync layer."""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from platforms.base import NormalizedProfile, Platform


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UpdateStatus(str, Enum):
    PENDING = "pending"
    UPDATING = "updating"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class PlatformProfile:
    """One per (user, platform)."""

    user_id: str
    platform: Platform
    username: str
    score: float = 0.0
    problems_solved: int = 0
    difficulty: Dict[str, int] = field(default_factory=dict)
    rating: Optional[float] = None
    max_rating: Optional[float] = None
    rank: Optional[str] = None
    contests: int = 0
    extras: Dict[str, Any] = field(default_factory=dict)
    partial_data: bool = False
    last_updated: Optional[datetime] = None
    last_update_status: UpdateStatus = UpdateStatus.PENDING
    last_update_error: Optional[str] = None
    last_update_attempt: Optional[datetime] = None
    update_attempts: int = 0

    @property
    def key(self):
        return (self.user_id, self.platform)

    def is_stale(self, now: Optional[datetime] = None, freshness: timedelta = timedelta(hours=24)) -> bool:
        if self.last_updated is None:
            return True
        return (now or utcnow()) - self.last_updated > freshness

    def apply(self, fetched: NormalizedProfile, at: datetime) -> None:
        """Copy a successful fetch onto this record.

        A partial fetch of the same username only overwrites what it actually
        read; everything else keeps the last stored value and the score is
        recomputed from the merged numbers.
        """
        if not (fetched.partial and fetched.username == self.username):
            self.username = fetched.username
            self.score = fetched.score
            self.problems_solved = fetched.problems_solved or 0
            self.difficulty = dict(fetched.difficulty)
            self.rating = fetched.rating
            self.max_rating = fetched.max_rating
            self.rank = fetched.rank
            self.contests = fetched.contests or 0
            self.extras = dict(fetched.extras)
        else:
            if fetched.problems_solved is not None:
                self.problems_solved = fetched.problems_solved
            if fetched.contests is not None:
                self.contests = fetched.contests
            if fetched.difficulty:
                self.difficulty = dict(fetched.difficulty)
            for name in ("rating", "max_rating", "rank"):
                if getattr(fetched, name) is not None:
                    setattr(self, name, getattr(fetched, name))
            self.extras = {**self.extras, **fetched.extras}
            self.score = fetched.rescore(self.problems_solved, self.rating, self.contests)
        self.partial_data = fetched.partial
        self.last_updated = at
        self.last_update_status = UpdateStatus.SUCCESS
        self.last_update_error = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["platform"] = self.platform.value
        data["last_update_status"] = self.last_update_status.value
        for key in ("last_updated", "last_update_attempt"):
            data[key] = data[key].isoformat() if data[key] else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlatformProfile":
        data = dict(data)
        data["platform"] = Platform.parse(data["platform"])
        data["last_update_status"] = UpdateStatus(data.get("last_update_status", "pending"))
        for key in ("last_updated", "last_update_attempt"):
            if data.get(key):
                data[key] = datetime.fromisoformat(data[key])
        return cls(**data)


@dataclass
class AggregateUserScore:
    total_score: float = 0.0
    total_problems_solved: int = 0
    difficulty_totals: Dict[str, int] = field(default_factory=dict)
    total_contests: int = 0
    contests_by_platform: Dict[str, int] = field(default_factory=dict)
    computed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["computed_at"] = self.computed_at.isoformat() if self.computed_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregateUserScore":
        data = dict(data)
        if data.get("computed_at"):
            data["computed_at"] = datetime.fromisoformat(data["computed_at"])
        return cls(**data)


@dataclass
class UserRecord:
    user_id: str
    name: str = ""
    handles: Dict[Platform, str] = field(default_factory=dict)
    aggregate: AggregateUserScore = field(default_factory=AggregateUserScore)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "handles": {p.value: h for p, h in self.handles.items()},
            "aggregate": self.aggregate.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserRecord":
        return cls(
            user_id=data["user_id"],
            name=data.get("name", ""),
            handles={Platform.parse(p): h for p, h in (data.get("handles") or {}).items()},
            aggregate=AggregateUserScore.from_dict(data.get("aggregate") or {}),
        )


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass
class PlatformOutcome:
    platform: Platform
    username: Optional[str]
    status: UpdateStatus
    score: Optional[float] = None
    partial: bool = False
    error_code: Optional[str] = None
    error: Optional[str] = None
    remaining_seconds: Optional[float] = None
    attempts: int = 0
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is UpdateStatus.SUCCESS


@dataclass
class SyncResult:
    """Answer to an on-demand sync or account link."""

    user_id: str
    outcomes: List[PlatformOutcome] = field(default_factory=list)
    aggregate: Optional[AggregateUserScore] = None

    @property
    def succeeded(self) -> List[PlatformOutcome]:
        return [o for o in self.outcomes if o.status is UpdateStatus.SUCCESS]

    @property
    def failed(self) -> List[PlatformOutcome]:
        return [o for o in self.outcomes if o.status is UpdateStatus.ERROR]


@dataclass
class SyncJobReport:
    total_users: int
    processed_users: int
    updated_profiles: int
    failed_profiles: int
    skipped_profiles: int
    started_at: datetime
    finished_at: datetime
    cancelled: bool
    batch_sizes: List[int]
    pauses: int
    user_outcomes: Dict[str, str]
    platform_counts: Dict[str, Dict[str, int]]
    platform_timings: Dict[str, List[float]]
    failures: List[Dict[str, Any]]
    stale_profiles: int = 0

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


class SyncJob:
    """Mutable, thread-safe tracker for one fleet run."""

    def __init__(self, user_ids: List[str], started_at: Optional[datetime] = None):
        self._lock = threading.Lock()
        self.total_users = len(user_ids)
        self.processed_users = 0
        self.updated_profiles = 0
        self.failed_profiles = 0
        self.skipped_profiles = 0
        self.started_at = started_at or utcnow()
        self.cancelled = False
        self.batch_sizes: List[int] = []
        self.pauses = 0
        self.stale_profiles = 0
        # every user starts as skipped and only moves once its task ran
        self.user_outcomes: Dict[str, str] = {uid: UpdateStatus.SKIPPED.value for uid in user_ids}
        self.platform_counts: Dict[str, Dict[str, int]] = defaultdict(lambda: {"success": 0, "error": 0, "skipped": 0})
        self.platform_timings: Dict[str, List[float]] = defaultdict(list)
        self.failures: List[Dict[str, Any]] = []

    def record(self, user_id: str, outcome: PlatformOutcome) -> None:
        with self._lock:
            key = outcome.platform.value
            if outcome.status is UpdateStatus.SUCCESS:
                self.updated_profiles += 1
                self.platform_counts[key]["success"] += 1
            elif outcome.status is UpdateStatus.ERROR:
                self.failed_profiles += 1
                self.platform_counts[key]["error"] += 1
                self.failures.append(
                    {
                        "user_id": user_id,
                        "platform": key,
                        "username": outcome.username,
                        "code": outcome.error_code,
                        "error": outcome.error,
                        "timestamp": utcnow().isoformat(),
                    }
                )
            else:
                self.skipped_profiles += 1
                self.platform_counts[key]["skipped"] += 1
            if outcome.elapsed:
                self.platform_timings[key].append(outcome.elapsed)

    def add_stale(self, count: int) -> None:
        with self._lock:
            self.stale_profiles += count

    def finish_user(self, user_id: str, status: str) -> None:
        with self._lock:
            self.processed_users += 1
            self.user_outcomes[user_id] = status

    def report(self, finished_at: Optional[datetime] = None) -> SyncJobReport:
        with self._lock:
            return SyncJobReport(
                total_users=self.total_users,
                processed_users=self.processed_users,
                updated_profiles=self.updated_profiles,
                failed_profiles=self.failed_profiles,
                skipped_profiles=self.skipped_profiles,
                started_at=self.started_at,
                finished_at=finished_at or utcnow(),
                cancelled=self.cancelled,
                batch_sizes=list(self.batch_sizes),
                pauses=self.pauses,
                user_outcomes=dict(self.user_outcomes),
                platform_counts={k: dict(v) for k, v in self.platform_counts.items()},
                platform_timings={k: list(v) for k, v in self.platform_timings.items()},
                failures=list(self.failures),
                stale_profiles=self.stale_profiles,
            )


__all__ = [
    "UpdateStatus",
    "PlatformProfile",
    "AggregateUserScore",
    "UserRecord",
    "PlatformOutcome",
    "SyncResult",
    "SyncJob",
    "SyncJobReport",
    "utcnow",
]
