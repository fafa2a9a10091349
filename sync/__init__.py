from .aggregator import ScoreAggregator
from .config import PlatformLimits, SyncSettings, load_settings
from .governor import CooldownDecision, RateGovernor
from .models import (
    AggregateUserScore,
    PlatformOutcome,
    PlatformProfile,
    SyncJobReport,
    SyncResult,
    UpdateStatus,
    UserRecord,
)
from .orchestrator import SyncOrchestrator
from .retry import RetryPolicy, jittered_backoff
from .stores import InMemoryStore, JsonFileStore, StoreError

__all__ = [
    "ScoreAggregator",
    "PlatformLimits",
    "SyncSettings",
    "load_settings",
    "CooldownDecision",
    "RateGovernor",
    "AggregateUserScore",
    "PlatformOutcome",
    "PlatformProfile",
    "SyncJobReport",
    "SyncResult",
    "UpdateStatus",
    "UserRecord",
    "SyncOrchestrator",
    "RetryPolicy",
    "jittered_backoff",
    "InMemoryStore",
    "JsonFileStore",
    "StoreError",
]
