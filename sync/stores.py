"""Profile and user persistence.

The sync layer only talks to the two protocols below.  Two implementations
ship with the package: an in-memory one (tests, embedding in a web process
that has its own database layer) and a JSON catalog on disk used by the
command-line entry point.

The JSON catalog structure is:

    {
        "users": {"<user_id>": {...}, ...},
        "profiles": {"<user_id>": {"<platform>": {...}, ...}, ...}
    }
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple, Union

from platforms.base import Platform
from platforms.errors import SyncError

from .models import AggregateUserScore, PlatformProfile, UserRecord

logger = logging.getLogger(__name__)


class StoreError(SyncError):
    """The persistence layer itself failed (unreachable, corrupt, …)."""

    code = "store_error"


class ProfileStore(Protocol):
    def create(self, profile: PlatformProfile) -> PlatformProfile: ...

    def get(self, user_id: str, platform: Platform) -> Optional[PlatformProfile]: ...

    def update(self, profile: PlatformProfile) -> PlatformProfile: ...

    def list_for_user(self, user_id: str) -> List[PlatformProfile]: ...


class UserStore(Protocol):
    def list_users(self) -> List[UserRecord]: ...

    def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    def add_user(self, user: UserRecord) -> UserRecord: ...

    def set_handle(self, user_id: str, platform: Platform, username: str) -> None: ...

    def read_totals(self, user_id: str) -> AggregateUserScore: ...

    def write_totals(self, user_id: str, totals: AggregateUserScore) -> None: ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryStore:
    """Both stores in one object; records are copied on the way in and out."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: Dict[str, UserRecord] = {}
        self._profiles: Dict[Tuple[str, Platform], PlatformProfile] = {}

    # -- profiles -------------------------------------------------------

    def create(self, profile: PlatformProfile) -> PlatformProfile:
        with self._lock:
            if profile.key in self._profiles:
                raise StoreError(f"profile {profile.user_id}/{profile.platform.value} already exists")
            if profile.score < 0:
                raise StoreError("profile score must not be negative")
            self._profiles[profile.key] = copy.deepcopy(profile)
            return copy.deepcopy(profile)

    def get(self, user_id: str, platform: Platform) -> Optional[PlatformProfile]:
        with self._lock:
            found = self._profiles.get((user_id, platform))
            return copy.deepcopy(found) if found is not None else None

    def update(self, profile: PlatformProfile) -> PlatformProfile:
        with self._lock:
            if profile.key not in self._profiles:
                raise StoreError(f"profile {profile.user_id}/{profile.platform.value} does not exist")
            if profile.score < 0:
                raise StoreError("profile score must not be negative")
            self._profiles[profile.key] = copy.deepcopy(profile)
            return copy.deepcopy(profile)

    def list_for_user(self, user_id: str) -> List[PlatformProfile]:
        with self._lock:
            return [copy.deepcopy(p) for (uid, _), p in self._profiles.items() if uid == user_id]

    # -- users ----------------------------------------------------------

    def list_users(self) -> List[UserRecord]:
        with self._lock:
            return [copy.deepcopy(u) for u in self._users.values()]

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user is not None else None

    def add_user(self, user: UserRecord) -> UserRecord:
        with self._lock:
            self._users[user.user_id] = copy.deepcopy(user)
            return copy.deepcopy(user)

    def set_handle(self, user_id: str, platform: Platform, username: str) -> None:
        with self._lock:
            user = self._require_user(user_id)
            user.handles[platform] = username

    def read_totals(self, user_id: str) -> AggregateUserScore:
        with self._lock:
            return copy.deepcopy(self._require_user(user_id).aggregate)

    def write_totals(self, user_id: str, totals: AggregateUserScore) -> None:
        with self._lock:
            self._require_user(user_id).aggregate = copy.deepcopy(totals)

    def _require_user(self, user_id: str) -> UserRecord:
        user = self._users.get(user_id)
        if user is None:
            raise StoreError(f"user {user_id} not found")
        return user


# ---------------------------------------------------------------------------
# JSON catalog on disk
# ---------------------------------------------------------------------------


class JsonFileStore(InMemoryStore):
    """In-memory store persisted to a single JSON document after every write."""

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self._load_catalog()

    def _load_catalog(self) -> None:
        """Read the catalog (empty when the file does not exist yet)."""
        if not self.path.exists():
            return
        try:
            catalog = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"cannot read store {self.path}: {exc}") from exc
        try:
            for raw in (catalog.get("users") or {}).values():
                user = UserRecord.from_dict(raw)
                self._users[user.user_id] = user
            for per_user in (catalog.get("profiles") or {}).values():
                for raw in per_user.values():
                    profile = PlatformProfile.from_dict(raw)
                    self._profiles[profile.key] = profile
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"store {self.path} is corrupt: {exc}") from exc
        logger.debug("Loaded %d users / %d profiles from %s", len(self._users), len(self._profiles), self.path)

    def _save_catalog(self) -> None:
        """Write the catalog atomically (temp file + rename)."""
        catalog: Dict[str, Dict] = {"users": {}, "profiles": {}}
        for user in self._users.values():
            catalog["users"][user.user_id] = user.to_dict()
        for (user_id, platform), profile in self._profiles.items():
            catalog["profiles"].setdefault(user_id, {})[platform.value] = profile.to_dict()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(catalog, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StoreError(f"cannot write store {self.path}: {exc}") from exc

    def create(self, profile: PlatformProfile) -> PlatformProfile:
        with self._lock:
            created = super().create(profile)
            self._save_catalog()
            return created

    def update(self, profile: PlatformProfile) -> PlatformProfile:
        with self._lock:
            updated = super().update(profile)
            self._save_catalog()
            return updated

    def add_user(self, user: UserRecord) -> UserRecord:
        with self._lock:
            added = super().add_user(user)
            self._save_catalog()
            return added

    def set_handle(self, user_id: str, platform: Platform, username: str) -> None:
        with self._lock:
            super().set_handle(user_id, platform, username)
            self._save_catalog()

    def write_totals(self, user_id: str, totals: AggregateUserScore) -> None:
        with self._lock:
            super().write_totals(user_id, totals)
            self._save_catalog()


__all__ = ["StoreError", "ProfileStore", "UserStore", "InMemoryStore", "JsonFileStore"]
