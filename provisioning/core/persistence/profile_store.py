"""
Profile store — persisted, versioned profile records.

The store owns the committed record of every profile. Readers get
snapshots (deep copies); the engine checks out a mutable copy while it
holds the profile lock and checks it back in with ``persist``.

Each ``persist`` stamps the profile with a timestamp strictly greater
than the previous one, so a profile's history is totally ordered.

FileProfileStore layout::

    <root>/
        <id>.profile/
            1739648400123.json      one file per commit (history)
            1739648459001.json
        <id>.data/                  scratch space for transactions

Writes are atomic (write to temp file, then rename).
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from provisioning.core.models.profile import Profile

logger = logging.getLogger(__name__)

PROFILE_SUFFIX = ".profile"
DATA_SUFFIX = ".data"


class ProfileStoreError(Exception):
    """Base class for profile store failures."""


class ProfileExistsError(ProfileStoreError, ValueError):
    """Raised when adding a profile whose id is already taken."""


class UnknownProfileError(ProfileStoreError, KeyError):
    """Raised when an operation names a profile the store does not know."""


def _now_ms() -> int:
    return int(time.time() * 1000)


class _ProfileLock:
    """Reentrant lock plus the number of threads holding or awaiting it."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class ProfileStore(ABC):
    """Abstract profile store with per-profile transaction locks.

    Locks are process local and reentrant for the owning thread. Storage
    is left to subclasses through ``_load``, ``_save``, ``_delete``,
    ``_ids`` and ``_history``.
    """

    def __init__(self) -> None:
        self._locks_guard = threading.Lock()
        self._locks: dict[str, _ProfileLock] = {}

    # ── Storage hooks ────────────────────────────────────────────

    @abstractmethod
    def _load(self, profile_id: str, timestamp: int | None) -> Profile | None:
        """Return the stored record (latest when timestamp is None)."""

    @abstractmethod
    def _save(self, profile: Profile) -> None:
        """Durably store a record whose timestamp is already assigned."""

    @abstractmethod
    def _delete(self, profile_id: str) -> None:
        """Remove all records of a profile."""

    @abstractmethod
    def _ids(self) -> list[str]:
        """Known profile ids."""

    @abstractmethod
    def _history(self, profile_id: str) -> list[int]:
        """Committed timestamps, oldest first."""

    @abstractmethod
    def scratch_directory(self, profile_id: str) -> Path:
        """Directory transactions on this profile may use for scratch data."""

    # ── Public API ───────────────────────────────────────────────

    def get(self, profile_id: str, timestamp: int | None = None) -> Profile | None:
        """Snapshot of a profile (latest, or as of a committed timestamp)."""
        record = self._load(profile_id, timestamp)
        return record.snapshot() if record is not None else None

    def list_profiles(self) -> list[Profile]:
        """Snapshots of all profiles, sorted by id."""
        profiles = []
        for pid in sorted(self._ids()):
            record = self._load(pid, None)
            if record is not None:
                profiles.append(record.snapshot())
        return profiles

    def timestamps(self, profile_id: str) -> list[int]:
        return self._history(profile_id)

    def add(self, profile: Profile) -> Profile:
        """Register a new profile and return its committed snapshot.

        Raises:
            ProfileExistsError: A profile with this id already exists.
        """
        if profile is None:
            raise ValueError("Cannot add a null profile")
        with self.locked(profile.profile_id):
            if self._load(profile.profile_id, None) is not None:
                raise ProfileExistsError(f"Profile '{profile.profile_id}' already exists")
            record = profile.snapshot()
            record.timestamp = _now_ms()
            self._save(record)
        logger.info("Profile added: %s", profile.profile_id)
        return record.snapshot()

    def remove(self, profile_id: str) -> None:
        """Delete a profile with its history and scratch data.

        Raises:
            UnknownProfileError: No such profile.
        """
        with self.locked(profile_id):
            if self._load(profile_id, None) is None:
                raise UnknownProfileError(profile_id)
            self._delete(profile_id)
        logger.info("Profile removed: %s", profile_id)

    def checkout(self, profile_id: str) -> Profile:
        """Mutable copy of the last committed record, for the lock holder.

        Raises:
            UnknownProfileError: No such profile.
        """
        record = self._load(profile_id, None)
        if record is None:
            raise UnknownProfileError(profile_id)
        return record.snapshot()

    def persist(self, profile: Profile) -> int:
        """Commit a profile as the new latest record and return its timestamp.

        Raises:
            UnknownProfileError: The profile was never added.
        """
        with self.locked(profile.profile_id):
            previous = self._load(profile.profile_id, None)
            if previous is None:
                raise UnknownProfileError(profile.profile_id)
            profile.timestamp = max(_now_ms(), previous.timestamp + 1)
            self._save(profile.snapshot())
        logger.debug("Profile %s persisted at %d", profile.profile_id, profile.timestamp)
        return profile.timestamp

    # ── Locking ──────────────────────────────────────────────────

    def lock(self, profile_id: str) -> None:
        """Acquire the profile's transaction lock, blocking until free."""
        with self._locks_guard:
            entry = self._locks.get(profile_id)
            if entry is None:
                entry = self._locks[profile_id] = _ProfileLock()
            entry.users += 1
        entry.lock.acquire()

    def unlock(self, profile_id: str) -> None:
        """Release the profile's transaction lock.

        The lock entry is dropped once no thread holds or waits for it.

        Raises:
            RuntimeError: The calling thread does not hold the lock.
        """
        with self._locks_guard:
            entry = self._locks.get(profile_id)
            if entry is None:
                raise RuntimeError(f"Profile {profile_id} is not locked")
            entry.lock.release()
            entry.users -= 1
            if entry.users == 0:
                del self._locks[profile_id]

    @property
    def active_locks(self) -> int:
        """Number of profiles currently locked or waited on."""
        with self._locks_guard:
            return len(self._locks)

    @contextmanager
    def locked(self, profile_id: str) -> Iterator[None]:
        self.lock(profile_id)
        try:
            yield
        finally:
            self.unlock(profile_id)


class MemoryProfileStore(ProfileStore):
    """Profile store keeping every commit in memory.

    Without a ``scratch_root`` the store creates a temporary directory on
    first use; ``close()`` removes it.
    """

    def __init__(self, scratch_root: Path | None = None):
        super().__init__()
        self._records: dict[str, dict[int, Profile]] = {}
        self._scratch_root = scratch_root
        self._owns_scratch = False

    def close(self) -> None:
        """Remove the temporary scratch root, if this store created one."""
        if self._owns_scratch and self._scratch_root is not None:
            shutil.rmtree(self._scratch_root, ignore_errors=True)
            self._scratch_root = None
            self._owns_scratch = False

    def _load(self, profile_id: str, timestamp: int | None) -> Profile | None:
        history = self._records.get(profile_id)
        if not history:
            return None
        if timestamp is None:
            timestamp = max(history)
        return history.get(timestamp)

    def _save(self, profile: Profile) -> None:
        self._records.setdefault(profile.profile_id, {})[profile.timestamp] = profile

    def _delete(self, profile_id: str) -> None:
        self._records.pop(profile_id, None)
        if self._scratch_root is not None:
            shutil.rmtree(self._scratch_root / f"{profile_id}{DATA_SUFFIX}", ignore_errors=True)

    def _ids(self) -> list[str]:
        return list(self._records)

    def _history(self, profile_id: str) -> list[int]:
        return sorted(self._records.get(profile_id, {}))

    def scratch_directory(self, profile_id: str) -> Path:
        if self._scratch_root is None:
            self._scratch_root = Path(tempfile.mkdtemp(prefix="provisioning-"))
            self._owns_scratch = True
        path = self._scratch_root / f"{profile_id}{DATA_SUFFIX}"
        path.mkdir(parents=True, exist_ok=True)
        return path


class FileProfileStore(ProfileStore):
    """Profile store persisting every commit as a JSON file."""

    def __init__(self, root: Path):
        super().__init__()
        self._root = Path(root)
        self._cache: dict[str, Profile] = {}
        self._cache_guard = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def _profile_dir(self, profile_id: str) -> Path:
        return self._root / f"{profile_id}{PROFILE_SUFFIX}"

    def _load(self, profile_id: str, timestamp: int | None) -> Profile | None:
        if timestamp is None:
            with self._cache_guard:
                cached = self._cache.get(profile_id)
            if cached is not None:
                return cached

        history = self._history(profile_id)
        if not history:
            return None

        candidates = [timestamp] if timestamp is not None else list(reversed(history))
        for ts in candidates:
            record = self._read(self._profile_dir(profile_id) / f"{ts}.json")
            if record is None:
                continue
            if timestamp is None:
                with self._cache_guard:
                    self._cache[profile_id] = record
            return record
        return None

    def _read(self, path: Path) -> Profile | None:
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Profile.model_validate(data)
        except json.JSONDecodeError as e:
            logger.warning("Corrupt profile file %s: %s — skipping", path, e)
            return None
        except Exception as e:
            logger.warning("Cannot load profile from %s: %s — skipping", path, e)
            return None

    def _save(self, profile: Profile) -> None:
        directory = self._profile_dir(profile.profile_id)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{profile.timestamp}.json"

        data = profile.model_dump(mode="json")
        content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

        try:
            _fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".profile_", suffix=".tmp")
            tmp = Path(tmp_path)
            try:
                with open(_fd, "w", encoding="utf-8") as fh:
                    fh.write(content)
                tmp.replace(path)
            except Exception:
                tmp.unlink(missing_ok=True)
                raise
        except Exception as e:
            logger.error("Failed to save profile %s to %s: %s", profile.profile_id, path, e)
            raise

        with self._cache_guard:
            self._cache[profile.profile_id] = profile
        logger.debug("Profile saved to %s", path)

    def _delete(self, profile_id: str) -> None:
        with self._cache_guard:
            self._cache.pop(profile_id, None)
        shutil.rmtree(self._profile_dir(profile_id), ignore_errors=True)
        shutil.rmtree(self._root / f"{profile_id}{DATA_SUFFIX}", ignore_errors=True)

    def _ids(self) -> list[str]:
        if not self._root.is_dir():
            return []
        return [
            p.name[: -len(PROFILE_SUFFIX)]
            for p in self._root.iterdir()
            if p.is_dir() and p.name.endswith(PROFILE_SUFFIX)
        ]

    def _history(self, profile_id: str) -> list[int]:
        directory = self._profile_dir(profile_id)
        if not directory.is_dir():
            return []
        stamps = []
        for f in directory.glob("*.json"):
            if f.stem.isdigit():
                stamps.append(int(f.stem))
        return sorted(stamps)

    def scratch_directory(self, profile_id: str) -> Path:
        path = self._root / f"{profile_id}{DATA_SUFFIX}"
        path.mkdir(parents=True, exist_ok=True)
        return path
